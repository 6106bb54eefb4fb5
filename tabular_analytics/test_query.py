import pandas as pd
import pytest

from tabular_analytics.conftest import OTHER_OWNER_ID, OWNER_ID
from tabular_analytics.errors import NotFoundError, ValidationError
from tabular_analytics.query import flatten_records
from tabular_analytics.schemas import Filter, QueryOptions


def test_pagination_sorted_by_text_column(planner, people):
    result = planner.get_dataset_data(
        OWNER_ID, people.id, QueryOptions(page=1, limit=1, sort_by="name", sort_order="asc")
    )
    assert len(result.records) == 1
    assert result.records[0].fields["name"] == "Alice"
    assert result.total_count == 2
    assert result.total_pages == 2
    assert result.has_next is True
    assert result.has_prev is False


def test_total_count_is_independent_of_page(planner, sales):
    result = planner.fetch(OWNER_ID, sales.id, page=3, limit=2)
    assert len(result.records) == 1
    assert result.total_count == 5
    assert result.has_next is False


def test_default_order_is_ingestion_order(planner, sales):
    result = planner.fetch(OWNER_ID, sales.id, page=1, limit=10)
    assert [r.index for r in result.records] == [0, 1, 2, 3, 4]


def test_descending_numeric_sort(planner, sales):
    result = planner.fetch(OWNER_ID, sales.id, sort=("price", "desc"), page=1, limit=2)
    assert [r.fields["price"] for r in result.records] == [22.0, 20.0]


def test_numeric_sort_ascending_is_not_lexical(planner, store):
    df = pd.DataFrame({"n": [9, 10, 100, 2]})
    dataset = store.ingest_dataframe(OWNER_ID, "numbers", df)
    result = planner.fetch(OWNER_ID, dataset.id, sort=("n", "asc"), page=1, limit=10)
    assert [r.fields["n"] for r in result.records] == [2, 9, 10, 100]


def test_row_index_sort_key(planner, sales):
    result = planner.fetch(OWNER_ID, sales.id, sort=("row_index", "desc"), page=1, limit=5)
    assert [r.index for r in result.records] == [4, 3, 2, 1, 0]


@pytest.mark.parametrize(
    "flt,expected",
    [
        (Filter(column="product", operator="eq", value="Widget"), 2),
        (Filter(column="quantity", operator="gt", value="4"), 2),
        (Filter(column="price", operator="lt", value=12.5), 2),
        (Filter(column="product", operator="contains", value="adg"), 2),
        (Filter(column="product", operator="contains", value="widget"), 0),
    ],
)
def test_filters(planner, sales, flt, expected):
    result = planner.fetch(OWNER_ID, sales.id, [flt], page=1, limit=10)
    assert result.total_count == expected
    assert len(result.records) == expected


def test_eq_compares_numbers_natively(planner, sales):
    as_int = Filter(column="price", operator="eq", value=10)
    assert planner.fetch(OWNER_ID, sales.id, [as_int]).total_count == 1

    as_float = Filter(column="quantity", operator="eq", value=4.0)
    assert planner.fetch(OWNER_ID, sales.id, [as_float]).total_count == 1


def test_eq_on_boolean_column(planner, store):
    df = pd.DataFrame({"name": ["a", "b", "c"], "active": [True, False, True]})
    dataset = store.ingest_dataframe(OWNER_ID, "flags", df)
    result = planner.fetch(OWNER_ID, dataset.id, [Filter(column="active", operator="eq", value=True)])
    assert [r.fields["name"] for r in result.records] == ["a", "c"]


def test_required_columns_skip_rows_without_values(planner, sales, people):
    assert planner.count(OWNER_ID, None) == 7
    assert planner.count(OWNER_ID, None, required_columns=["name"]) == 2
    assert planner.count(OWNER_ID, None, required_columns=["name", "price"]) == 0


def test_filter_values_are_bound_not_interpolated(planner, sales):
    hostile = Filter(column="product", operator="eq", value="x' OR '1'='1")
    assert planner.fetch(OWNER_ID, sales.id, [hostile], page=1, limit=10).total_count == 0

    wildcard = Filter(column="product", operator="contains", value="%")
    assert planner.fetch(OWNER_ID, sales.id, [wildcard], page=1, limit=10).total_count == 0


def test_hostile_column_name_matches_nothing(planner, sales):
    hostile = Filter(column="product') OR 1=1 --", operator="eq", value="Widget")
    result = planner.fetch(OWNER_ID, None, [hostile], page=1, limit=10)
    assert result.total_count == 0
    assert result.records == []


@pytest.mark.parametrize(
    "kwargs",
    [{"page": 0, "limit": 10}, {"page": 1, "limit": 0}, {"page": 1, "limit": -5}],
)
def test_invalid_pagination(planner, sales, kwargs):
    with pytest.raises(ValidationError):
        planner.fetch(OWNER_ID, sales.id, **kwargs)


def test_invalid_filters(planner, sales):
    with pytest.raises(ValidationError):
        planner.fetch(OWNER_ID, sales.id, [Filter(column="price", operator="like", value="1")])
    with pytest.raises(ValidationError):
        planner.fetch(OWNER_ID, sales.id, [Filter(column="price", operator="gt", value="cheap")])


def test_invalid_sort_order(planner, sales):
    with pytest.raises(ValidationError):
        planner.fetch(OWNER_ID, sales.id, sort=("price", "sideways"))


def test_dataset_data_requires_ownership(planner, sales):
    with pytest.raises(NotFoundError):
        planner.get_dataset_data(OTHER_OWNER_ID, sales.id, QueryOptions())


def test_dataset_data_ignores_unknown_columns(planner, sales):
    options = QueryOptions(
        filters=[Filter(column="colour", operator="eq", value="red")], sort_by="colour"
    )
    result = planner.get_dataset_data(OWNER_ID, sales.id, options)
    assert result.total_count == 5


def test_user_data_spans_datasets_and_owners(planner, store, sales, people):
    store.ingest_dataframe(OTHER_OWNER_ID, "private", pd.DataFrame({"name": ["Eve"]}))
    result = planner.get_user_data(OWNER_ID, QueryOptions(limit=100))
    assert result.total_count == 7
    assert all(r.owner_id == OWNER_ID for r in result.records)


def test_search_uses_contains(planner, sales, people):
    result = planner.search(OWNER_ID, "Gad", ["product"])
    assert result.total_count == 2
    with pytest.raises(ValidationError):
        planner.search(OWNER_ID, "", ["product"])


def test_flatten_records(planner, people):
    rows = flatten_records(planner.fetch(OWNER_ID, people.id).records)
    assert rows[0]["name"] == "Bob"
    assert rows[0]["rowIndex"] == 0
    assert rows[0]["datasetId"] == people.id


def test_dashboard_stats(planner, sales, people):
    stats = planner.get_dashboard_stats(OWNER_ID)
    assert stats.total_rows == 7
    assert stats.total_datasets == 2
    assert stats.unique_columns == 9
    assert stats.last_upload is not None


def test_delete_dataset(store, planner, sales):
    dataset_id = sales.id
    store.delete_dataset(OWNER_ID, dataset_id)
    assert planner.count(OWNER_ID, dataset_id) == 0
    with pytest.raises(NotFoundError):
        store.delete_dataset(OWNER_ID, dataset_id)


def test_list_datasets(planner, sales, people):
    datasets = planner.list_datasets(OWNER_ID)
    assert {d.dataset_name for d in datasets} == {"sales", "people"}
    assert [d.dataset_name for d in planner.list_datasets(OWNER_ID, limit=1)] == ["people"]
    assert planner.list_datasets(OTHER_OWNER_ID) == []
