import pandas as pd
import pytest
from sqlalchemy.orm import sessionmaker

from tabular_analytics.catalog import ColumnCatalog
from tabular_analytics.charts import AggregationProjector
from tabular_analytics.database import create_db_engine, init_db
from tabular_analytics.query import RowQueryPlanner
from tabular_analytics.store import RowStore

OWNER_ID = 1
OTHER_OWNER_ID = 2


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://", echo=False)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def store(db):
    return RowStore(db)


@pytest.fixture
def catalog(store):
    return ColumnCatalog(store)


@pytest.fixture
def planner(store):
    return RowQueryPlanner(store)


@pytest.fixture
def projector(planner, catalog):
    return AggregationProjector(planner, catalog)


@pytest.fixture
def sales(store):
    df = pd.DataFrame(
        {
            "date": ["2024-01-01", "2024-01-01", "2024-01-02", "2024-01-03", "2024-01-02"],
            "product": ["Widget", "Gadget", "Widget", "Gizmo", "Gadget"],
            "region": ["North", "South", "North", "South", "North"],
            "price": [10.0, 20.0, 12.5, 7.0, 22.0],
            "quantity": [5, 2, 4, 10, 1],
            "revenue": ["$1,000", "$40", " 50 ", "n/a", "$22"],
        }
    )
    return store.ingest_dataframe(OWNER_ID, "sales", df, original_filename="sales.csv")


@pytest.fixture
def people(store):
    df = pd.DataFrame({"name": ["Bob", "Alice"], "age": [30, 25], "city": ["NYC", "LA"]})
    return store.ingest_dataframe(OWNER_ID, "people", df, original_filename="people.csv")
