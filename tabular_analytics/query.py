"""
Row queries over datasets whose columns vary per upload.

The planner validates and normalizes filter/sort/pagination requests before
handing them to the row store. Filter values are bound by the store; this
module only checks their shape.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from tabular_analytics.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from tabular_analytics.errors import NotFoundError, ValidationError
from tabular_analytics.schemas import (
    DashboardStats,
    DataResult,
    DatasetInfo,
    Filter,
    QueryOptions,
    Record,
)
from tabular_analytics.store import RowStore, Sort

logger = logging.getLogger(__name__)

FILTER_OPERATORS = ("eq", "gt", "lt", "contains")
SORT_ORDERS = ("asc", "desc")

# Sort keys meaning "ingestion order" rather than a field
INDEX_SORT_KEYS = ("row_index", "index")


def normalize_filter(f: Filter) -> Filter:
    """Check a filter and cast its value for the operator."""
    if not f.column:
        raise ValidationError("Filter column is required")
    if f.operator not in FILTER_OPERATORS:
        raise ValidationError(
            f"Unsupported filter operator '{f.operator}'. Must be one of: {', '.join(FILTER_OPERATORS)}"
        )
    if f.operator in ("gt", "lt"):
        try:
            value: Any = float(f.value)
        except (TypeError, ValueError):
            raise ValidationError(
                f"Filter value for '{f.column}' must be numeric for operator '{f.operator}'"
            )
        return Filter(column=f.column, operator=f.operator, value=value)
    if f.value is None:
        raise ValidationError(f"Filter value for '{f.column}' is required")
    return Filter(column=f.column, operator=f.operator, value=f.value)


def filter_errors(filters: Iterable[Filter]) -> List[str]:
    """Collect every filter problem instead of stopping at the first"""
    errors: List[str] = []
    for f in filters:
        try:
            normalize_filter(f)
        except ValidationError as e:
            errors.extend(e.errors)
    return errors


def flatten_records(records: Iterable[Record]) -> List[Dict[str, Any]]:
    """Spread record fields into flat rows for table views"""
    return [
        {"id": r.id, "datasetId": r.dataset_id, "rowIndex": r.index, **r.fields}
        for r in records
    ]


class RowQueryPlanner:
    def __init__(self, store: RowStore):
        self.store = store

    def fetch(
        self,
        owner_id: int,
        dataset_id: Optional[int],
        filters: Sequence[Filter] = (),
        sort: Optional[Sort] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        required_columns: Sequence[str] = (),
    ) -> DataResult:
        if page < 1:
            raise ValidationError("Page must be greater than or equal to 1")
        if limit <= 0:
            raise ValidationError("Limit must be greater than 0")

        if sort is not None:
            column, order = sort
            order = (order or "asc").lower()
            if order not in SORT_ORDERS:
                raise ValidationError(f"Sort order must be 'asc' or 'desc', got '{sort[1]}'")
            sort = (None if column in INDEX_SORT_KEYS else column, order)

        normalized = [normalize_filter(f) for f in filters]
        records, total = self.store.fetch(
            owner_id, dataset_id, normalized, sort, page, limit, required_columns
        )
        return DataResult(records=records, total_count=total, page=page, limit=limit)

    def count(
        self,
        owner_id: int,
        dataset_id: Optional[int],
        filters: Sequence[Filter] = (),
        required_columns: Sequence[str] = (),
    ) -> int:
        normalized = [normalize_filter(f) for f in filters]
        return self.store.count(owner_id, dataset_id, normalized, required_columns)

    def get_user_data(self, owner_id: int, options: QueryOptions) -> DataResult:
        """Rows across every dataset the owner has uploaded"""
        sort = (options.sort_by, options.sort_order) if options.sort_by else None
        return self.fetch(owner_id, None, options.filters, sort, options.page, options.limit)

    def get_dataset_data(self, owner_id: int, dataset_id: int, options: QueryOptions) -> DataResult:
        """Rows of one dataset; filters and sorts on columns it lacks are ignored"""
        dataset = self.store.get_dataset(owner_id, dataset_id)
        if dataset is None:
            raise NotFoundError("Dataset not found or access denied")

        columns = set(dataset.column_names or [])
        filters = []
        for f in options.filters:
            if f.column in columns:
                filters.append(f)
            else:
                logger.warning("Ignoring filter on unknown column '%s' for dataset %s", f.column, dataset_id)

        sort = None
        if options.sort_by and (options.sort_by in columns or options.sort_by in INDEX_SORT_KEYS):
            sort = (options.sort_by, options.sort_order)

        return self.fetch(owner_id, dataset_id, filters, sort, options.page, options.limit)

    def search(
        self,
        owner_id: int,
        query: str,
        columns: Sequence[str],
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        sort_by: Optional[str] = None,
        sort_order: str = "asc",
        dataset_id: Optional[int] = None,
    ) -> DataResult:
        """Rows whose given columns all contain the query text"""
        if not query or not isinstance(query, str):
            raise ValidationError("Search query is required and must be a string")

        options = QueryOptions(
            page=max(1, page),
            limit=min(limit, MAX_PAGE_SIZE),
            sort_by=sort_by,
            sort_order="desc" if sort_order == "desc" else "asc",
            filters=[Filter(column=c, operator="contains", value=query) for c in columns],
        )
        if dataset_id is not None:
            return self.get_dataset_data(owner_id, dataset_id, options)
        return self.get_user_data(owner_id, options)

    def list_datasets(self, owner_id: int, limit: int = 10) -> List[DatasetInfo]:
        """Upload history, newest first"""
        datasets = self.store.list_datasets(owner_id)[: min(limit, MAX_PAGE_SIZE)]
        return [DatasetInfo.model_validate(d) for d in datasets]

    def get_dashboard_stats(self, owner_id: int) -> DashboardStats:
        datasets = self.store.list_datasets(owner_id)
        total_rows, last_upload = self.store.row_stats(owner_id)
        unique_columns = {name for d in datasets for name in (d.column_names or [])}
        return DashboardStats(
            total_rows=total_rows or 0,
            total_datasets=len(datasets),
            last_upload=last_upload,
            unique_columns=len(unique_columns),
        )
