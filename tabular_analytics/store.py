"""
SQLAlchemy-backed row store.

Records keep their fields in a JSON column. Every predicate and sort key is
addressed with JSON_EXTRACT and a bound JSON path parameter, so the extracted
value keeps its JSON type (numbers compare and sort as numbers). Neither column
names nor filter values are ever spliced into SQL text.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Sequence, Tuple, TypeVar

import pandas as pd
from sqlalchemy import Float, String, cast, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tabular_analytics import crud
from tabular_analytics.errors import NotFoundError, StorageError
from tabular_analytics.models import Dataset, DataRow
from tabular_analytics.schemas import Filter, Record

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (column, "asc" | "desc"); column None means ingestion order
Sort = Tuple[Optional[str], str]


# ---------------------------------------------------------------------------
# Bound JSON path expressions
# ---------------------------------------------------------------------------

def json_path(column: str) -> str:
    """SQLite JSON path for a top-level key, sent as a bound parameter"""
    return '$."%s"' % column


def field_value(column: str):
    """Native field value: JSON_EXTRACT(data_json, ?) keeps numbers numeric"""
    return func.json_extract(DataRow.data_json, json_path(column))


def field_text(column: str):
    return cast(field_value(column), String)


def filter_clause(f: Filter):
    if f.operator == "eq":
        return field_value(f.column) == f.value
    if f.operator == "gt":
        return cast(field_value(f.column), Float) > f.value
    if f.operator == "lt":
        return cast(field_value(f.column), Float) < f.value
    if f.operator == "contains":
        return field_text(f.column).contains(str(f.value), autoescape=True)
    raise ValueError(f"Unsupported filter operator: {f.operator}")


def to_record(row: DataRow) -> Record:
    return Record(
        id=row.id,
        owner_id=row.owner_id,
        dataset_id=row.dataset_id,
        index=row.row_number,
        fields=dict(row.data_json or {}),
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class RowStore:
    """Row storage over one SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def _scoped_query(
        self,
        owner_id: int,
        dataset_id: Optional[int],
        filters: Sequence[Filter],
        required_columns: Sequence[str] = (),
    ):
        query = self.db.query(DataRow).filter(DataRow.owner_id == owner_id)
        if dataset_id is not None:
            query = query.filter(DataRow.dataset_id == dataset_id)
        for f in filters:
            query = query.filter(filter_clause(f))
        for column in required_columns:
            query = query.filter(field_value(column).is_not(None))
        return query

    def fetch(
        self,
        owner_id: int,
        dataset_id: Optional[int],
        filters: Sequence[Filter],
        sort: Optional[Sort],
        page: int,
        limit: int,
        required_columns: Sequence[str] = (),
    ) -> Tuple[List[Record], int]:
        """Return one page of records plus the total matching count.

        The total comes from a separate count query with the same filters.
        Rows lacking any of ``required_columns`` (absent or null) are skipped.
        """
        query = self._scoped_query(owner_id, dataset_id, filters, required_columns)

        order_by = []
        descending = bool(sort) and sort[1] == "desc"
        if sort and sort[0]:
            key = field_value(sort[0])
            order_by.append(key.desc() if descending else key.asc())
            # ties keep ingestion order
            descending = False
        ingestion = (DataRow.dataset_id, DataRow.row_number, DataRow.id)
        order_by.extend(c.desc() if descending else c for c in ingestion)

        offset = (page - 1) * limit
        try:
            rows = query.order_by(*order_by).offset(offset).limit(limit).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Row fetch failed for owner %s: %s", owner_id, e)
            raise StorageError(f"Failed to retrieve rows: {e}") from e

        total = self.count(owner_id, dataset_id, filters, required_columns)
        logger.debug("Fetched %d of %d rows (page=%d, limit=%d)", len(rows), total, page, limit)
        return [to_record(r) for r in rows], total

    def count(
        self,
        owner_id: int,
        dataset_id: Optional[int],
        filters: Sequence[Filter],
        required_columns: Sequence[str] = (),
    ) -> int:
        try:
            return self._scoped_query(owner_id, dataset_id, filters, required_columns).count()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Row count failed for owner %s: %s", owner_id, e)
            raise StorageError(f"Failed to count rows: {e}") from e

    def run_in_transaction(self, fn: Callable[[Session], T]) -> T:
        """Apply fn's writes all-or-nothing"""
        try:
            result = fn(self.db)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Transaction rolled back: %s", e)
            raise StorageError(f"Transaction failed: {e}") from e
        except Exception:
            self.db.rollback()
            raise
        return result

    # -- datasets ----------------------------------------------------------

    def get_dataset(self, owner_id: int, dataset_id: int) -> Optional[Dataset]:
        try:
            return crud.get_dataset(self.db, owner_id, dataset_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Failed to load dataset {dataset_id}: {e}") from e

    def list_datasets(self, owner_id: int) -> List[Dataset]:
        try:
            return crud.list_datasets(self.db, owner_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Failed to list datasets: {e}") from e

    def sample_values(self, dataset_id: int, column: str, limit: int = 10) -> List[Any]:
        """First non-null values of one column, in ingestion order"""
        try:
            rows = (
                self.db.query(DataRow.data_json)
                .filter(
                    DataRow.dataset_id == dataset_id,
                    field_value(column).is_not(None),
                )
                .order_by(DataRow.row_number)
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Failed to sample column '{column}': {e}") from e
        return [data[column] for (data,) in rows if data.get(column) is not None]

    def row_stats(self, owner_id: int):
        try:
            return crud.get_row_stats(self.db, owner_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Failed to compute row statistics: {e}") from e

    def ingest_dataframe(
        self,
        owner_id: int,
        dataset_name: str,
        df: pd.DataFrame,
        original_filename: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Dataset:
        """Store an already-parsed table as a new dataset in one transaction"""
        columns = [str(c) for c in df.columns]

        def _write(db: Session) -> Dataset:
            dataset = crud.create_dataset_metadata(
                db,
                {
                    "owner_id": owner_id,
                    "dataset_name": dataset_name,
                    "original_filename": original_filename,
                    "row_count": len(df),
                    "column_count": len(columns),
                    "column_names": columns,
                    "description": description,
                },
            )
            crud.insert_data_rows(db, dataset, df)
            return dataset

        dataset = self.run_in_transaction(_write)
        logger.info(
            "Ingested dataset %s '%s' (%d rows, %d columns)",
            dataset.id, dataset_name, len(df), len(columns),
        )
        return dataset

    def delete_dataset(self, owner_id: int, dataset_id: int) -> None:
        deleted = self.run_in_transaction(
            lambda db: crud.delete_dataset_data(db, owner_id, dataset_id)
        )
        if deleted == 0:
            raise NotFoundError("Dataset not found or access denied")
        logger.info("Deleted dataset %s", dataset_id)

    def calculated_columns(self, owner_id: int, dataset_id: Optional[int] = None):
        try:
            return crud.list_calculated_columns(self.db, owner_id, dataset_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Failed to retrieve calculated columns: {e}") from e
