from typing import List, Optional

import pandas as pd
from sqlalchemy import func
from sqlalchemy.orm import Session

from tabular_analytics.models import Dataset, DataRow, CalculatedColumn
from tabular_analytics.utils import to_json_value


def get_dataset(db: Session, owner_id: int, dataset_id: int) -> Optional[Dataset]:
    """Get dataset by id, only if owned by owner_id"""
    return (
        db.query(Dataset)
        .filter(Dataset.id == dataset_id, Dataset.owner_id == owner_id)
        .first()
    )


def list_datasets(db: Session, owner_id: int) -> List[Dataset]:
    """List an owner's datasets, newest first"""
    return (
        db.query(Dataset)
        .filter(Dataset.owner_id == owner_id)
        .order_by(Dataset.upload_timestamp.desc(), Dataset.id.desc())
        .all()
    )


def create_dataset_metadata(db: Session, metadata_data: dict) -> Dataset:
    """Create new dataset metadata"""
    metadata = Dataset(**metadata_data)
    db.add(metadata)
    db.flush()
    return metadata


def insert_data_rows(db: Session, dataset: Dataset, df: pd.DataFrame) -> int:
    """Insert one data row per DataFrame row and return the count"""
    inserted = 0
    for idx, row in enumerate(df.to_dict(orient="records")):
        row_dict = {str(k): to_json_value(v) for k, v in row.items()}
        db.add(
            DataRow(
                owner_id=dataset.owner_id,
                dataset_id=dataset.id,
                row_number=idx,
                data_json=row_dict,
            )
        )
        inserted += 1
    return inserted


def delete_dataset_data(db: Session, owner_id: int, dataset_id: int) -> int:
    """Delete all data associated with a dataset"""
    db.query(DataRow).filter(
        DataRow.dataset_id == dataset_id, DataRow.owner_id == owner_id
    ).delete(synchronize_session=False)
    db.query(CalculatedColumn).filter(
        CalculatedColumn.dataset_id == dataset_id, CalculatedColumn.owner_id == owner_id
    ).delete(synchronize_session=False)
    return (
        db.query(Dataset)
        .filter(Dataset.id == dataset_id, Dataset.owner_id == owner_id)
        .delete(synchronize_session=False)
    )


def get_row_stats(db: Session, owner_id: int):
    """Row total and latest row timestamp for an owner"""
    return (
        db.query(func.count(DataRow.id), func.max(DataRow.created_at))
        .filter(DataRow.owner_id == owner_id)
        .one()
    )


def create_calculated_column(
    db: Session, owner_id: int, dataset_id: int, column_name: str, formula: str
) -> CalculatedColumn:
    column = CalculatedColumn(
        owner_id=owner_id,
        dataset_id=dataset_id,
        column_name=column_name,
        formula=formula,
    )
    db.add(column)
    db.flush()
    return column


def list_calculated_columns(
    db: Session, owner_id: int, dataset_id: Optional[int] = None
) -> List[CalculatedColumn]:
    query = db.query(CalculatedColumn).filter(CalculatedColumn.owner_id == owner_id)
    if dataset_id is not None:
        query = query.filter(CalculatedColumn.dataset_id == dataset_id)
    return query.order_by(
        CalculatedColumn.created_at.desc(), CalculatedColumn.id.desc()
    ).all()


def delete_calculated_column(db: Session, owner_id: int, column_id: int) -> int:
    """Delete a calculated column and return the number of rows removed"""
    return (
        db.query(CalculatedColumn)
        .filter(CalculatedColumn.id == column_id, CalculatedColumn.owner_id == owner_id)
        .delete(synchronize_session=False)
    )
