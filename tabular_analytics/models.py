from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, ForeignKey
from datetime import datetime
from tabular_analytics.database import Base


class Dataset(Base):
    """Stores metadata about each uploaded table"""
    __tablename__ = "datasets"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, index=True, nullable=False)
    dataset_name = Column(String(255), nullable=False)
    original_filename = Column(String(500))
    upload_timestamp = Column(DateTime, default=datetime.utcnow)
    row_count = Column(Integer, nullable=False, default=0)
    column_count = Column(Integer, nullable=False, default=0)
    column_names = Column(JSON, nullable=False)
    description = Column(Text)


class DataRow(Base):
    """Generic storage for every ingested row, fields kept as a JSON map"""
    __tablename__ = "data_rows"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, index=True, nullable=False)
    dataset_id = Column(
        Integer, ForeignKey("datasets.id", ondelete="CASCADE"), index=True, nullable=False
    )
    row_number = Column(Integer, nullable=False)
    data_json = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class CalculatedColumn(Base):
    """Stored formula definitions, evaluated at read time"""
    __tablename__ = "calculated_columns"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, index=True, nullable=False)
    dataset_id = Column(
        Integer, ForeignKey("datasets.id", ondelete="CASCADE"), index=True, nullable=False
    )
    column_name = Column(String(255), nullable=False)
    formula = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
