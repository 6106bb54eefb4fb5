# ==================== tabular_analytics/schemas.py ====================
from pydantic import BaseModel, ConfigDict, Field, computed_field
from typing import Optional, Dict, Any, List
from datetime import datetime

from tabular_analytics.config import DEFAULT_PAGE_SIZE
from tabular_analytics.utils import lenient_number, strict_number


# ---------------------------------------------------------------------------
# Records & columns
# ---------------------------------------------------------------------------

class Record(BaseModel):
    """One ingested row. ``fields`` is schema-on-read: keys vary per dataset."""

    id: int
    owner_id: int
    dataset_id: int
    index: int
    fields: Dict[str, Any] = Field(default_factory=dict)

    def has(self, column: str) -> bool:
        return self.fields.get(column) is not None

    def get(self, column: str, default: Any = None) -> Any:
        return self.fields.get(column, default)

    def number(self, column: str, lenient: bool = False) -> Optional[float]:
        """Numeric view of a field.

        Strict mode returns None for absent or non-numeric values; lenient mode
        strips currency and thousands formatting and falls back to 0.
        """
        value = self.fields.get(column)
        if lenient:
            return lenient_number(value)
        return strict_number(value)


class ColumnDescriptor(BaseModel):
    name: str
    inferred_type: str = "text"
    nullable: bool = True


class DatasetInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    dataset_name: str
    original_filename: Optional[str] = None
    upload_timestamp: Optional[datetime] = None
    row_count: int
    column_count: int
    column_names: List[str]


# ---------------------------------------------------------------------------
# Row queries
# ---------------------------------------------------------------------------

class Filter(BaseModel):
    column: str
    operator: str  # eq, gt, lt, contains
    value: Any = None


class QueryOptions(BaseModel):
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE
    sort_by: Optional[str] = None
    sort_order: str = "asc"
    filters: List[Filter] = Field(default_factory=list)


class DataResult(BaseModel):
    records: List[Record]
    total_count: int
    page: int
    limit: int

    @computed_field
    @property
    def total_pages(self) -> int:
        return -(-self.total_count // self.limit) if self.limit else 0

    @computed_field
    @property
    def has_next(self) -> bool:
        return self.page * self.limit < self.total_count

    @computed_field
    @property
    def has_prev(self) -> bool:
        return self.page > 1


class DashboardStats(BaseModel):
    total_rows: int
    total_datasets: int
    last_upload: Optional[datetime] = None
    unique_columns: int


# ---------------------------------------------------------------------------
# Formulas & calculated columns
# ---------------------------------------------------------------------------

class ValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class CalculationResult(BaseModel):
    values: List[Optional[float]]
    errors: List[str] = Field(default_factory=list)


class FormulaPreview(BaseModel):
    column_name: str = ""
    formula: str
    preview_values: List[Optional[float]] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class CalculatedColumnInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    owner_id: int
    dataset_id: int
    name: str = Field(validation_alias="column_name")
    formula: str
    created_at: datetime


# ---------------------------------------------------------------------------
# Charts
# ---------------------------------------------------------------------------

class ChartOptions(BaseModel):
    dataset_id: Optional[int] = None
    x_column: Optional[str] = None
    y_column: Optional[str] = None
    chart_type: Optional[str] = None  # line, bar
    aggregation: Optional[str] = None  # sum, avg, count, min, max
    group_by: Optional[str] = None
    limit: Optional[int] = None
    filters: List[Filter] = Field(default_factory=list)


class ChartPoint(BaseModel):
    x: Any
    y: float


class ChartDataset(BaseModel):
    label: str
    data: List[ChartPoint]
    background_color: Optional[str] = None
    border_color: Optional[str] = None
    border_width: int = 1


class ChartSeries(BaseModel):
    labels: List[str]
    datasets: List[ChartDataset]
