"""
Chart series generation: validate options, extract (x, y, group) points from
matching records, aggregate, and project into labelled datasets.

Chart values use lenient numeric coercion (currency symbols, thousands
separators and whitespace are stripped; unparsable values count as 0), unlike
formula evaluation which is strict.
"""

from __future__ import annotations

import logging
import numbers
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

import pandas as pd

from tabular_analytics.catalog import ColumnCatalog
from tabular_analytics.errors import (
    OptimizationFallback,
    StorageError,
    ValidationError,
)
from tabular_analytics.query import RowQueryPlanner, filter_errors
from tabular_analytics.schemas import (
    ChartDataset,
    ChartOptions,
    ChartPoint,
    ChartSeries,
    Record,
    ValidationResult,
)
from tabular_analytics.utils import lenient_number

logger = logging.getLogger(__name__)

CHART_TYPES = ("line", "bar")

AGGREGATION_OPTIONS = [
    {"value": "sum", "label": "Sum", "description": "Add all values together"},
    {"value": "avg", "label": "Average", "description": "Calculate mean of all values"},
    {"value": "count", "label": "Count", "description": "Count number of data points"},
    {"value": "min", "label": "Minimum", "description": "Find the smallest value"},
    {"value": "max", "label": "Maximum", "description": "Find the largest value"},
]
AGGREGATIONS = tuple(option["value"] for option in AGGREGATION_OPTIONS)

COLOR_PALETTE = [
    "rgba(54, 162, 235, 0.8)",   # blue
    "rgba(255, 99, 132, 0.8)",   # red
    "rgba(75, 192, 192, 0.8)",   # green
    "rgba(255, 206, 86, 0.8)",   # yellow
    "rgba(153, 102, 255, 0.8)",  # purple
    "rgba(255, 159, 64, 0.8)",   # orange
    "rgba(199, 199, 199, 0.8)",  # grey
    "rgba(83, 102, 255, 0.8)",   # indigo
]
SINGLE_SERIES_FILL = "rgba(54, 162, 235, 0.6)"
SINGLE_SERIES_LINE = "rgba(54, 162, 235, 1)"

DEFAULT_POINT_LIMIT = 1000
PREVIEW_POINT_LIMIT = 50
LARGE_DATASET_ROWS = 10000

# Size-based optimization: above AUTO_AGGREGATE_ROWS default to avg and cap
# the scan; above MEDIUM_DATASET_ROWS only cap it.
AUTO_AGGREGATE_ROWS = 5000
AUTO_AGGREGATE_LIMIT = 1000
MEDIUM_DATASET_ROWS = 1000
MEDIUM_DATASET_LIMIT = 2000


class ExtractedPoint(NamedTuple):
    x: Any
    y: float
    group: Any = None


# ---------------------------------------------------------------------------
# Pure stages
# ---------------------------------------------------------------------------

def extract_points(records: List[Record], options: ChartOptions) -> List[ExtractedPoint]:
    """Read (x, y, group) from each record; rows missing x or y are dropped"""
    points: List[ExtractedPoint] = []
    for record in records:
        if not (record.has(options.x_column) and record.has(options.y_column)):
            continue
        x = record.get(options.x_column)
        group = record.get(options.group_by) if options.group_by else None
        points.append(ExtractedPoint(x, record.number(options.y_column, lenient=True), group))
    return points


def _x_sort_key(value: Any) -> Tuple[int, Any]:
    # numbers before text so mixed columns still sort
    if isinstance(value, numbers.Real) and not isinstance(value, bool):
        return (0, value)
    return (1, str(value))


def sort_points(points: List[ExtractedPoint]) -> List[ExtractedPoint]:
    return sorted(points, key=lambda p: _x_sort_key(p.x))


# aggregation value -> pandas reduction
_REDUCTIONS = {"sum": "sum", "avg": "mean", "count": "count", "min": "min", "max": "max"}


def aggregate_points(
    points: List[ExtractedPoint], aggregation: str, grouped: bool = False
) -> List[ExtractedPoint]:
    """Collapse points sharing an x value (and group value, when grouped).

    Points are keyed on the string form of x and group; each bucket keeps the
    first point's raw x and group, in first-seen order.
    """
    if aggregation not in _REDUCTIONS:
        raise ValidationError(f"Unsupported aggregation '{aggregation}'")
    if not points:
        return []

    frame = pd.DataFrame(list(points), columns=list(ExtractedPoint._fields), dtype=object)
    frame["y"] = frame["y"].astype(float)
    frame["x_key"] = frame["x"].map(str)
    frame["group_key"] = frame["group"].map(str) if grouped else ""
    keys = ["x_key", "group_key"]

    reduced = (
        frame.groupby(keys, sort=False, dropna=False)["y"]
        .agg(_REDUCTIONS[aggregation])
        .reset_index()
    )
    firsts = frame.drop_duplicates(keys)[keys + ["x", "group"]]
    merged = firsts.merge(reduced, on=keys, how="left")

    to_y = int if aggregation == "count" else float
    return [
        ExtractedPoint(row.x, to_y(row.y), row.group)
        for row in merged.itertuples(index=False)
    ]


def project_series(points: List[ExtractedPoint], options: ChartOptions) -> ChartSeries:
    is_line = options.chart_type == "line"
    border_width = 2 if is_line else 1

    if options.group_by:
        groups: Dict[str, List[ExtractedPoint]] = {}
        for p in points:
            label = str(p.group) if p.group is not None else "Unknown"
            groups.setdefault(label, []).append(p)

        datasets = []
        for i, (label, items) in enumerate(groups.items()):
            color = COLOR_PALETTE[i % len(COLOR_PALETTE)]
            datasets.append(
                ChartDataset(
                    label=label,
                    data=[ChartPoint(x=p.x, y=p.y) for p in items],
                    background_color=None if is_line else color,
                    border_color=color if is_line else None,
                    border_width=border_width,
                )
            )
        labels = sorted({str(p.x) for p in points})
        return ChartSeries(labels=labels, datasets=datasets)

    dataset = ChartDataset(
        label=f"{options.y_column} vs {options.x_column}",
        data=[ChartPoint(x=p.x, y=p.y) for p in points],
        background_color=None if is_line else SINGLE_SERIES_FILL,
        border_color=SINGLE_SERIES_LINE if is_line else None,
        border_width=border_width,
    )
    return ChartSeries(labels=[str(p.x) for p in points], datasets=[dataset])


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

def _axis_columns(options: ChartOptions) -> List[str]:
    return [c for c in (options.x_column, options.y_column) if c]


class AggregationProjector:
    def __init__(self, planner: RowQueryPlanner, catalog: ColumnCatalog):
        self.planner = planner
        self.catalog = catalog

    def validate_chart_options(self, owner_id: int, options: ChartOptions) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []

        # structure
        if not options.x_column:
            errors.append("X-axis column is required")
        if not options.y_column:
            errors.append("Y-axis column is required")
        if not options.chart_type:
            errors.append("Chart type is required")
        elif options.chart_type not in CHART_TYPES:
            errors.append('Chart type must be either "line" or "bar"')
        if options.aggregation and options.aggregation not in AGGREGATIONS:
            errors.append(f"Aggregation must be one of: {', '.join(AGGREGATIONS)}")
        if options.limit is not None and options.limit <= 0:
            errors.append("Limit must be greater than 0")
        errors.extend(filter_errors(options.filters))

        # columns
        columns = {c.name: c for c in self.catalog.list_columns(owner_id, options.dataset_id)}
        for field_name, label in (
            (options.x_column, "X-axis column"),
            (options.y_column, "Y-axis column"),
            (options.group_by, "Group by column"),
        ):
            if field_name and field_name not in columns:
                errors.append(f'{label} "{field_name}" does not exist')

        y_info = columns.get(options.y_column) if options.y_column else None
        if y_info is not None and y_info.inferred_type != "number":
            warnings.append(
                f'Y-axis column "{options.y_column}" is not numeric, values will be converted'
            )

        # data availability, only once the request itself is sound
        if not errors:
            row_count = self._plottable_count(owner_id, options)
            if row_count == 0:
                errors.append("No data available for the specified criteria")
            elif row_count > LARGE_DATASET_ROWS:
                warnings.append(
                    f"Large dataset ({row_count} rows) may impact performance. "
                    "Consider using filters or aggregation."
                )

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    def generate_chart_data(self, owner_id: int, options: ChartOptions) -> ChartSeries:
        validation = self.validate_chart_options(owner_id, options)
        if not validation.is_valid:
            raise ValidationError(
                validation.errors,
                f"Chart validation failed: {', '.join(validation.errors)}",
            )

        points = self._extract(owner_id, options)
        if options.aggregation:
            points = aggregate_points(points, options.aggregation, grouped=bool(options.group_by))
        if options.chart_type == "line":
            points = sort_points(points)
        return project_series(points, options)

    def optimize_chart_options(self, owner_id: int, options: ChartOptions) -> ChartOptions:
        """Derived copy of options bounded by the matching row count.

        The caller's options are never modified. If the count cannot be
        taken the original options are returned as-is.
        """
        try:
            row_count = self._count_for_optimization(owner_id, options)
        except OptimizationFallback as e:
            logger.warning("Chart optimization skipped: %s", e)
            return options

        updates: Dict[str, Any] = {}
        if row_count > AUTO_AGGREGATE_ROWS:
            if not options.aggregation:
                updates["aggregation"] = "avg"
            if not options.limit or options.limit > AUTO_AGGREGATE_LIMIT:
                updates["limit"] = AUTO_AGGREGATE_LIMIT
        elif row_count > MEDIUM_DATASET_ROWS:
            if not options.limit or options.limit > MEDIUM_DATASET_LIMIT:
                updates["limit"] = MEDIUM_DATASET_LIMIT

        logger.debug("Chart optimization for %d rows: %s", row_count, updates or "none")
        return options.model_copy(update=updates, deep=True)

    def get_optimized_chart_data(self, owner_id: int, options: ChartOptions) -> ChartSeries:
        return self.generate_chart_data(owner_id, self.optimize_chart_options(owner_id, options))

    def get_chart_preview(self, owner_id: int, options: ChartOptions) -> ChartSeries:
        """Chart limited to the first PREVIEW_POINT_LIMIT points"""
        preview_options = options.model_copy(update={"limit": PREVIEW_POINT_LIMIT}, deep=True)
        series = self.generate_chart_data(owner_id, preview_options)
        for dataset in series.datasets:
            dataset.data = dataset.data[:PREVIEW_POINT_LIMIT]
        if not options.group_by:
            series.labels = series.labels[:PREVIEW_POINT_LIMIT]
        return series

    def get_numeric_columns(self, owner_id: int, dataset_id: Optional[int] = None):
        return self.catalog.numeric_columns(owner_id, dataset_id)

    def _count_for_optimization(self, owner_id: int, options: ChartOptions) -> int:
        try:
            return self._plottable_count(owner_id, options)
        except (StorageError, ValidationError) as e:
            raise OptimizationFallback(str(e)) from e

    def _plottable_count(self, owner_id: int, options: ChartOptions) -> int:
        """Matching rows that carry both an x and a y value"""
        return self.planner.count(
            owner_id,
            options.dataset_id,
            options.filters,
            required_columns=_axis_columns(options),
        )

    def _extract(self, owner_id: int, options: ChartOptions) -> List[ExtractedPoint]:
        # line charts scan in x order so the row limit keeps the lowest x values
        sort = (options.x_column, "asc") if options.chart_type == "line" else None
        result = self.planner.fetch(
            owner_id,
            options.dataset_id,
            options.filters,
            sort=sort,
            page=1,
            limit=options.limit or DEFAULT_POINT_LIMIT,
            required_columns=_axis_columns(options),
        )
        return extract_points(result.records, options)
