from tabular_analytics.calculations import CalculatedColumnManager
from tabular_analytics.catalog import ColumnCatalog
from tabular_analytics.charts import AggregationProjector
from tabular_analytics.errors import (
    FormulaEvaluationError,
    FormulaSyntaxError,
    NotFoundError,
    OptimizationFallback,
    StorageError,
    TabularAnalyticsError,
    ValidationError,
)
from tabular_analytics.formula import (
    Formula,
    execute_formula,
    generate_preview,
    parse_formula,
    validate_formula,
)
from tabular_analytics.query import RowQueryPlanner, flatten_records
from tabular_analytics.store import RowStore

__all__ = [
    "AggregationProjector",
    "CalculatedColumnManager",
    "ColumnCatalog",
    "Formula",
    "FormulaEvaluationError",
    "FormulaSyntaxError",
    "NotFoundError",
    "OptimizationFallback",
    "RowQueryPlanner",
    "RowStore",
    "StorageError",
    "TabularAnalyticsError",
    "ValidationError",
    "execute_formula",
    "flatten_records",
    "generate_preview",
    "parse_formula",
    "validate_formula",
]
