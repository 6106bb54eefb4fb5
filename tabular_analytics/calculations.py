import logging
from typing import Dict, List, Mapping, Optional, Sequence, Union

from tabular_analytics import crud
from tabular_analytics.catalog import ColumnCatalog
from tabular_analytics.errors import NotFoundError, ValidationError
from tabular_analytics.formula import execute_formula, parse_formula, validate_formula
from tabular_analytics.schemas import CalculatedColumnInfo, CalculationResult, Record
from tabular_analytics.store import RowStore

logger = logging.getLogger(__name__)


class CalculatedColumnManager:
    """CRUD over stored formulas. Values are computed on read, never stored."""

    def __init__(self, store: RowStore, catalog: Optional[ColumnCatalog] = None):
        self.store = store
        self.catalog = catalog or ColumnCatalog(store)

    def save_calculated_column(
        self, owner_id: int, dataset_id: int, name: str, formula_text: str
    ) -> CalculatedColumnInfo:
        # syntax only: referenced columns are checked when the formula is used
        parse_formula(formula_text)

        name = (name or "").strip()
        if not name:
            raise ValidationError("Column name is required")
        if self.store.get_dataset(owner_id, dataset_id) is None:
            raise NotFoundError("Dataset not found or access denied")

        column = self.store.run_in_transaction(
            lambda db: crud.create_calculated_column(db, owner_id, dataset_id, name, formula_text)
        )
        logger.info("Saved calculated column %s '%s' on dataset %s", column.id, name, dataset_id)
        return CalculatedColumnInfo.model_validate(column)

    def list_calculated_columns(
        self, owner_id: int, dataset_id: Optional[int] = None
    ) -> List[CalculatedColumnInfo]:
        columns = self.store.calculated_columns(owner_id, dataset_id)
        return [CalculatedColumnInfo.model_validate(c) for c in columns]

    def delete_calculated_column(self, owner_id: int, column_id: int) -> None:
        deleted = self.store.run_in_transaction(
            lambda db: crud.delete_calculated_column(db, owner_id, column_id)
        )
        if deleted == 0:
            raise NotFoundError("Calculated column not found or access denied")
        logger.info("Deleted calculated column %s", column_id)

    def evaluate_columns(
        self,
        owner_id: int,
        dataset_id: int,
        records: Sequence[Union[Record, Mapping]],
    ) -> Dict[str, CalculationResult]:
        """Evaluate every stored formula of a dataset over the given records.

        Each formula is re-validated against the dataset's current columns;
        one that no longer validates yields all-None values plus its errors.
        """
        known = self.catalog.column_names(owner_id, dataset_id)
        results: Dict[str, CalculationResult] = {}
        for column in self.list_calculated_columns(owner_id, dataset_id):
            validation = validate_formula(column.formula, known)
            if not validation.is_valid:
                logger.warning(
                    "Calculated column '%s' is no longer valid: %s", column.name, validation.errors
                )
                results[column.name] = CalculationResult(
                    values=[None] * len(records), errors=validation.errors
                )
                continue
            results[column.name] = execute_formula(column.formula, records)
        return results
