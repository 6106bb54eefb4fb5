from typing import Dict, List, Optional

from tabular_analytics.schemas import ColumnDescriptor
from tabular_analytics.store import RowStore
from tabular_analytics.utils import infer_value_type

SAMPLE_SIZE = 10

# Text columns whose names suggest they hold numbers
NUMERIC_NAME_HINTS = ("price", "volume", "amount", "quantity", "value")


class ColumnCatalog:
    """Known columns and their sampled types for an owner or one dataset.

    Types are advisory: they come from sampling stored records, not from any
    declared schema.
    """

    def __init__(self, store: RowStore, sample_size: int = SAMPLE_SIZE):
        self.store = store
        self.sample_size = sample_size

    def list_columns(self, owner_id: int, dataset_id: Optional[int] = None) -> List[ColumnDescriptor]:
        if dataset_id is not None:
            dataset = self.store.get_dataset(owner_id, dataset_id)
            datasets = [dataset] if dataset else []
        else:
            datasets = self.store.list_datasets(owner_id)

        types: Dict[str, str] = {}
        for dataset in datasets:
            for name in dataset.column_names or []:
                if name not in types:
                    samples = self.store.sample_values(dataset.id, name, self.sample_size)
                    types[name] = infer_value_type(samples)

        return [
            ColumnDescriptor(name=name, inferred_type=types[name], nullable=True)
            for name in sorted(types)
        ]

    def column_names(self, owner_id: int, dataset_id: Optional[int] = None) -> List[str]:
        return [c.name for c in self.list_columns(owner_id, dataset_id)]

    def numeric_columns(self, owner_id: int, dataset_id: Optional[int] = None) -> List[ColumnDescriptor]:
        return [
            c
            for c in self.list_columns(owner_id, dataset_id)
            if c.inferred_type == "number"
            or any(hint in c.name.lower() for hint in NUMERIC_NAME_HINTS)
        ]
