import math
import numbers
import re
from datetime import date, datetime
from typing import Any, Iterable, Optional

import pandas as pd

# Plain decimal literal only: no thousands separators, no currency, no nan/inf
_STRICT_NUMBER = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")
_NUMBER_FORMATTING = re.compile(r"[\s,$€£¥]")

# Majority share of samples needed before a column is typed number/date
TYPE_INFERENCE_RATIO = 0.8


def strict_number(value: Any) -> Optional[float]:
    """Coerce a field value for formula evaluation.

    Numbers pass through; text must be a plain decimal literal once surrounding
    whitespace is trimmed. Anything else (absent, bool, formatted text) is None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, numbers.Real):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        if _STRICT_NUMBER.match(text):
            return float(text)
    return None


def lenient_number(value: Any) -> float:
    """Coerce a field value for chart extraction; unparsable values become 0"""
    if isinstance(value, numbers.Real):
        return float(value) if math.isfinite(value) else 0.0
    if isinstance(value, str):
        cleaned = _NUMBER_FORMATTING.sub("", value)
        if _STRICT_NUMBER.match(cleaned):
            return float(cleaned)
    return 0.0


def to_json_value(value: Any) -> Any:
    """Convert a DataFrame cell into something the JSON column can store"""
    if value is None or pd.isna(value):
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if hasattr(value, "item"):
        return value.item()
    return value


def infer_value_type(values: Iterable[Any]) -> str:
    """Infer a column type from sampled non-null values"""
    series = pd.Series(list(values), dtype=object)
    if series.empty:
        return "text"

    numeric = pd.to_numeric(series, errors="coerce")
    if numeric.notna().mean() > TYPE_INFERENCE_RATIO:
        return "number"

    text = series[series.map(lambda v: isinstance(v, str))]
    if not text.empty:
        dates = pd.to_datetime(text, errors="coerce", format="mixed")
        if dates.notna().sum() / len(series) > TYPE_INFERENCE_RATIO:
            return "date"

    return "text"
