from typing import List, Optional


class TabularAnalyticsError(Exception):
    """Base class for every error raised by the analytics engine"""


class FormulaSyntaxError(TabularAnalyticsError):
    """Formula text could not be parsed"""


class FormulaEvaluationError(TabularAnalyticsError):
    """A formula produced no value for one record"""


class ValidationError(TabularAnalyticsError):
    """Request options reference unknown columns or invalid values"""

    def __init__(self, errors, message: Optional[str] = None):
        if isinstance(errors, str):
            errors = [errors]
        self.errors: List[str] = list(errors)
        super().__init__(message or "; ".join(self.errors))


class NotFoundError(TabularAnalyticsError):
    """Target row does not exist or is not owned by the caller"""


class StorageError(TabularAnalyticsError):
    """Backing store was unreachable or a query failed"""


class OptimizationFallback(TabularAnalyticsError):
    """Size-based chart optimization could not run"""
