"""
Exceptions raised by the learning curve pipeline
"""

from typing import List, Optional


class LearningCurveError(Exception):
    """Base class for learning curve pipeline errors"""


class DocumentSchemaError(LearningCurveError, ValueError):
    """A training document does not match the expected schema"""

    def __init__(self, message: str, position: Optional[int] = None):
        self.position = position
        if position is not None:
            message = f"Document {position}: {message}"
        super().__init__(message)


class UnitTrainingError(LearningCurveError):
    """Training failed for a single (fold, portion) unit"""

    def __init__(self, fold: int, portion: float, cause: BaseException):
        self.fold = fold
        self.portion = portion
        self.cause = cause
        super().__init__(
            f"Training failed for fold={fold}, portion={portion}: "
            f"{type(cause).__name__}: {cause}"
        )


class FoldTrainingError(LearningCurveError):
    """One or more units failed and the failure policy is abort"""

    def __init__(self, failures: List[UnitTrainingError]):
        self.failures = failures
        coords = ", ".join(f"(fold={f.fold}, portion={f.portion})" for f in failures)
        super().__init__(f"{len(failures)} training unit(s) failed: {coords}")


class UnknownMetricTypeError(LearningCurveError):
    """A metric kind has no learning curve mapping"""

    def __init__(self, label: str, metric_type, portion: Optional[float] = None):
        self.label = label
        self.metric_type = metric_type
        self.portion = portion
        coords = f"label={label!r}" if portion is None else f"label={label!r}, portion={portion}"
        super().__init__(f"No learning curve mapping for metric {metric_type} ({coords})")
