"""Request shapes and submission validation."""

from qcgate.validation.checks import ValidationResult, Validator
from qcgate.validation.models import BeforeAfterValue, ItemSubmission, Sample

__all__ = [
    "BeforeAfterValue",
    "ItemSubmission",
    "Sample",
    "ValidationResult",
    "Validator",
]
