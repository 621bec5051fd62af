"""Data models for evaluation diagnostics.

Tracks evaluation status, errors and warnings for each measurement item of
a batch request, so every item stored without a verdict has an explanation.
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

Stage = Literal["validation", "resolution", "processing", "evaluation", "aggregation"]


class ProcessingStatus(str, Enum):
    """Status of a batch request."""

    SUCCESS = "success"  # Every item evaluated, no errors
    PARTIAL = "partial"  # Some items awaiting data or carrying warnings
    FAILED = "failed"  # At least one item failed with an error


class DiagnosticError(BaseModel):
    """An error that occurred while evaluating an item."""

    stage: Stage
    code: str  # e.g. "EXPRESSION_ERROR"
    message: str
    item_id: str | None = None
    formula_name: str | None = None
    details: dict | None = None


class DiagnosticWarning(BaseModel):
    """A warning that occurred while evaluating an item."""

    stage: Stage
    code: str  # e.g. "AWAITING_INSTRUMENT"
    message: str
    item_id: str | None = None
    formula_name: str | None = None
    details: dict | None = None


class ItemDiagnostic(BaseModel):
    """Diagnostics for a single measurement item."""

    item_id: str
    status: ProcessingStatus
    errors: list[DiagnosticError] = Field(default_factory=list)
    warnings: list[DiagnosticWarning] = Field(default_factory=list)


class BatchDiagnostic(BaseModel):
    """Diagnostics for one request against a batch."""

    measurement_id: str
    product_id: str
    status: ProcessingStatus
    items: list[ItemDiagnostic] = Field(default_factory=list)
    errors: list[DiagnosticError] = Field(default_factory=list)
    warnings: list[DiagnosticWarning] = Field(default_factory=list)
    items_total: int = 0
    items_evaluated: int = 0
