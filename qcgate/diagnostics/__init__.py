"""Diagnostics collection for batch evaluation.

Tracks errors and warnings for each measurement item of a request.
"""

from qcgate.diagnostics.collector import DiagnosticsCollector
from qcgate.diagnostics.models import (
    BatchDiagnostic,
    DiagnosticError,
    DiagnosticWarning,
    ItemDiagnostic,
    ProcessingStatus,
)

__all__ = [
    "DiagnosticsCollector",
    "DiagnosticError",
    "DiagnosticWarning",
    "BatchDiagnostic",
    "ItemDiagnostic",
    "ProcessingStatus",
]
