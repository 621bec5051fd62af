"""Collector for evaluation diagnostics.

Collects errors and warnings while a request is evaluated and produces a
diagnostic report for the batch.
"""

from qcgate.diagnostics.models import (
    BatchDiagnostic,
    DiagnosticError,
    DiagnosticWarning,
    ItemDiagnostic,
    ProcessingStatus,
    Stage,
)
from qcgate.errors import (
    EvaluationError,
    ExpressionError,
    MissingDependencyError,
    MissingFinalValueError,
    QCGateError,
    UnresolvedVariableError,
    ValidationError,
)
from qcgate.validation.checks import ValidationResult


class DiagnosticsCollector:
    """Collects diagnostics for one request against a batch.

    Tracks per-item errors and warnings and produces a BatchDiagnostic.
    Recoverable conditions (missing dependencies, instrument data not yet
    received) are warnings; anything that makes a formula unusable is an
    error.
    """

    def __init__(self, measurement_id: str, product_id: str) -> None:
        """Initialize the collector for a batch request.

        Args:
            measurement_id: Identifier of the batch being written.
            product_id: The product the batch measures.
        """
        self.measurement_id = measurement_id
        self.product_id = product_id

        self._batch_errors: list[DiagnosticError] = []
        self._batch_warnings: list[DiagnosticWarning] = []
        self._items: dict[str, ItemDiagnostic] = {}
        self._evaluated: set[str] = set()

    def _ensure_item(self, item_id: str) -> ItemDiagnostic:
        if item_id not in self._items:
            self._items[item_id] = ItemDiagnostic(
                item_id=item_id, status=ProcessingStatus.SUCCESS
            )
        return self._items[item_id]

    def add_error(
        self,
        stage: Stage,
        code: str,
        message: str,
        item_id: str | None = None,
        formula_name: str | None = None,
        details: dict | None = None,
    ) -> None:
        """Add an error to the diagnostics.

        Args:
            stage: Evaluation stage where the error occurred.
            code: Error code (e.g., "EXPRESSION_ERROR").
            message: Human-readable error message.
            item_id: Optional measurement item the error relates to.
            formula_name: Optional variable or formula the error relates to.
            details: Optional additional details.
        """
        error = DiagnosticError(
            stage=stage,
            code=code,
            message=message,
            item_id=item_id,
            formula_name=formula_name,
            details=details,
        )
        if item_id:
            self._ensure_item(item_id).errors.append(error)
        else:
            self._batch_errors.append(error)

    def add_warning(
        self,
        stage: Stage,
        code: str,
        message: str,
        item_id: str | None = None,
        formula_name: str | None = None,
        details: dict | None = None,
    ) -> None:
        """Add a warning to the diagnostics.

        Args:
            stage: Evaluation stage where the warning occurred.
            code: Warning code (e.g., "AWAITING_INSTRUMENT").
            message: Human-readable warning message.
            item_id: Optional measurement item the warning relates to.
            formula_name: Optional variable or formula the warning relates to.
            details: Optional additional details.
        """
        warning = DiagnosticWarning(
            stage=stage,
            code=code,
            message=message,
            item_id=item_id,
            formula_name=formula_name,
            details=details,
        )
        if item_id:
            self._ensure_item(item_id).warnings.append(warning)
        else:
            self._batch_warnings.append(warning)

    def mark_evaluated(self, item_id: str) -> None:
        """Record that an item produced a verdict."""
        self._ensure_item(item_id)
        self._evaluated.add(item_id)

    def collect_from_validation(self, validation_result: ValidationResult) -> None:
        """Collect diagnostics from a submission validation result."""
        item_id = validation_result.item_id
        self._ensure_item(item_id)
        for message in validation_result.errors:
            self.add_error(
                stage="validation", code="VALIDATION_ERROR", message=message, item_id=item_id
            )
        for message in validation_result.warnings:
            self.add_warning(
                stage="validation", code="VALIDATION_WARNING", message=message, item_id=item_id
            )

    def collect_from_exception(self, item_id: str, error: QCGateError) -> None:
        """Record why an item could not be evaluated.

        Args:
            item_id: The measurement item that failed.
            error: The error raised while evaluating it.
        """
        if isinstance(error, MissingDependencyError):
            self.add_warning(
                stage="resolution",
                code="MISSING_DEPENDENCY",
                message=str(error),
                item_id=item_id,
                details={"missing_items": error.missing_items},
            )
        elif isinstance(error, ExpressionError):
            self.add_error(
                stage="processing",
                code="EXPRESSION_ERROR",
                message=str(error),
                item_id=item_id,
                formula_name=error.formula_name,
                details={"expression": error.expression},
            )
        elif isinstance(error, UnresolvedVariableError):
            for failure in error.failures:
                self.add_error(
                    stage="resolution",
                    code="UNRESOLVED_VARIABLE",
                    message=failure.reason,
                    item_id=item_id,
                    formula_name=failure.name,
                )
        elif isinstance(error, MissingFinalValueError):
            self.add_error(
                stage="evaluation",
                code="MISSING_FINAL_VALUE",
                message=str(error),
                item_id=item_id,
            )
        elif isinstance(error, ValidationError):
            self.add_error(
                stage="validation",
                code="VALIDATION_ERROR",
                message=str(error),
                item_id=item_id,
            )
        elif isinstance(error, EvaluationError):
            self.add_error(
                stage="evaluation",
                code="EVALUATION_ERROR",
                message=str(error),
                item_id=item_id,
            )
        else:
            self.add_error(
                stage="aggregation", code="ERROR", message=str(error), item_id=item_id
            )

    def finalize(self) -> BatchDiagnostic:
        """Finalize and return the diagnostic report.

        An item fails if it has errors, is partial if it has warnings or no
        verdict, and succeeds otherwise; the request status is the worst
        item status.
        """
        for item in self._items.values():
            if item.errors:
                item.status = ProcessingStatus.FAILED
            elif item.warnings or item.item_id not in self._evaluated:
                item.status = ProcessingStatus.PARTIAL
            else:
                item.status = ProcessingStatus.SUCCESS

        items = list(self._items.values())

        if self._batch_errors or any(i.status == ProcessingStatus.FAILED for i in items):
            status = ProcessingStatus.FAILED
        elif self._batch_warnings or any(i.status == ProcessingStatus.PARTIAL for i in items):
            status = ProcessingStatus.PARTIAL
        else:
            status = ProcessingStatus.SUCCESS

        return BatchDiagnostic(
            measurement_id=self.measurement_id,
            product_id=self.product_id,
            status=status,
            items=items,
            errors=self._batch_errors,
            warnings=self._batch_warnings,
            items_total=len(items),
            items_evaluated=len(self._evaluated),
        )
