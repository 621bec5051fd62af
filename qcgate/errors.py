"""Error taxonomy for the measurement evaluation engine.

Every error names the measurement item and, where one is involved, the
variable or formula that caused it. Evaluation-time errors abort a whole
batch submission; ``MissingDependencyError`` is the recoverable one that asks
the caller for more input.
"""

from dataclasses import dataclass, field


class QCGateError(Exception):
    """Base class for all qcgate errors."""

    pass


class SchemaError(QCGateError):
    """Raised when a measurement-point definition is malformed.

    Detected when a product spec is loaded, before any evaluation.
    """

    def __init__(self, product_id: str | None, problems: list[str]) -> None:
        self.product_id = product_id
        self.problems = list(problems)
        subject = f"product {product_id}" if product_id else "measurement schema"
        super().__init__(f"Invalid {subject}: " + "; ".join(self.problems))


class ValidationError(QCGateError):
    """Raised when a request has the wrong shape for its measurement point."""

    def __init__(self, message: str, item_id: str | None = None) -> None:
        self.item_id = item_id
        prefix = f"[{item_id}] " if item_id else ""
        super().__init__(f"{prefix}{message}")


class MeasurementPointNotFoundError(ValidationError):
    """Raised when a submission names a measurement point the product lacks."""

    def __init__(self, product_id: str, item_id: str) -> None:
        self.product_id = product_id
        super().__init__(
            f"Measurement point not found in product {product_id}", item_id=item_id
        )


class MissingDependencyError(QCGateError):
    """Raised when an item needs data from items that were not supplied yet."""

    def __init__(self, item_id: str, missing_items: list[str]) -> None:
        self.item_id = item_id
        self.missing_items = list(missing_items)
        super().__init__(
            f"[{item_id}] requires data from: {', '.join(self.missing_items)}. "
            "Submit those measurement items first."
        )


class EvaluationError(QCGateError):
    """Base class for fatal errors raised while evaluating an item."""

    def __init__(self, message: str, item_id: str | None = None) -> None:
        self.item_id = item_id
        self.reason = message
        prefix = f"[{item_id}] " if item_id else ""
        super().__init__(f"{prefix}{message}")


class ExpressionError(EvaluationError):
    """Raised when a formula cannot be parsed or evaluated."""

    def __init__(
        self,
        message: str,
        expression: str | None = None,
        item_id: str | None = None,
        formula_name: str | None = None,
    ) -> None:
        self.expression = expression
        self.formula_name = formula_name
        detail = message
        if formula_name:
            detail = f"formula '{formula_name}': {detail}"
        if expression is not None:
            detail = f"{detail} (in '{expression}')"
        super().__init__(detail, item_id=item_id)
        self.reason = message

    def in_context(
        self, item_id: str | None = None, formula_name: str | None = None
    ) -> "ExpressionError":
        """Return a copy of this error attributed to an item and formula."""
        return ExpressionError(
            self.reason,
            expression=self.expression,
            item_id=item_id or self.item_id,
            formula_name=formula_name or self.formula_name,
        )


@dataclass(frozen=True)
class VariableFailure:
    """One variable that could not be resolved."""

    name: str
    reason: str
    missing_items: list[str] = field(default_factory=list)


class UnresolvedVariableError(EvaluationError):
    """Raised when one or more declared variables could not be computed."""

    def __init__(self, failures: list[VariableFailure], item_id: str | None = None) -> None:
        self.failures = list(failures)
        details = ", ".join(f"{f.name} ({f.reason})" for f in self.failures)
        super().__init__(f"Unresolved variables: {details}", item_id=item_id)

    @property
    def missing_items(self) -> list[str]:
        """Cross-item dependencies that caused failures, in first-seen order."""
        seen: list[str] = []
        for failure in self.failures:
            for name in failure.missing_items:
                if name not in seen:
                    seen.append(name)
        return seen


class MissingFinalValueError(EvaluationError):
    """Raised when a JOINT item has no usable final value."""

    pass


class BatchStateError(QCGateError):
    """Raised when a batch is written to in a state that forbids it."""

    def __init__(self, batch_id: str, status: str, action: str) -> None:
        self.batch_id = batch_id
        self.status = status
        super().__init__(f"Cannot {action} batch {batch_id} in status {status}")
