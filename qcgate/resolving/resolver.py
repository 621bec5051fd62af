"""Variable resolver for measurement points.

Turns a point's declared variables into numeric bindings. Declarations are
resolved strictly in declared order; that order is the dependency order and
is checked for forward references when the product is loaded.
"""

from collections.abc import Mapping
from typing import assert_never

import structlog

from qcgate.errors import ExpressionError, UnresolvedVariableError, VariableFailure
from qcgate.expression import ExpressionEvaluator, analyze
from qcgate.registry.models import VariableDecl, VariableType
from qcgate.resolving.context import BatchLookup

logger = structlog.get_logger(__name__)


class VariableResolver:
    """Resolves declared variables into numeric bindings.

    FIXED copies the literal, MANUAL takes the caller's input, FORMULA
    evaluates with every variable resolved so far plus array bindings for
    the items named in ``AVG()``. Resolution is all-or-nothing: every
    failure is collected and reported together.
    """

    def __init__(self, evaluator: ExpressionEvaluator | None = None) -> None:
        self.evaluator = evaluator or ExpressionEvaluator()

    def _average_bindings(
        self,
        names: tuple[str, ...],
        batch_context: BatchLookup | None,
    ) -> tuple[dict[str, tuple[float, ...]], list[str]]:
        """Array bindings for AVG() arguments, plus the names with no data."""
        arrays: dict[str, tuple[float, ...]] = {}
        missing: list[str] = []
        for name in names:
            values = batch_context.lookup_values(name) if batch_context else None
            if values:
                arrays[name] = tuple(values)
                continue
            average = batch_context.lookup_average(name) if batch_context else None
            if average is not None:
                arrays[name] = (average,)
            else:
                missing.append(name)
        return arrays, missing

    def resolve(
        self,
        variables: list[VariableDecl],
        manual_inputs: Mapping[str, float],
        batch_context: BatchLookup | None = None,
        item_id: str | None = None,
    ) -> dict[str, float]:
        """Resolve variables in declared order.

        Args:
            variables: The point's variable declarations.
            manual_inputs: Values supplied for MANUAL variables.
            batch_context: Lookup for items referenced through ``AVG()``.
            item_id: The measurement item, for error attribution.

        Returns:
            Mapping of variable name to value.

        Raises:
            UnresolvedVariableError: If any variable could not be computed.
        """
        resolved: dict[str, float] = {}
        failures: dict[str, VariableFailure] = {}

        for decl in variables:
            match decl.type:
                case VariableType.FIXED:
                    if decl.value is None:
                        failures[decl.name] = VariableFailure(decl.name, "fixed value not set")
                    else:
                        resolved[decl.name] = float(decl.value)

                case VariableType.MANUAL:
                    value = manual_inputs.get(decl.name)
                    if value is None:
                        failures[decl.name] = VariableFailure(decl.name, "missing manual input")
                    else:
                        resolved[decl.name] = float(value)

                case VariableType.FORMULA:
                    failure = self._resolve_formula(
                        decl, resolved, failures, batch_context, item_id
                    )
                    if failure is not None:
                        failures[decl.name] = failure

                case _:
                    assert_never(decl.type)

        if failures:
            error = UnresolvedVariableError(list(failures.values()), item_id=item_id)
            logger.debug("variables_unresolved", item=item_id, failures=list(failures))
            raise error
        return resolved

    def _resolve_formula(
        self,
        decl: VariableDecl,
        resolved: dict[str, float],
        failures: dict[str, VariableFailure],
        batch_context: BatchLookup | None,
        item_id: str | None,
    ) -> VariableFailure | None:
        """Evaluate one FORMULA variable into ``resolved``; return its failure, if any."""
        if not decl.formula:
            return VariableFailure(decl.name, "formula not set")
        try:
            references = analyze(decl.formula)
        except ExpressionError as e:
            return VariableFailure(decl.name, f"{e.reason} in '{decl.formula}'")

        blocked = [name for name in references.names if name in failures]
        if blocked:
            inherited: list[str] = []
            for name in blocked:
                for missing in failures[name].missing_items:
                    if missing not in inherited:
                        inherited.append(missing)
            return VariableFailure(
                decl.name,
                f"depends on unresolved variable(s): {', '.join(blocked)}",
                inherited,
            )

        arrays, missing = self._average_bindings(references.averaged, batch_context)
        if missing:
            return VariableFailure(
                decl.name,
                f"no recorded data for {', '.join(missing)}",
                missing,
            )

        try:
            resolved[decl.name] = self.evaluator.evaluate(decl.formula, {**resolved, **arrays})
        except ExpressionError as e:
            return VariableFailure(decl.name, f"{e.reason} in '{decl.formula}'")
        return None
