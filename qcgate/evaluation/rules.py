"""Rule evaluator: MIN / MAX / BETWEEN acceptance checks."""

import math
from decimal import Decimal
from typing import Any, assert_never

from qcgate.registry.models import RuleEvaluationSetting, RuleType


def _decimal(value: float) -> Decimal:
    """Exact decimal of the shortest repr, so 14.4 - 0.3 is 14.1."""
    return Decimal(repr(float(value)))


def _numeric(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    if math.isnan(number):
        return None
    return number


class RuleEvaluator:
    """Checks a scalar against an acceptance rule.

    A total function: null, non-numeric or NaN input is never acceptable and
    never raises.
    """

    def evaluate(self, value: Any, rule: RuleEvaluationSetting | None) -> bool:
        """Whether ``value`` satisfies ``rule``.

        MIN accepts ``value >= threshold``, MAX ``value <= threshold`` and
        BETWEEN ``threshold - tolerance_minus <= value <= threshold +
        tolerance_plus``. Bounds are computed in decimal so limits written
        in the rule are themselves acceptable.
        """
        number = _numeric(value)
        if number is None or rule is None:
            return False
        if math.isinf(number):
            return False

        measured = _decimal(number)
        threshold = _decimal(rule.value)

        match rule.rule:
            case RuleType.MIN:
                return measured >= threshold
            case RuleType.MAX:
                return measured <= threshold
            case RuleType.BETWEEN:
                lower = threshold - _decimal(rule.tolerance_minus or 0.0)
                upper = threshold + _decimal(rule.tolerance_plus or 0.0)
                return lower <= measured <= upper
            case _:
                assert_never(rule.rule)
