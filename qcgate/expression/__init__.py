"""Formula language used by measurement points."""

from qcgate.expression.evaluator import (
    ExpressionEvaluator,
    parse_expression,
)
from qcgate.expression.functions import DEFAULT_FUNCTIONS
from qcgate.expression.references import (
    FormulaReferences,
    analyze,
)

__all__ = [
    "DEFAULT_FUNCTIONS",
    "ExpressionEvaluator",
    "FormulaReferences",
    "analyze",
    "parse_expression",
]
