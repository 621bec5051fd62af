"""Expression evaluator for measurement formulas.

Formulas use a small arithmetic language: numeric literals, identifiers,
``+ - * / ^``, parentheses, comparisons, ``&&``/``||``/``!`` and function
calls such as ``sqrt(x)``, ``pow(a, b)``, ``AVG(item)`` and the special form
``if(cond, then, else)``.

The text is normalized into a Python expression and parsed with ``ast``; the
resulting tree is walked node by node, so nothing is ever passed to
``eval()``. Only the node types listed here are accepted.

Evaluation is stateless. Every call receives its own bindings, and the
evaluator never stores values between calls.
"""

import ast
import math
import operator
import re
from collections.abc import Callable, Mapping, Sequence
from functools import lru_cache
from types import MappingProxyType
from typing import Any

from qcgate.errors import ExpressionError
from qcgate.expression.functions import DEFAULT_FUNCTIONS

Bindings = Mapping[str, float | Sequence[float]]

IF_FUNCTION = "if"
_IF_NAME = "__if__"
_IF_CALL = re.compile(r"\bif\s*\(")
_NOT = re.compile(r"!(?!=)")

_BINARY_OPS: dict[type, Callable[[float, float], float]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Pow: operator.pow,
}

_COMPARE_OPS: dict[type, Callable[[float, float], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
}


def normalize(expression: str) -> str:
    """Rewrite formula syntax into the equivalent Python expression text."""
    text = expression.strip()
    text = text.replace("^", "**")
    text = text.replace("&&", " and ").replace("||", " or ")
    text = _NOT.sub(" not ", text)
    return _IF_CALL.sub(f"{_IF_NAME}(", text)


def function_name(node: ast.Call) -> str:
    """Formula-level name of a call node (``if`` for the special form)."""
    name = node.func.id  # type: ignore[attr-defined]
    return IF_FUNCTION if name == _IF_NAME else name


@lru_cache(maxsize=2048)
def parse_expression(expression: str) -> ast.expr:
    """Parse a formula into a checked AST.

    Raises:
        ExpressionError: On empty input, syntax errors or unsupported syntax.
    """
    if not expression or not expression.strip():
        raise ExpressionError("Empty expression", expression=expression)
    try:
        tree = ast.parse(normalize(expression), mode="eval")
    except SyntaxError as e:
        raise ExpressionError(f"Syntax error: {e.msg}", expression=expression) from e
    _check_node(tree.body, expression)
    return tree.body


def _check_node(node: ast.AST, expression: str) -> None:
    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise ExpressionError(f"Unsupported literal {node.value!r}", expression=expression)
        return
    if isinstance(node, ast.Name):
        return
    if isinstance(node, ast.BinOp):
        if type(node.op) not in _BINARY_OPS:
            raise ExpressionError(
                f"Unsupported operator {type(node.op).__name__}", expression=expression
            )
        _check_node(node.left, expression)
        _check_node(node.right, expression)
        return
    if isinstance(node, ast.UnaryOp):
        if not isinstance(node.op, (ast.USub, ast.UAdd, ast.Not)):
            raise ExpressionError(
                f"Unsupported operator {type(node.op).__name__}", expression=expression
            )
        _check_node(node.operand, expression)
        return
    if isinstance(node, ast.Compare):
        for op in node.ops:
            if type(op) not in _COMPARE_OPS:
                raise ExpressionError(
                    f"Unsupported comparison {type(op).__name__}", expression=expression
                )
        _check_node(node.left, expression)
        for comparator in node.comparators:
            _check_node(comparator, expression)
        return
    if isinstance(node, ast.BoolOp):
        for value in node.values:
            _check_node(value, expression)
        return
    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.keywords:
            raise ExpressionError("Unsupported function call", expression=expression)
        for arg in node.args:
            if isinstance(arg, ast.Starred):
                raise ExpressionError("Unsupported function call", expression=expression)
            _check_node(arg, expression)
        return
    raise ExpressionError(
        f"Unsupported expression element {type(node).__name__}", expression=expression
    )


class _Evaluation:
    """Walks one parsed formula against one set of bindings."""

    def __init__(
        self,
        expression: str,
        bindings: Bindings,
        functions: Mapping[str, Callable[..., float]],
    ) -> None:
        self.expression = expression
        self.bindings = bindings
        self.functions = functions

    def fail(self, message: str) -> ExpressionError:
        return ExpressionError(message, expression=self.expression)

    def number(self, value: Any, what: str) -> float:
        if isinstance(value, tuple):
            raise self.fail(f"{what} is an array; wrap it in AVG()")
        return float(value)

    def truthy(self, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        return self.number(value, "Condition") != 0.0

    def finite(self, value: float) -> float:
        if math.isnan(value) or math.isinf(value):
            raise self.fail("Result is not a finite number")
        return value

    def visit(self, node: ast.AST) -> Any:
        if isinstance(node, ast.Constant):
            return float(node.value)

        if isinstance(node, ast.Name):
            if node.id not in self.bindings:
                raise self.fail(f"Unknown identifier '{node.id}'")
            value = self.bindings[node.id]
            if isinstance(value, (bool, str)) or value is None:
                raise self.fail(f"Identifier '{node.id}' is not numeric")
            if isinstance(value, (int, float)):
                return float(value)
            return tuple(float(v) for v in value)

        if isinstance(node, ast.BinOp):
            left = self.number(self.visit(node.left), "Left operand")
            right = self.number(self.visit(node.right), "Right operand")
            if isinstance(node.op, ast.Div) and right == 0.0:
                raise self.fail("Division by zero")
            try:
                result = _BINARY_OPS[type(node.op)](left, right)
            except ZeroDivisionError as e:
                raise self.fail("Division by zero") from e
            except OverflowError as e:
                raise self.fail("Numeric overflow") from e
            if isinstance(result, complex):
                raise self.fail("Result is not a real number")
            return self.finite(float(result))

        if isinstance(node, ast.UnaryOp):
            operand = self.visit(node.operand)
            if isinstance(node.op, ast.Not):
                return not self.truthy(operand)
            value = self.number(operand, "Operand")
            return -value if isinstance(node.op, ast.USub) else value

        if isinstance(node, ast.Compare):
            left = self.number(self.visit(node.left), "Comparison operand")
            for op, comparator in zip(node.ops, node.comparators):
                right = self.number(self.visit(comparator), "Comparison operand")
                if not _COMPARE_OPS[type(op)](left, right):
                    return False
                left = right
            return True

        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                return all(self.truthy(self.visit(value)) for value in node.values)
            return any(self.truthy(self.visit(value)) for value in node.values)

        if isinstance(node, ast.Call):
            return self.call(node)

        raise self.fail(f"Unsupported expression element {type(node).__name__}")

    def call(self, node: ast.Call) -> Any:
        name = function_name(node)
        if name == IF_FUNCTION:
            if len(node.args) != 3:
                raise self.fail(f"if() takes 3 arguments, got {len(node.args)}")
            condition, then_branch, else_branch = node.args
            chosen = then_branch if self.truthy(self.visit(condition)) else else_branch
            return self.visit(chosen)

        function = self.functions.get(name)
        if function is None:
            raise self.fail(f"Unknown function '{name}'")
        args = [self.visit(arg) for arg in node.args]
        try:
            result = function(*args)
        except (TypeError, ValueError, ArithmeticError) as e:
            raise self.fail(f"Invalid call to {name}(): {e}") from e
        if isinstance(result, bool) or not isinstance(result, (int, float)):
            raise self.fail(f"{name}() did not return a number")
        return self.finite(float(result))


class ExpressionEvaluator:
    """Evaluates formulas against explicit bindings.

    The function table is fixed when the evaluator is built; per-call
    functions can be layered on top without changing it.
    """

    def __init__(self, functions: Mapping[str, Callable[..., float]] | None = None) -> None:
        table = dict(DEFAULT_FUNCTIONS if functions is None else functions)
        if IF_FUNCTION in table:
            raise ValueError("'if' is a built-in special form and cannot be registered")
        self._functions = MappingProxyType(table)

    @property
    def functions(self) -> Mapping[str, Callable[..., float]]:
        """Registered functions."""
        return self._functions

    def evaluate(
        self,
        expression: str,
        bindings: Bindings,
        functions: Mapping[str, Callable[..., float]] | None = None,
    ) -> float:
        """Evaluate a formula to a finite float.

        Args:
            expression: The formula text.
            bindings: Identifier values; scalars or sequences of numbers.
            functions: Optional extra functions for this call only.

        Returns:
            The numeric result. A top-level comparison yields 1.0 or 0.0.

        Raises:
            ExpressionError: On syntax errors, unknown identifiers or
                functions, wrong argument types or counts, division by zero
                and non-finite results.
        """
        node = parse_expression(expression)
        table = self._functions if not functions else {**self._functions, **functions}
        evaluation = _Evaluation(expression, bindings, table)
        value = evaluation.visit(node)
        if isinstance(value, bool):
            return 1.0 if value else 0.0
        return evaluation.number(value, "Expression result")
