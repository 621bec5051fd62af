"""Built-in functions available to measurement formulas.

Functions receive already-evaluated arguments: floats for scalar
sub-expressions, tuples of floats for identifiers bound to arrays. They raise
``TypeError``/``ValueError`` on misuse; the evaluator turns those into
``ExpressionError``.
"""

import math
from collections.abc import Callable
from types import MappingProxyType


def _scalar(function_name: str, value: object) -> float:
    if isinstance(value, tuple):
        raise TypeError(f"{function_name}() expects a number, got an array")
    return float(value)  # type: ignore[arg-type]


def _flatten(function_name: str, args: tuple) -> list[float]:
    values: list[float] = []
    for arg in args:
        if isinstance(arg, tuple):
            values.extend(arg)
        else:
            values.append(float(arg))
    if not values:
        raise ValueError(f"{function_name}() needs at least one value")
    return values


def average(values: object) -> float:
    """Arithmetic mean of an array (a measurement item's sample values)."""
    if not isinstance(values, tuple):
        raise TypeError("AVG() expects a measurement item or array, got a number")
    if not values:
        raise ValueError("AVG() of an empty array")
    return math.fsum(values) / len(values)


def square_root(value: object) -> float:
    return math.sqrt(_scalar("sqrt", value))


def power(base: object, exponent: object) -> float:
    result = math.pow(_scalar("pow", base), _scalar("pow", exponent))
    return result


def absolute(value: object) -> float:
    return abs(_scalar("abs", value))


def minimum(*args: object) -> float:
    return min(_flatten("min", args))


def maximum(*args: object) -> float:
    return max(_flatten("max", args))


DEFAULT_FUNCTIONS: MappingProxyType[str, Callable[..., float]] = MappingProxyType(
    {
        "AVG": average,
        "sqrt": square_root,
        "pow": power,
        "abs": absolute,
        "min": minimum,
        "max": maximum,
    }
)
"""Functions every evaluator knows. ``if`` is a special form, not listed here."""
