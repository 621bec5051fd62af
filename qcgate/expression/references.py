"""Static analysis of formula references.

Used for dependency checks before evaluation and for load-time schema checks:
which identifiers a formula reads as scalars, and which names it passes to
``AVG()`` (other measurement items or array bindings).
"""

import ast
from dataclasses import dataclass

from qcgate.expression.evaluator import function_name, parse_expression

AVERAGE_FUNCTION = "AVG"


@dataclass(frozen=True)
class FormulaReferences:
    """Names referenced by one formula, in order of first appearance."""

    names: tuple[str, ...]
    averaged: tuple[str, ...]
    functions: tuple[str, ...]


def _append(target: list[str], name: str) -> None:
    if name not in target:
        target.append(name)


def analyze(expression: str) -> FormulaReferences:
    """Collect the references of a formula.

    Raises:
        ExpressionError: If the formula does not parse.
    """
    names: list[str] = []
    averaged: list[str] = []
    functions: list[str] = []

    def walk(node: ast.AST) -> None:
        if isinstance(node, ast.Call):
            name = function_name(node)
            _append(functions, name)
            for arg in node.args:
                if name == AVERAGE_FUNCTION and isinstance(arg, ast.Name):
                    _append(averaged, arg.id)
                else:
                    walk(arg)
            return
        if isinstance(node, ast.Name):
            _append(names, node.id)
            return
        for child in ast.iter_child_nodes(node):
            walk(child)

    walk(parse_expression(expression))
    return FormulaReferences(tuple(names), tuple(averaged), tuple(functions))
