"""Item and rule evaluation."""

from qcgate.evaluation.item import ItemEvaluator
from qcgate.evaluation.rules import RuleEvaluator

__all__ = ["ItemEvaluator", "RuleEvaluator"]
