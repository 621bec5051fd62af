"""Registry modules for loading product measurement schemas."""

from qcgate.registry.checks import check_point, check_product
from qcgate.registry.models import (
    EvaluationSetting,
    EvaluationType,
    JointFormula,
    JointSetting,
    MeasurementGroup,
    MeasurementPoint,
    Nature,
    PerSampleSetting,
    PreProcessingFormula,
    ProductSpec,
    QualitativeSetting,
    RuleEvaluationSetting,
    RuleType,
    Setup,
    SetupType,
    SourceType,
    VariableDecl,
    VariableType,
)
from qcgate.registry.products import ProductNotFoundError, ProductRegistry, load_product

__all__ = [
    "ProductRegistry",
    "ProductNotFoundError",
    "load_product",
    "check_point",
    "check_product",
    "ProductSpec",
    "MeasurementPoint",
    "MeasurementGroup",
    "Setup",
    "Nature",
    "SetupType",
    "SourceType",
    "VariableDecl",
    "VariableType",
    "PreProcessingFormula",
    "EvaluationType",
    "EvaluationSetting",
    "PerSampleSetting",
    "JointSetting",
    "JointFormula",
    "QualitativeSetting",
    "RuleEvaluationSetting",
    "RuleType",
]
