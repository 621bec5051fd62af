"""Pydantic models for product and measurement-point specifications."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from qcgate.expression.references import analyze


class Nature(str, Enum):
    """Whether a point is measured as a number or as a yes/no judgement."""

    QUANTITATIVE = "QUANTITATIVE"
    QUALITATIVE = "QUALITATIVE"


class SetupType(str, Enum):
    """Shape of the raw value captured per sample."""

    SINGLE = "SINGLE"
    BEFORE_AFTER = "BEFORE_AFTER"


class SourceType(str, Enum):
    """Where sample values come from."""

    MANUAL = "MANUAL"
    INSTRUMENT = "INSTRUMENT"
    DERIVED = "DERIVED"


class VariableType(str, Enum):
    FIXED = "FIXED"
    MANUAL = "MANUAL"
    FORMULA = "FORMULA"


class EvaluationType(str, Enum):
    """Strategy used to turn processed samples into an item verdict."""

    PER_SAMPLE = "PER_SAMPLE"
    JOINT = "JOINT"
    SKIP_CHECK = "SKIP_CHECK"


class RuleType(str, Enum):
    MIN = "MIN"
    MAX = "MAX"
    BETWEEN = "BETWEEN"


RAW_FIELDS: dict[SetupType, tuple[str, ...]] = {
    SetupType.SINGLE: ("single_value",),
    SetupType.BEFORE_AFTER: ("before", "after"),
}
"""Binding names under which raw sample values are exposed to formulas."""


class Setup(BaseModel):
    """Measurement setup for a point."""

    name: str | None = None
    nature: Nature
    type: SetupType = SetupType.SINGLE
    source: SourceType = SourceType.MANUAL
    source_derived_name_id: str | None = None
    sample_amount: int = Field(ge=1)


class VariableDecl(BaseModel):
    """A declared variable; declaration order is the resolution order."""

    name: str
    type: VariableType
    value: float | None = None
    formula: str | None = None


class PreProcessingFormula(BaseModel):
    """A per-sample derivation, evaluated in list order."""

    name: str
    formula: str
    is_show: bool = True


class JointFormula(BaseModel):
    """A formula evaluated once over all samples of a JOINT item."""

    name: str
    formula: str
    is_final_value: bool = False


class PerSampleSetting(BaseModel):
    is_raw_data: bool
    pre_processing_formula_name: str | None = None


class JointSetting(BaseModel):
    formulas: list[JointFormula]

    def final_formulas(self) -> list[JointFormula]:
        """Formulas marked as the final value."""
        return [f for f in self.formulas if f.is_final_value]


class QualitativeSetting(BaseModel):
    label: str


class EvaluationSetting(BaseModel):
    """Strategy-specific settings; only the one matching the type is used."""

    per_sample_setting: PerSampleSetting | None = None
    joint_setting: JointSetting | None = None
    qualitative_setting: QualitativeSetting | None = None


class RuleEvaluationSetting(BaseModel):
    """Acceptance rule for a quantitative point."""

    rule: RuleType
    value: float
    unit: str
    tolerance_minus: float | None = None
    tolerance_plus: float | None = None


class MeasurementPoint(BaseModel):
    """Schema for one quality characteristic measured on a product."""

    name_id: str
    setup: Setup
    variables: list[VariableDecl] = Field(default_factory=list)
    pre_processing_formulas: list[PreProcessingFormula] = Field(default_factory=list)
    evaluation_type: EvaluationType
    evaluation_setting: EvaluationSetting = Field(default_factory=EvaluationSetting)
    rule_evaluation_setting: RuleEvaluationSetting | None = None

    def get_variable(self, name: str) -> VariableDecl | None:
        """Get a variable declaration by name."""
        for variable in self.variables:
            if variable.name == name:
                return variable
        return None

    def get_pre_processing_formula(self, name: str) -> PreProcessingFormula | None:
        """Get a pre-processing formula by name."""
        for formula in self.pre_processing_formulas:
            if formula.name == name:
                return formula
        return None

    @property
    def raw_fields(self) -> tuple[str, ...]:
        return RAW_FIELDS[self.setup.type]

    def array_names(self) -> set[str]:
        """Names bound to per-sample arrays while evaluating JOINT formulas."""
        names = {self.name_id, *self.raw_fields}
        names.update(f.name for f in self.pre_processing_formulas)
        return names

    def item_references(self) -> list[str]:
        """Other measurement items this point reads, in first-seen order.

        Covers ``AVG()`` arguments in variable and joint formulas that are
        not local array bindings, plus the source of a DERIVED point.
        """
        found: list[str] = []
        local = self.array_names()
        formulas = [v.formula for v in self.variables if v.type is VariableType.FORMULA and v.formula]
        joint = self.evaluation_setting.joint_setting
        if self.evaluation_type is EvaluationType.JOINT and joint is not None:
            formulas.extend(f.formula for f in joint.formulas)
        for formula in formulas:
            for name in analyze(formula).averaged:
                if name not in local and name not in found:
                    found.append(name)
        derived = self.setup.source_derived_name_id
        if self.setup.source is SourceType.DERIVED and derived and derived not in found:
            found.append(derived)
        return found


class MeasurementGroup(BaseModel):
    """Display grouping and ordering of measurement points."""

    group_name: str
    order: int = 0
    measurement_items: list[str]


UNGROUPED_NAME = "Ungrouped"
UNGROUPED_ORDER = 999


class ProductSpec(BaseModel):
    """A product with its measurement schema."""

    type: Literal["product_spec"] = "product_spec"
    product_id: str
    name: str
    category: str | None = None
    description: str | None = None
    measurement_points: list[MeasurementPoint]
    measurement_groups: list[MeasurementGroup] = Field(default_factory=list)

    def get_point(self, name_id: str) -> MeasurementPoint | None:
        """Get a measurement point by its name_id."""
        for point in self.measurement_points:
            if point.name_id == name_id:
                return point
        return None

    def ordered_points(self) -> list[tuple[str, int, MeasurementPoint]]:
        """Points ordered by group, as ``(group_name, group_order, point)``.

        Points not listed in any group come last under ``Ungrouped``.
        """
        remaining = {p.name_id: p for p in self.measurement_points}
        ordered: list[tuple[str, int, MeasurementPoint]] = []
        for group in sorted(self.measurement_groups, key=lambda g: g.order):
            for name_id in group.measurement_items:
                point = remaining.pop(name_id, None)
                if point is not None:
                    ordered.append((group.group_name, group.order, point))
        for point in remaining.values():
            ordered.append((UNGROUPED_NAME, UNGROUPED_ORDER, point))
        return ordered
