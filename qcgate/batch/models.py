"""Pydantic models for measurement results, batches and verdicts."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from qcgate.diagnostics.models import BatchDiagnostic
from qcgate.registry.models import EvaluationType, VariableType
from qcgate.validation.models import ItemSubmission, Sample

Verdict = Literal["OK", "NG"]


def verdict(status: bool | None) -> Verdict:
    """OK/NG label for a status; anything but True is NG."""
    return "OK" if status is True else "NG"


class PreProcessingValue(BaseModel):
    """One computed pre-processing value, kept with its formula for audit."""

    name: str
    formula: str
    value: float | None
    is_show: bool = True


class SampleResult(Sample):
    """A processed sample: the raw input plus everything derived from it."""

    status: bool | None = None
    evaluated_value: float | None = None
    pre_processing_formula_values: list[PreProcessingValue] = Field(default_factory=list)

    def formula_value(self, name: str) -> float | None:
        """Value of a named pre-processing formula for this sample."""
        for entry in self.pre_processing_formula_values:
            if entry.name == name:
                return entry.value
        return None

    def numeric_value(self) -> float | None:
        """The number other items see when they read this sample.

        The evaluated value if there is one, else the last computed
        pre-processing value, else the raw single value.
        """
        if self.evaluated_value is not None:
            return self.evaluated_value
        for entry in reversed(self.pre_processing_formula_values):
            if entry.value is not None:
                return entry.value
        return self.single_value

    def raw(self) -> Sample:
        """The raw input this result was computed from."""
        return Sample(
            sample_index=self.sample_index,
            single_value=self.single_value,
            before_after_value=self.before_after_value,
            qualitative_value=self.qualitative_value,
        )


class ResolvedVariable(BaseModel):
    name: str
    type: VariableType
    value: float
    formula: str | None = None


class JointResult(BaseModel):
    name: str
    formula: str
    value: float
    is_final_value: bool = False


class MeasurementResult(BaseModel):
    """The evaluated result of one measurement item.

    ``status`` is None while the item cannot be evaluated yet (partial
    saves only). Carries no timestamps, so evaluating the same input twice
    yields equal results.
    """

    measurement_item_name_id: str
    evaluation_type: EvaluationType
    status: bool | None = None
    variable_values: dict[str, float] = Field(default_factory=dict)
    variables: list[ResolvedVariable] = Field(default_factory=list)
    samples: list[SampleResult] = Field(default_factory=list)
    final_value: float | None = None
    joint_results: list[JointResult] = Field(default_factory=list)

    @property
    def result(self) -> Verdict:
        return verdict(self.status)

    def sample_values(self) -> list[float]:
        """Numeric value of every sample that has one, in sample order."""
        values = (s.numeric_value() for s in self.samples)
        return [v for v in values if v is not None]

    def to_submission(self) -> ItemSubmission:
        """Rebuild the raw submission this result was computed from."""
        return ItemSubmission(
            measurement_item_name_id=self.measurement_item_name_id,
            variable_values=dict(self.variable_values),
            samples=[s.raw() for s in self.samples],
        )


class BatchStatus(str, Enum):
    """Lifecycle status of a batch."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_writable(self) -> bool:
        return self in (BatchStatus.PENDING, BatchStatus.IN_PROGRESS)


class Batch(BaseModel):
    """One production lot's measurement results under evaluation."""

    measurement_id: str
    product_id: str
    batch_number: str
    sample_count: int = Field(ge=1)
    status: BatchStatus = BatchStatus.PENDING
    overall_result: bool | None = None
    measurement_results: list[MeasurementResult] = Field(default_factory=list)
    measured_by: str | None = None
    measured_at: datetime | None = None
    notes: str | None = None
    created_at: datetime

    def get_result(self, name_id: str) -> MeasurementResult | None:
        """Get the stored result for a measurement item."""
        for result in self.measurement_results:
            if result.measurement_item_name_id == name_id:
                return result
        return None

    def put_result(self, result: MeasurementResult) -> None:
        """Store a result, replacing any earlier result for the same item."""
        for i, existing in enumerate(self.measurement_results):
            if existing.measurement_item_name_id == result.measurement_item_name_id:
                self.measurement_results[i] = result
                return
        self.measurement_results.append(result)

    def progress(self) -> float:
        """Percentage of stored items with a verdict; 100 once completed."""
        if self.status is BatchStatus.COMPLETED:
            return 100.0
        if not self.measurement_results:
            return 0.0
        done = sum(1 for r in self.measurement_results if r.status is not None)
        return done / len(self.measurement_results) * 100.0


class SampleSummary(BaseModel):
    sample_index: int
    status: bool | None
    result: Literal["OK", "NG", "N/A"]


class ItemDetail(BaseModel):
    """Summary line for one measurement item."""

    measurement_item: str
    status: bool | None
    result: Verdict
    evaluation_type: EvaluationType
    final_value: float | None = None
    samples_summary: list[SampleSummary] = Field(default_factory=list)


class EvaluationSummary(BaseModel):
    """Pass/fail counts and per-item details for a batch."""

    total_items: int
    passed_items: int
    failed_items: int
    pass_rate: float
    item_details: list[ItemDetail] = Field(default_factory=list)


class BatchVerdict(BaseModel):
    """Outcome of a final batch submission."""

    batch: Batch
    status: BatchStatus
    overall_result: Verdict
    summary: EvaluationSummary


class ProgressReport(BaseModel):
    """Outcome of a partial save."""

    batch: Batch
    saved_items: int
    total_items: int
    progress: float
    diagnostics: BatchDiagnostic | None = None
