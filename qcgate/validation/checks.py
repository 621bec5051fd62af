"""Validation checks for item submissions.

Validates that submitted samples have the shape their measurement point
expects, before anything is evaluated.
"""

from pydantic import BaseModel

from qcgate.errors import ValidationError
from qcgate.registry.models import MeasurementPoint, Nature, SetupType, VariableType
from qcgate.validation.models import ItemSubmission, Sample


class ValidationResult(BaseModel):
    """Result of validating one item submission."""

    item_id: str
    valid: bool
    sample_count: int
    expected_samples: int
    errors: list[str]
    warnings: list[str]

    @property
    def has_errors(self) -> bool:
        """Whether there are any validation errors."""
        return len(self.errors) > 0

    def raise_for_errors(self) -> None:
        """Raise ValidationError listing every error, if there are any."""
        if self.errors:
            raise ValidationError("; ".join(self.errors), item_id=self.item_id)


class Validator:
    """Validates item submissions against their measurement point.

    Checks:
    1. Shape: each sample populates exactly the field its setup expects
    2. Indexes: sample indexes are unique
    3. Count: a complete submission has ``sample_amount`` samples
    4. Variables: manual inputs name declared MANUAL variables (warning)
    """

    def _check_sample(self, sample: Sample, point: MeasurementPoint) -> list[str]:
        errors: list[str] = []
        label = f"sample {sample.sample_index}"

        if point.setup.nature is Nature.QUALITATIVE:
            if sample.qualitative_value is None:
                errors.append(f"{label}: qualitative_value is required")
            return errors

        if sample.qualitative_value is not None:
            errors.append(f"{label}: qualitative_value is not allowed for QUANTITATIVE nature")
        if point.setup.type is SetupType.SINGLE:
            if sample.single_value is None:
                errors.append(f"{label}: single_value is required")
            if sample.before_after_value is not None:
                errors.append(f"{label}: before_after_value is not allowed for SINGLE setup")
        else:
            if sample.before_after_value is None:
                errors.append(f"{label}: before_after_value is required")
            if sample.single_value is not None:
                errors.append(f"{label}: single_value is not allowed for BEFORE_AFTER setup")
        return errors

    def validate(
        self,
        submission: ItemSubmission,
        point: MeasurementPoint,
        require_complete: bool = True,
    ) -> ValidationResult:
        """Validate a submission against its measurement point.

        Args:
            submission: The submitted raw data.
            point: The measurement point the submission is for.
            require_complete: Whether the sample count must match
                ``setup.sample_amount``. Partial saves pass False.

        Returns:
            ValidationResult with all errors and warnings found.
        """
        errors: list[str] = []
        warnings: list[str] = []

        if submission.measurement_item_name_id != point.name_id:
            errors.append(
                f"submission is for '{submission.measurement_item_name_id}', "
                f"not '{point.name_id}'"
            )

        seen: set[int] = set()
        for sample in submission.samples:
            if sample.sample_index in seen:
                errors.append(f"sample {sample.sample_index}: duplicate sample_index")
            seen.add(sample.sample_index)
            errors.extend(self._check_sample(sample, point))

        expected = point.setup.sample_amount
        if require_complete and submission.samples and len(submission.samples) != expected:
            errors.append(f"expected {expected} samples, got {len(submission.samples)}")

        for name in submission.variable_values:
            declared = point.get_variable(name)
            if declared is None:
                warnings.append(f"variable '{name}' is not declared")
            elif declared.type is not VariableType.MANUAL:
                warnings.append(f"variable '{name}' is {declared.type.value}; input ignored")

        return ValidationResult(
            item_id=point.name_id,
            valid=not errors,
            sample_count=len(submission.samples),
            expected_samples=expected,
            errors=errors,
            warnings=warnings,
        )
