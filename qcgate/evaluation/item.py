"""Item evaluator: turns one item submission into a MeasurementResult.

Validates the submission, resolves variables, processes every sample, then
applies the point's evaluation strategy:

- PER_SAMPLE: the rule is applied to each sample; the item passes iff every
  sample passes.
- JOINT: joint formulas are evaluated once over all samples; the rule is
  applied to the formula marked ``is_final_value``.
- SKIP_CHECK: always passes.
"""

from collections.abc import Collection
from typing import assert_never

import structlog

from qcgate.batch.models import (
    JointResult,
    MeasurementResult,
    ResolvedVariable,
    SampleResult,
)
from qcgate.errors import (
    ExpressionError,
    MissingDependencyError,
    MissingFinalValueError,
    UnresolvedVariableError,
    ValidationError,
)
from qcgate.evaluation.rules import RuleEvaluator
from qcgate.expression import ExpressionEvaluator, analyze
from qcgate.processing import SampleProcessor
from qcgate.registry.models import (
    EvaluationType,
    MeasurementPoint,
    SetupType,
    SourceType,
)
from qcgate.resolving import BatchLookup, VariableResolver
from qcgate.validation import ItemSubmission, Sample, Validator

logger = structlog.get_logger(__name__)


class ItemEvaluator:
    """Evaluates measurement items.

    Holds no per-call state: the same point, submission and batch context
    always produce an equal result.
    """

    def __init__(
        self,
        evaluator: ExpressionEvaluator | None = None,
        rule_evaluator: RuleEvaluator | None = None,
    ) -> None:
        self.evaluator = evaluator or ExpressionEvaluator()
        self.rule_evaluator = rule_evaluator or RuleEvaluator()
        self.validator = Validator()
        self.resolver = VariableResolver(self.evaluator)
        self.processor = SampleProcessor(self.evaluator)

    def check_dependencies(
        self,
        point: MeasurementPoint,
        submitted_items: Collection[str] = (),
        batch_context: BatchLookup | None = None,
    ) -> list[str]:
        """Items this point reads that are neither submitted nor recorded.

        Args:
            point: The measurement point about to be submitted.
            submitted_items: name_ids submitted in the same request.
            batch_context: Lookup over recorded results.

        Returns:
            Missing item name_ids, in first-referenced order.
        """
        missing = []
        for name_id in point.item_references():
            if name_id in submitted_items:
                continue
            if batch_context is not None and batch_context.lookup_values(name_id):
                continue
            missing.append(name_id)
        return missing

    def evaluate(
        self,
        point: MeasurementPoint,
        submission: ItemSubmission,
        batch_context: BatchLookup | None = None,
        require_complete: bool = True,
    ) -> MeasurementResult:
        """Evaluate one item.

        Args:
            point: The item's measurement point.
            submission: Raw samples and manual variable values.
            batch_context: Lookup for items referenced by this one.
            require_complete: Whether the sample count must equal
                ``setup.sample_amount``.

        Returns:
            The evaluated result. ``status`` is None only for an
            INSTRUMENT item whose samples have not arrived.

        Raises:
            ValidationError: If the submission has the wrong shape.
            MissingDependencyError: If referenced items have no data yet.
            EvaluationError: If a variable or formula cannot be evaluated,
                or a JOINT item has no final value.
        """
        item_id = point.name_id
        validation = self.validator.validate(submission, point, require_complete)
        validation.raise_for_errors()
        for warning in validation.warnings:
            logger.info("submission_warning", item=item_id, warning=warning)

        samples = submission.samples
        if not samples:
            match point.setup.source:
                case SourceType.MANUAL:
                    raise ValidationError("No samples submitted", item_id=item_id)
                case SourceType.INSTRUMENT:
                    logger.debug("awaiting_instrument", item=item_id)
                    return MeasurementResult(
                        measurement_item_name_id=item_id,
                        evaluation_type=point.evaluation_type,
                        status=None,
                        variable_values=dict(submission.variable_values),
                    )
                case SourceType.DERIVED:
                    samples = self._derived_samples(point, batch_context)
                case _:
                    assert_never(point.setup.source)

        try:
            resolved = self.resolver.resolve(
                point.variables, submission.variable_values, batch_context, item_id=item_id
            )
        except UnresolvedVariableError as e:
            if e.missing_items:
                raise MissingDependencyError(item_id, e.missing_items) from e
            raise

        processed = [
            self.processor.process(
                sample, resolved, point.pre_processing_formulas, point.setup.type, item_id
            )
            for sample in samples
        ]

        result = MeasurementResult(
            measurement_item_name_id=item_id,
            evaluation_type=point.evaluation_type,
            variable_values=dict(submission.variable_values),
            variables=[
                ResolvedVariable(
                    name=decl.name,
                    type=decl.type,
                    value=resolved[decl.name],
                    formula=decl.formula,
                )
                for decl in point.variables
            ],
            samples=processed,
        )

        match point.evaluation_type:
            case EvaluationType.PER_SAMPLE:
                self._evaluate_per_sample(point, result)
            case EvaluationType.JOINT:
                self._evaluate_joint(point, result, resolved, batch_context)
            case EvaluationType.SKIP_CHECK:
                result.status = True
            case _:
                assert_never(point.evaluation_type)

        logger.debug("item_evaluated", item=item_id, status=result.status)
        return result

    def _derived_samples(
        self, point: MeasurementPoint, batch_context: BatchLookup | None
    ) -> list[Sample]:
        """Samples copied from the item a DERIVED point reads."""
        source = point.setup.source_derived_name_id or ""
        values = batch_context.lookup_values(source) if batch_context else None
        if not values:
            raise MissingDependencyError(point.name_id, [source])
        return [Sample(sample_index=i, single_value=v) for i, v in enumerate(values, start=1)]

    def _evaluate_per_sample(self, point: MeasurementPoint, result: MeasurementResult) -> None:
        setting = point.evaluation_setting.per_sample_setting
        if setting is None:
            raise ValidationError("PER_SAMPLE item has no per_sample_setting", item_id=point.name_id)

        passed = True
        for sample in result.samples:
            if setting.is_raw_data:
                value = sample.single_value
            else:
                value = sample.formula_value(setting.pre_processing_formula_name or "")
            sample.evaluated_value = value
            sample.status = self.rule_evaluator.evaluate(value, point.rule_evaluation_setting)
            passed = passed and sample.status
        result.status = passed

    def _joint_arrays(
        self, point: MeasurementPoint, samples: list[SampleResult]
    ) -> dict[str, tuple[float, ...]]:
        """Per-sample arrays a JOINT formula can pass to AVG()."""

        def column(values: list[float | None]) -> tuple[float, ...]:
            return tuple(v for v in values if v is not None)

        arrays = {point.name_id: column([s.numeric_value() for s in samples])}
        if point.setup.type is SetupType.SINGLE:
            arrays["single_value"] = column([s.single_value for s in samples])
        else:
            pairs = [s.before_after_value for s in samples]
            arrays["before"] = column([p.before if p else None for p in pairs])
            arrays["after"] = column([p.after if p else None for p in pairs])
        for formula in point.pre_processing_formulas:
            arrays[formula.name] = column([s.formula_value(formula.name) for s in samples])
        return arrays

    @staticmethod
    def _joint_item_references(point: MeasurementPoint, local: Collection[str]) -> list[str]:
        """Other items named in ``AVG()`` by the point's joint formulas."""
        found: list[str] = []
        setting = point.evaluation_setting.joint_setting
        for formula in setting.formulas if setting else []:
            for name in analyze(formula.formula).averaged:
                if name not in local and name not in found:
                    found.append(name)
        return found

    def _evaluate_joint(
        self,
        point: MeasurementPoint,
        result: MeasurementResult,
        resolved: dict[str, float],
        batch_context: BatchLookup | None,
    ) -> None:
        item_id = point.name_id
        setting = point.evaluation_setting.joint_setting
        if setting is None or not setting.final_formulas():
            raise MissingFinalValueError("No joint formula is marked is_final_value", item_id)

        arrays = self._joint_arrays(point, result.samples)
        missing = []
        for name in self._joint_item_references(point, arrays):
            values = batch_context.lookup_values(name) if batch_context else None
            if values:
                arrays[name] = tuple(values)
            else:
                missing.append(name)
        if missing:
            raise MissingDependencyError(item_id, missing)

        bindings: dict[str, float | tuple[float, ...]] = {**resolved, **arrays}
        for formula in setting.formulas:
            try:
                value = self.evaluator.evaluate(formula.formula, bindings)
            except ExpressionError as e:
                raise e.in_context(item_id=item_id, formula_name=formula.name) from e
            bindings[formula.name] = value
            result.joint_results.append(
                JointResult(
                    name=formula.name,
                    formula=formula.formula,
                    value=value,
                    is_final_value=formula.is_final_value,
                )
            )

        final = setting.final_formulas()[0]
        final_value = next(
            (j.value for j in result.joint_results if j.name == final.name), None
        )
        if final_value is None:
            raise MissingFinalValueError(
                f"Final formula '{final.name}' did not produce a value", item_id
            )
        result.final_value = final_value
        result.status = self.rule_evaluator.evaluate(final_value, point.rule_evaluation_setting)
