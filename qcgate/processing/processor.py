"""Sample processor: applies pre-processing formulas to raw samples."""

from collections.abc import Mapping

from qcgate.batch.models import PreProcessingValue, SampleResult
from qcgate.errors import ExpressionError
from qcgate.expression import ExpressionEvaluator
from qcgate.registry.models import PreProcessingFormula, SetupType
from qcgate.validation.models import Sample


def raw_bindings(sample: Sample, setup_type: SetupType) -> dict[str, float]:
    """Raw sample values under the binding names of the setup type."""
    bindings: dict[str, float] = {}
    if setup_type is SetupType.SINGLE:
        if sample.single_value is not None:
            bindings["single_value"] = sample.single_value
    elif sample.before_after_value is not None:
        bindings["before"] = sample.before_after_value.before
        bindings["after"] = sample.before_after_value.after
    return bindings


class SampleProcessor:
    """Runs a point's pre-processing formulas over one sample at a time.

    Formulas run in list order; each result is bound under the formula's
    name for the formulas after it.
    """

    def __init__(self, evaluator: ExpressionEvaluator | None = None) -> None:
        self.evaluator = evaluator or ExpressionEvaluator()

    def process(
        self,
        sample: Sample,
        resolved_variables: Mapping[str, float],
        formulas: list[PreProcessingFormula],
        setup_type: SetupType = SetupType.SINGLE,
        item_id: str | None = None,
    ) -> SampleResult:
        """Process one sample.

        Args:
            sample: The raw sample.
            resolved_variables: The point's resolved variables.
            formulas: Pre-processing formulas, in evaluation order.
            setup_type: Decides which raw fields are bound.
            item_id: The measurement item, for error attribution.

        Returns:
            SampleResult carrying the raw input and every computed value.

        Raises:
            ExpressionError: If a formula fails, naming the item and formula.
        """
        bindings: dict[str, float] = {**resolved_variables, **raw_bindings(sample, setup_type)}
        values: list[PreProcessingValue] = []

        for formula in formulas:
            try:
                value = self.evaluator.evaluate(formula.formula, bindings)
            except ExpressionError as e:
                raise e.in_context(item_id=item_id, formula_name=formula.name) from e
            bindings[formula.name] = value
            values.append(
                PreProcessingValue(
                    name=formula.name,
                    formula=formula.formula,
                    value=value,
                    is_show=formula.is_show,
                )
            )

        return SampleResult(
            **sample.model_dump(),
            pre_processing_formula_values=values,
        )
