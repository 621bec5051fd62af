"""Load-time checks for measurement-point schemas.

Checks run once, when a product spec is loaded, and report every problem
found so authors can fix a spec in one pass. Variable declaration order is
authoritative: a formula may only read variables declared before it.
"""

from qcgate.errors import ExpressionError
from qcgate.expression.references import FormulaReferences, analyze
from qcgate.registry.models import (
    EvaluationType,
    MeasurementPoint,
    Nature,
    ProductSpec,
    RuleType,
    SetupType,
    SourceType,
    VariableType,
)


def _analyze(formula: str, label: str, problems: list[str]) -> FormulaReferences | None:
    try:
        return analyze(formula)
    except ExpressionError as e:
        problems.append(f"{label}: {e.reason}")
        return None


def _check_rule(point: MeasurementPoint, problems: list[str]) -> None:
    rule = point.rule_evaluation_setting
    if point.setup.nature is Nature.QUALITATIVE:
        if rule is not None:
            problems.append("rule_evaluation_setting must be absent for QUALITATIVE nature")
        if point.evaluation_type is not EvaluationType.SKIP_CHECK:
            problems.append("evaluation_type must be SKIP_CHECK for QUALITATIVE nature")
        return

    if rule is None:
        problems.append("rule_evaluation_setting is required for QUANTITATIVE nature")
        return
    if point.evaluation_type is EvaluationType.SKIP_CHECK:
        problems.append("SKIP_CHECK is only allowed for QUALITATIVE nature")
    if not rule.unit:
        problems.append("rule unit is required")
    if rule.rule is RuleType.BETWEEN:
        if rule.tolerance_minus is None or rule.tolerance_plus is None:
            problems.append("tolerance_minus and tolerance_plus are required for BETWEEN rule")
    elif rule.tolerance_minus is not None or rule.tolerance_plus is not None:
        problems.append(f"tolerances must be absent for {rule.rule.value} rule")


def _check_variables(point: MeasurementPoint, problems: list[str]) -> set[str]:
    declared: set[str] = set()
    local = point.array_names()
    for variable in point.variables:
        label = f"variable '{variable.name}'"
        if variable.name in declared:
            problems.append(f"{label} is declared more than once")

        if variable.type is VariableType.FIXED:
            if variable.value is None:
                problems.append(f"{label}: FIXED variable needs a value")
        elif variable.type is VariableType.MANUAL:
            if variable.value is not None or variable.formula:
                problems.append(f"{label}: MANUAL variable takes its value from input")
        elif variable.type is VariableType.FORMULA:
            if not variable.formula:
                problems.append(f"{label}: FORMULA variable needs a formula")
            else:
                refs = _analyze(variable.formula, label, problems)
                if refs is not None:
                    for name in refs.names:
                        if name == variable.name:
                            problems.append(f"{label} references itself")
                        elif name not in declared:
                            problems.append(
                                f"{label} references '{name}' which is not declared before it"
                            )
                    for name in refs.averaged:
                        if name == point.name_id:
                            problems.append(f"{label} averages its own measurement item")
                        elif name in local:
                            problems.append(
                                f"{label} cannot use AVG({name}); variables are resolved "
                                "before samples are processed"
                            )
        declared.add(variable.name)
    return declared


def _check_pre_processing(
    point: MeasurementPoint, variables: set[str], problems: list[str]
) -> None:
    available = set(point.raw_fields) | variables
    for formula in point.pre_processing_formulas:
        label = f"pre-processing formula '{formula.name}'"
        refs = _analyze(formula.formula, label, problems)
        if refs is not None:
            for name in refs.names:
                if name not in available:
                    problems.append(f"{label} references unknown '{name}'")
            for name in refs.averaged:
                problems.append(f"{label} cannot use AVG({name}) on a single sample")
        if formula.name in available:
            problems.append(f"{label} shadows an existing name")
        available.add(formula.name)


def _check_evaluation_setting(
    point: MeasurementPoint, variables: set[str], problems: list[str]
) -> None:
    setting = point.evaluation_setting
    if point.evaluation_type is EvaluationType.PER_SAMPLE:
        per_sample = setting.per_sample_setting
        if per_sample is None:
            problems.append("per_sample_setting is required for PER_SAMPLE evaluation")
        elif per_sample.is_raw_data:
            if point.setup.type is not SetupType.SINGLE:
                problems.append("is_raw_data requires a SINGLE setup type")
        elif not per_sample.pre_processing_formula_name:
            problems.append("pre_processing_formula_name is required when is_raw_data is false")
        elif point.get_pre_processing_formula(per_sample.pre_processing_formula_name) is None:
            problems.append(
                f"pre-processing formula '{per_sample.pre_processing_formula_name}' "
                "is not declared"
            )

    elif point.evaluation_type is EvaluationType.JOINT:
        joint = setting.joint_setting
        if joint is None or not joint.formulas:
            problems.append("joint_setting with formulas is required for JOINT evaluation")
            return
        if len(joint.final_formulas()) > 1:
            problems.append("only one joint formula may be marked is_final_value")
        arrays = point.array_names()
        available = set(variables)
        for formula in joint.formulas:
            label = f"joint formula '{formula.name}'"
            refs = _analyze(formula.formula, label, problems)
            if refs is not None:
                for name in refs.names:
                    if name not in available and name not in arrays:
                        problems.append(f"{label} references unknown '{name}'")
            available.add(formula.name)


def check_point(point: MeasurementPoint) -> list[str]:
    """Check one measurement point in isolation.

    Returns:
        Problems found, each prefixed with the point's name_id.
    """
    problems: list[str] = []
    _check_rule(point, problems)
    if point.setup.source is SourceType.DERIVED and not point.setup.source_derived_name_id:
        problems.append("source_derived_name_id is required for DERIVED source")
    if point.setup.source is SourceType.DERIVED and (
        point.setup.type is not SetupType.SINGLE or point.setup.nature is not Nature.QUANTITATIVE
    ):
        problems.append("DERIVED source requires a QUANTITATIVE SINGLE setup")
    variables = _check_variables(point, problems)
    _check_pre_processing(point, variables, problems)
    _check_evaluation_setting(point, variables, problems)
    return [f"{point.name_id}: {p}" for p in problems]


def _find_cycle(graph: dict[str, list[str]]) -> list[str] | None:
    visiting: list[str] = []
    done: set[str] = set()

    def visit(node: str) -> list[str] | None:
        if node in visiting:
            return visiting[visiting.index(node):] + [node]
        if node in done:
            return None
        visiting.append(node)
        for target in graph.get(node, []):
            cycle = visit(target)
            if cycle:
                return cycle
        visiting.pop()
        done.add(node)
        return None

    for node in graph:
        cycle = visit(node)
        if cycle:
            return cycle
    return None


def check_product(spec: ProductSpec) -> list[str]:
    """Check every point of a product plus cross-item references.

    Returns:
        All problems found; empty if the product is valid.
    """
    problems: list[str] = []
    seen: set[str] = set()
    for point in spec.measurement_points:
        if point.name_id in seen:
            problems.append(f"{point.name_id}: name_id is declared more than once")
        seen.add(point.name_id)

    graph: dict[str, list[str]] = {}
    for point in spec.measurement_points:
        point_problems = check_point(point)
        problems.extend(point_problems)
        try:
            references = point.item_references()
        except ExpressionError:
            # Already reported by check_point.
            continue
        for name in references:
            if name not in seen:
                problems.append(f"{point.name_id}: references unknown measurement item '{name}'")
        graph[point.name_id] = [name for name in references if name in seen]

    cycle = _find_cycle(graph)
    if cycle:
        problems.append("circular measurement item references: " + " -> ".join(cycle))
    return problems
