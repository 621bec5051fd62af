"""Execute interface for the qcgate callable protocol.

Provides the in-process execute() function for orchestrators that call
qcgate directly instead of through the CLI.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from qcgate.callable.result import CallableResult
from qcgate.config import resolve_batch_store, resolve_product_registry
from qcgate.pipeline import EvaluationPipeline, PipelineConfig

OPERATIONS = ("check_dependencies", "evaluate_item", "save_progress", "submit")


def _pipeline(config: dict[str, Any]) -> EvaluationPipeline:
    registry = config.get("product_registry_path")
    store = config.get("batch_store_path")
    schema = config.get("product_schema_path")
    return EvaluationPipeline(
        PipelineConfig(
            product_registry_path=resolve_product_registry(Path(registry) if registry else None),
            product_schema_path=Path(schema) if schema else None,
            batch_store_path=resolve_batch_store(Path(store) if store else None),
            deterministic_ids=config.get("deterministic_ids", False),
            legacy_average_fallback=config.get("legacy_average_fallback"),
        )
    )


def execute(params: dict[str, Any]) -> dict[str, Any]:
    """Run one evaluation operation against a stored batch.

    Args:
        params: Dictionary containing:
            - operation: str - One of check_dependencies, evaluate_item,
              save_progress, submit
            - measurement_id: str - The batch; if omitted, ``product_id``
              is required and a new batch is created first
            - product_id: str - Product for a new batch
            - items: list[dict] - Item submissions
              ``{measurement_item_name_id, variable_values, samples}``
            - item_id: str - The item to check (check_dependencies only)
            - measured_by: str - Acting user, for audit (submit only)
            - config: dict - Optional overrides:
                - product_registry_path: str
                - product_schema_path: str
                - batch_store_path: str
                - deterministic_ids: bool
                - legacy_average_fallback: float

    Returns:
        CallableResult dict with:
            - schema_version: "1.0"
            - items: list[dict] - Result records for the operation
            - stats: dict - Operation statistics

    Raises:
        ValueError: If required parameters are missing or invalid.
        QCGateError: Any evaluation error; nothing is stored when raised.
    """
    operation = params.get("operation")
    if operation not in OPERATIONS:
        raise ValueError(f"'operation' must be one of: {', '.join(OPERATIONS)}")

    items = params.get("items", [])
    if not isinstance(items, list):
        raise ValueError("'items' must be a list of item submissions")

    pipeline = _pipeline(params.get("config", {}))

    measurement_id = params.get("measurement_id")
    if not measurement_id:
        product_id = params.get("product_id")
        if not product_id:
            raise ValueError("'measurement_id' or 'product_id' is required in params")
        measurement_id = pipeline.create_batch(product_id).measurement_id

    records: list[dict[str, Any]]
    stats: dict[str, Any] = {"input": len(items), "measurement_id": measurement_id}

    if operation == "check_dependencies":
        item_id = params.get("item_id")
        if not item_id:
            raise ValueError("'item_id' is required for check_dependencies")
        submitted = [i.get("measurement_item_name_id") for i in items if isinstance(i, dict)]
        missing = pipeline.check_dependencies(measurement_id, item_id, submitted)
        records = [{"measurement_item_name_id": item_id, "missing_items": missing}]
        stats["missing"] = len(missing)

    elif operation == "evaluate_item":
        if not items:
            raise ValueError("'items' must contain the item to evaluate")
        result = pipeline.evaluate_item(measurement_id, items[0], items[1:])
        records = [result.model_dump(mode="json")]
        stats["status"] = result.status

    elif operation == "save_progress":
        report = pipeline.save_progress(measurement_id, items)
        records = [r.model_dump(mode="json") for r in report.batch.measurement_results]
        stats.update(
            saved_items=report.saved_items,
            total_items=report.total_items,
            progress=report.progress,
        )

    else:
        verdict = pipeline.submit_batch(measurement_id, items, params.get("measured_by"))
        records = [r.model_dump(mode="json") for r in verdict.batch.measurement_results]
        stats.update(
            overall_result=verdict.overall_result,
            passed=verdict.summary.passed_items,
            failed=verdict.summary.failed_items,
            pass_rate=verdict.summary.pass_rate,
        )

    stats["output"] = len(records)
    return CallableResult(schema_version="1.0", items=records, stats=stats).to_dict()
