"""Pipeline for batch evaluation.

Loads product specs, reads and writes batches through a store, and routes
each request through the item evaluator and the batch aggregator. Writers to
the same batch are serialized; every request evaluates against a snapshot of
the stored batch and saves only if it succeeds.
"""

from collections.abc import Collection, Iterable, Mapping
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from qcgate.batch import (
    Batch,
    BatchAggregator,
    BatchBuilder,
    BatchLocks,
    BatchStore,
    BatchVerdict,
    InMemoryBatchStore,
    JsonBatchStore,
    MeasurementResult,
    ProgressReport,
    SampleResult,
)
from qcgate.diagnostics import DiagnosticsCollector
from qcgate.errors import BatchStateError, QCGateError, ValidationError
from qcgate.evaluation import ItemEvaluator
from qcgate.registry import MeasurementPoint, ProductRegistry, ProductSpec, SourceType
from qcgate.resolving import BatchContext
from qcgate.validation import ItemSubmission

logger = structlog.get_logger(__name__)

SubmissionInput = ItemSubmission | Mapping[str, Any]


class PipelineConfig(BaseModel):
    """Configuration for the evaluation pipeline."""

    product_registry_path: Path
    product_schema_path: Path | None = None
    batch_store_path: Path | None = None
    deterministic_ids: bool = False
    legacy_average_fallback: float | None = None


def coerce_submissions(submissions: Iterable[SubmissionInput]) -> list[ItemSubmission]:
    """Parse raw submission dicts, rejecting malformed ones.

    Raises:
        ValidationError: If a submission does not match the request shape,
            or an item is submitted twice.
    """
    parsed: list[ItemSubmission] = []
    seen: set[str] = set()
    for raw in submissions:
        if isinstance(raw, ItemSubmission):
            submission = raw
        else:
            try:
                submission = ItemSubmission.model_validate(raw)
            except PydanticValidationError as e:
                item_id = raw.get("measurement_item_name_id") if isinstance(raw, Mapping) else None
                problems = "; ".join(
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
                )
                raise ValidationError(f"Malformed submission: {problems}", item_id=item_id) from e
        if submission.measurement_item_name_id in seen:
            raise ValidationError("Submitted more than once", item_id=submission.measurement_item_name_id)
        seen.add(submission.measurement_item_name_id)
        parsed.append(submission)
    return parsed


def evaluation_order(product: ProductSpec, item_ids: list[str]) -> list[str]:
    """Order items so that every item comes after the items it reads.

    Items keep their given order where no dependency forces otherwise.
    Only dependencies among ``item_ids`` are considered.
    """
    wanted = set(item_ids)
    ordered: list[str] = []
    placed: set[str] = set()

    def place(item_id: str, trail: tuple[str, ...]) -> None:
        if item_id in placed or item_id in trail:
            return
        point = product.get_point(item_id)
        if point is not None:
            for ref in point.item_references():
                if ref in wanted:
                    place(ref, (*trail, item_id))
        placed.add(item_id)
        ordered.append(item_id)

    for item_id in item_ids:
        place(item_id, ())
    return ordered


def _request_dependencies(
    product: ProductSpec, point: MeasurementPoint, available: Collection[str]
) -> list[str]:
    """Items in ``available`` that ``point`` reads, directly or through each other."""
    found: list[str] = []
    pending = list(point.item_references())
    while pending:
        item_id = pending.pop(0)
        if item_id not in available or item_id in found or item_id == point.name_id:
            continue
        found.append(item_id)
        reference = product.get_point(item_id)
        if reference is not None:
            pending.extend(reference.item_references())
    return found


def _unevaluated(point: MeasurementPoint, submission: ItemSubmission) -> MeasurementResult:
    """A result holding only the raw data of an item that has no verdict yet."""
    return MeasurementResult(
        measurement_item_name_id=point.name_id,
        evaluation_type=point.evaluation_type,
        status=None,
        variable_values=dict(submission.variable_values),
        samples=[SampleResult(**s.model_dump()) for s in submission.samples],
    )


class EvaluationPipeline:
    """Creates batches and evaluates, saves and submits their items."""

    def __init__(
        self,
        config: PipelineConfig,
        store: BatchStore | None = None,
        registry: ProductRegistry | None = None,
        item_evaluator: ItemEvaluator | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config: Pipeline configuration.
            store: Optional batch store. Defaults to a JsonBatchStore at
                   ``config.batch_store_path``, or an in-memory store.
            registry: Optional product registry. Defaults to one at
                      ``config.product_registry_path``.
            item_evaluator: Optional item evaluator.
        """
        self.config = config
        self.registry = registry or ProductRegistry(
            config.product_registry_path,
            schema_path=config.product_schema_path,
        )
        if store is not None:
            self.store = store
        elif config.batch_store_path is not None:
            self.store = JsonBatchStore(config.batch_store_path)
        else:
            self.store = InMemoryBatchStore()

        self.item_evaluator = item_evaluator or ItemEvaluator()
        self.aggregator = BatchAggregator()
        self.builder = BatchBuilder(deterministic_ids=config.deterministic_ids)
        self.locks = BatchLocks()

    def _context(
        self, batch: Batch, submissions: list[ItemSubmission] | None = None
    ) -> BatchContext:
        return BatchContext(
            snapshot=batch.model_copy(deep=True),
            submissions={s.measurement_item_name_id: s for s in submissions or []},
            legacy_average_fallback=self.config.legacy_average_fallback,
        )

    def _points(
        self, product: ProductSpec, submissions: list[ItemSubmission]
    ) -> dict[str, MeasurementPoint]:
        return {
            s.measurement_item_name_id: self.registry.get_measurement_point(
                product.product_id, s.measurement_item_name_id
            )
            for s in submissions
        }

    def create_batch(
        self,
        product_id: str,
        batch_number: str | None = None,
        sample_count: int | None = None,
        measured_by: str | None = None,
        notes: str | None = None,
    ) -> Batch:
        """Create and store a new PENDING batch for a product."""
        product = self.registry.get(product_id)
        batch = self.builder.build(
            product,
            batch_number=batch_number,
            sample_count=sample_count,
            measured_by=measured_by,
            notes=notes,
        )
        self.store.save_batch(batch)
        logger.info("batch_created", batch=batch.measurement_id, product=product_id)
        return batch

    def get_batch(self, measurement_id: str) -> Batch:
        return self.store.load_batch(measurement_id)

    def check_dependencies(
        self,
        measurement_id: str,
        item_id: str,
        submitted_items: Iterable[str] = (),
    ) -> list[str]:
        """Items that must be supplied before ``item_id`` can be evaluated.

        Args:
            measurement_id: The batch.
            item_id: The item about to be submitted.
            submitted_items: Other items submitted in the same request.

        Returns:
            Missing item name_ids; empty when nothing is missing.
        """
        batch = self.store.load_batch(measurement_id)
        point = self.registry.get_measurement_point(batch.product_id, item_id)
        return self.item_evaluator.check_dependencies(
            point, set(submitted_items), self._context(batch)
        )

    def evaluate_item(
        self,
        measurement_id: str,
        submission: SubmissionInput,
        request_items: Iterable[SubmissionInput] = (),
    ) -> MeasurementResult:
        """Evaluate one item against a batch without storing the result.

        Args:
            measurement_id: The batch.
            submission: The item's raw data.
            request_items: Other items submitted alongside it. Those it
                reads are evaluated first, in dependency order, and their
                results feed its cross-item formulas.

        Raises:
            ValidationError: If the submission is malformed or unknown.
            MissingDependencyError: If referenced items have no data.
            EvaluationError: If a formula fails.
        """
        (parsed,) = coerce_submissions([submission])
        others = coerce_submissions(request_items)
        batch = self.store.load_batch(measurement_id)
        product = self.registry.get(batch.product_id)
        point = self.registry.get_measurement_point(product.product_id, parsed.measurement_item_name_id)

        by_item = {
            s.measurement_item_name_id: s
            for s in others
            if s.measurement_item_name_id != point.name_id
        }
        context = self._context(batch, others)
        for item_id in evaluation_order(product, _request_dependencies(product, point, by_item)):
            dependency = self.item_evaluator.evaluate(
                self.registry.get_measurement_point(product.product_id, item_id),
                by_item[item_id],
                context,
                require_complete=False,
            )
            context.add_result(dependency)
        return self.item_evaluator.evaluate(point, parsed, context)

    def save_progress(
        self, measurement_id: str, submissions: Iterable[SubmissionInput]
    ) -> ProgressReport:
        """Store partial results and move the batch to IN_PROGRESS.

        Items that cannot be evaluated yet are stored with their raw data
        and ``status = None``; the report's diagnostics say why.

        Raises:
            ValidationError: If a submission is malformed or names an
                unknown item.
            BatchStateError: If the batch is completed or cancelled.
        """
        parsed = coerce_submissions(submissions)
        with self.locks.get(measurement_id):
            batch = self.store.load_batch(measurement_id)
            if not batch.status.is_writable:
                raise BatchStateError(measurement_id, batch.status.value, "save progress on")
            product = self.registry.get(batch.product_id)
            points = self._points(product, parsed)
            by_item = {s.measurement_item_name_id: s for s in parsed}

            context = self._context(batch, parsed)
            collector = DiagnosticsCollector(measurement_id, batch.product_id)
            results: list[MeasurementResult] = []

            for item_id in evaluation_order(product, list(by_item)):
                point, submission = points[item_id], by_item[item_id]
                validation = self.item_evaluator.validator.validate(
                    submission, point, require_complete=False
                )
                collector.collect_from_validation(validation)
                if validation.has_errors:
                    result = _unevaluated(point, submission)
                    context.add_result(result)
                    results.append(result)
                    continue
                try:
                    result = self.item_evaluator.evaluate(
                        point, submission, context, require_complete=False
                    )
                except QCGateError as e:
                    collector.collect_from_exception(item_id, e)
                    result = _unevaluated(point, submission)
                else:
                    if result.status is None:
                        collector.add_warning(
                            stage="evaluation",
                            code="AWAITING_INSTRUMENT",
                            message="Waiting for instrument data",
                            item_id=item_id,
                        )
                    elif len(result.samples) < point.setup.sample_amount:
                        collector.add_warning(
                            stage="evaluation",
                            code="INCOMPLETE_SAMPLES",
                            message=(
                                f"{len(result.samples)} of {point.setup.sample_amount} "
                                "samples submitted"
                            ),
                            item_id=item_id,
                        )
                        result.status = None
                    else:
                        collector.mark_evaluated(item_id)
                context.add_result(result)
                results.append(result)

            report = self.aggregator.save_progress(batch, results, collector.finalize())
            self.store.save_batch(report.batch)
            return report

    def submit_batch(
        self,
        measurement_id: str,
        submissions: Iterable[SubmissionInput],
        measured_by: str | None = None,
    ) -> BatchVerdict:
        """Evaluate every item and complete the batch.

        Items saved earlier but missing from ``submissions`` are
        re-evaluated from their stored raw data. Any failure aborts the
        whole submission and leaves the stored batch unchanged.

        Raises:
            ValidationError: If a submission is malformed, unknown, or an
                item has no data yet.
            MissingDependencyError: If referenced items have no data.
            EvaluationError: If any item fails to evaluate.
            BatchStateError: If the batch is completed or cancelled.
        """
        parsed = coerce_submissions(submissions)
        with self.locks.get(measurement_id):
            batch = self.store.load_batch(measurement_id)
            if not batch.status.is_writable:
                raise BatchStateError(measurement_id, batch.status.value, "submit")
            product = self.registry.get(batch.product_id)

            by_item = {s.measurement_item_name_id: s for s in parsed}
            for stored in batch.measurement_results:
                if stored.measurement_item_name_id not in by_item:
                    rebuilt = stored.to_submission()
                    point = product.get_point(stored.measurement_item_name_id)
                    if point is not None and point.setup.source is SourceType.DERIVED:
                        # Re-derive from the current source samples.
                        rebuilt.samples = []
                    by_item[stored.measurement_item_name_id] = rebuilt
            points = self._points(product, list(by_item.values()))

            context = self._context(batch, parsed)
            results: list[MeasurementResult] = []
            for item_id in evaluation_order(product, list(by_item)):
                result = self.item_evaluator.evaluate(points[item_id], by_item[item_id], context)
                if result.status is None:
                    raise ValidationError("Waiting for instrument data", item_id=item_id)
                context.add_result(result)
                results.append(result)

            verdict = self.aggregator.submit(batch, results, measured_by=measured_by)
            self.store.save_batch(verdict.batch)
            return verdict

    def cancel_batch(self, measurement_id: str) -> Batch:
        """Cancel a batch that is not yet completed."""
        with self.locks.get(measurement_id):
            batch = self.aggregator.cancel(self.store.load_batch(measurement_id))
            self.store.save_batch(batch)
            return batch
