"""Batch aggregator: folds item results into batch verdicts.

Every operation works on a copy of the batch it is given and returns the
updated copy, so a failed call leaves the caller's batch untouched.
"""

from datetime import datetime, timezone

import structlog

from qcgate.batch.models import (
    Batch,
    BatchStatus,
    BatchVerdict,
    EvaluationSummary,
    ItemDetail,
    MeasurementResult,
    ProgressReport,
    SampleSummary,
    verdict,
)
from qcgate.diagnostics.models import BatchDiagnostic
from qcgate.errors import BatchStateError, ValidationError

logger = structlog.get_logger(__name__)


def _ensure_writable(batch: Batch, action: str) -> None:
    if not batch.status.is_writable:
        raise BatchStateError(batch.measurement_id, batch.status.value, action)


class BatchAggregator:
    """Merges item results into a batch and computes its verdict."""

    def summarize(self, results: list[MeasurementResult]) -> EvaluationSummary:
        """Build the pass/fail summary of a list of item results."""
        details: list[ItemDetail] = []
        passed = 0
        for result in results:
            if result.status is True:
                passed += 1
            details.append(
                ItemDetail(
                    measurement_item=result.measurement_item_name_id,
                    status=result.status,
                    result=result.result,
                    evaluation_type=result.evaluation_type,
                    final_value=result.final_value,
                    samples_summary=[
                        SampleSummary(
                            sample_index=s.sample_index,
                            status=s.status,
                            result="N/A" if s.status is None else verdict(s.status),
                        )
                        for s in result.samples
                    ],
                )
            )

        total = len(results)
        return EvaluationSummary(
            total_items=total,
            passed_items=passed,
            failed_items=total - passed,
            pass_rate=round(passed / total * 100, 2) if total else 0.0,
            item_details=details,
        )

    def submit(
        self,
        batch: Batch,
        item_results: list[MeasurementResult],
        measured_by: str | None = None,
        measured_at: datetime | None = None,
    ) -> BatchVerdict:
        """Complete a batch with its final item results.

        Results are merged into the batch by item; the overall result is the
        AND of every stored item status.

        Raises:
            BatchStateError: If the batch is already completed or cancelled.
            ValidationError: If any item has no verdict, or there are no items.
        """
        _ensure_writable(batch, "submit")

        completed = batch.model_copy(deep=True)
        for result in item_results:
            completed.put_result(result.model_copy(deep=True))

        if not completed.measurement_results:
            raise ValidationError("No measurement items submitted")
        pending = [
            r.measurement_item_name_id for r in completed.measurement_results if r.status is None
        ]
        if pending:
            raise ValidationError(f"Items have no verdict yet: {', '.join(pending)}")

        completed.overall_result = all(r.status for r in completed.measurement_results)
        completed.status = BatchStatus.COMPLETED
        completed.measured_by = measured_by or completed.measured_by
        completed.measured_at = measured_at or datetime.now(timezone.utc)

        summary = self.summarize(completed.measurement_results)
        logger.info(
            "batch_submitted",
            batch=completed.measurement_id,
            result=verdict(completed.overall_result),
            passed=summary.passed_items,
            total=summary.total_items,
        )
        return BatchVerdict(
            batch=completed,
            status=completed.status,
            overall_result=verdict(completed.overall_result),
            summary=summary,
        )

    def save_progress(
        self,
        batch: Batch,
        partial_results: list[MeasurementResult],
        diagnostics: BatchDiagnostic | None = None,
    ) -> ProgressReport:
        """Merge partial results into a batch and mark it IN_PROGRESS.

        A later result for an item replaces the earlier one; the overall
        result is not computed.

        Raises:
            BatchStateError: If the batch is already completed or cancelled.
        """
        _ensure_writable(batch, "save progress on")

        saved = batch.model_copy(deep=True)
        for result in partial_results:
            saved.put_result(result.model_copy(deep=True))
        saved.status = BatchStatus.IN_PROGRESS
        saved.overall_result = None

        logger.info(
            "batch_progress_saved",
            batch=saved.measurement_id,
            saved_items=len(partial_results),
            total_items=len(saved.measurement_results),
        )
        return ProgressReport(
            batch=saved,
            saved_items=len(partial_results),
            total_items=len(saved.measurement_results),
            progress=saved.progress(),
            diagnostics=diagnostics,
        )

    def cancel(self, batch: Batch) -> Batch:
        """Move a PENDING or IN_PROGRESS batch to CANCELLED.

        Raises:
            BatchStateError: If the batch is already completed or cancelled.
        """
        _ensure_writable(batch, "cancel")
        cancelled = batch.model_copy(deep=True)
        cancelled.status = BatchStatus.CANCELLED
        logger.info("batch_cancelled", batch=cancelled.measurement_id)
        return cancelled
