"""Tests for batch aggregation and the batch builder."""

from datetime import datetime, timezone

import pytest

from qcgate.batch import (
    Batch,
    BatchAggregator,
    BatchBuilder,
    BatchStatus,
    MeasurementResult,
    SampleResult,
)
from qcgate.errors import BatchStateError, ValidationError
from qcgate.registry import EvaluationType, ProductSpec

NOW = datetime(2025, 9, 22, 8, 30, tzinfo=timezone.utc)


def result(name_id: str, status: bool | None, sample_statuses: list[bool | None] = ()) -> MeasurementResult:
    return MeasurementResult(
        measurement_item_name_id=name_id,
        evaluation_type=EvaluationType.PER_SAMPLE,
        status=status,
        samples=[
            SampleResult(sample_index=i, single_value=1.0, status=s)
            for i, s in enumerate(sample_statuses, start=1)
        ],
    )


@pytest.fixture
def batch() -> Batch:
    """An empty PENDING batch."""
    return Batch(
        measurement_id="MSR-0000ABCD",
        product_id="steel_plate",
        batch_number="BATCH-20250922-000001",
        sample_count=5,
        created_at=NOW,
    )


@pytest.fixture
def aggregator() -> BatchAggregator:
    """Create a batch aggregator instance."""
    return BatchAggregator()


class TestSubmit:
    """Tests for final submission."""

    def test_all_pass(self, aggregator: BatchAggregator, batch: Batch) -> None:
        """Test a batch passes when every item passes."""
        verdict = aggregator.submit(batch, [result("a", True), result("b", True)], measured_by="qc1")
        assert verdict.overall_result == "OK"
        assert verdict.status is BatchStatus.COMPLETED
        assert verdict.batch.overall_result is True
        assert verdict.batch.measured_by == "qc1"
        assert verdict.batch.measured_at is not None

    def test_one_failure_fails_batch(self, aggregator: BatchAggregator, batch: Batch) -> None:
        """Test one failing item fails the batch."""
        verdict = aggregator.submit(
            batch, [result("a", True), result("b", False), result("c", True)]
        )
        assert verdict.overall_result == "NG"
        assert verdict.batch.overall_result is False
        assert verdict.summary.passed_items == 2
        assert verdict.summary.failed_items == 1
        assert verdict.summary.pass_rate == 66.67

    def test_stored_results_count(self, aggregator: BatchAggregator, batch: Batch) -> None:
        """Test earlier saved results take part in the verdict."""
        batch.measurement_results = [result("a", False)]
        verdict = aggregator.submit(batch, [result("b", True)])
        assert verdict.overall_result == "NG"
        assert verdict.summary.total_items == 2

    def test_resubmitted_item_replaces_stored(self, aggregator: BatchAggregator, batch: Batch) -> None:
        """Test a submitted result replaces the stored result for that item."""
        batch.measurement_results = [result("a", False)]
        verdict = aggregator.submit(batch, [result("a", True)])
        assert verdict.overall_result == "OK"
        assert len(verdict.batch.measurement_results) == 1

    def test_input_batch_untouched(self, aggregator: BatchAggregator, batch: Batch) -> None:
        """Test submit returns a new batch."""
        aggregator.submit(batch, [result("a", True)])
        assert batch.status is BatchStatus.PENDING
        assert batch.measurement_results == []

    def test_pending_item_rejected(self, aggregator: BatchAggregator, batch: Batch) -> None:
        """Test every item needs a verdict before completion."""
        with pytest.raises(ValidationError, match="no verdict yet: b"):
            aggregator.submit(batch, [result("a", True), result("b", None)])
        assert batch.status is BatchStatus.PENDING

    def test_empty_rejected(self, aggregator: BatchAggregator, batch: Batch) -> None:
        """Test a batch with no items cannot be completed."""
        with pytest.raises(ValidationError, match="No measurement items"):
            aggregator.submit(batch, [])

    @pytest.mark.parametrize("status", [BatchStatus.COMPLETED, BatchStatus.CANCELLED])
    def test_closed_batch(self, aggregator: BatchAggregator, batch: Batch, status: BatchStatus) -> None:
        """Test completed and cancelled batches are read-only."""
        batch.status = status
        with pytest.raises(BatchStateError, match=f"in status {status.value}"):
            aggregator.submit(batch, [result("a", True)])


class TestSaveProgress:
    """Tests for partial saves."""

    def test_merge(self, aggregator: BatchAggregator, batch: Batch) -> None:
        """Test partial results merge into the stored set."""
        first = aggregator.save_progress(batch, [result("a", True), result("b", None)])
        assert first.batch.status is BatchStatus.IN_PROGRESS
        assert first.saved_items == 2
        assert first.total_items == 2
        assert first.progress == 50.0

        second = aggregator.save_progress(first.batch, [result("b", False)])
        assert second.saved_items == 1
        assert second.total_items == 2
        assert second.progress == 100.0
        assert second.batch.overall_result is None

    def test_closed_batch(self, aggregator: BatchAggregator, batch: Batch) -> None:
        """Test progress cannot be saved on a completed batch."""
        batch.status = BatchStatus.COMPLETED
        with pytest.raises(BatchStateError):
            aggregator.save_progress(batch, [result("a", True)])


class TestCancel:
    """Tests for cancellation."""

    def test_cancel(self, aggregator: BatchAggregator, batch: Batch) -> None:
        """Test cancelling a pending batch."""
        cancelled = aggregator.cancel(batch)
        assert cancelled.status is BatchStatus.CANCELLED
        assert batch.status is BatchStatus.PENDING

    def test_cancel_twice(self, aggregator: BatchAggregator, batch: Batch) -> None:
        """Test a cancelled batch cannot be cancelled again."""
        cancelled = aggregator.cancel(batch)
        with pytest.raises(BatchStateError):
            aggregator.cancel(cancelled)


class TestSummary:
    """Tests for summarize."""

    def test_sample_summaries(self, aggregator: BatchAggregator) -> None:
        """Test per-sample OK/NG/N/A labels."""
        summary = aggregator.summarize([result("a", False, [True, False, None])])
        detail = summary.item_details[0]
        assert detail.result == "NG"
        assert [s.result for s in detail.samples_summary] == ["OK", "NG", "N/A"]

    def test_empty(self, aggregator: BatchAggregator) -> None:
        """Test an empty summary has a zero pass rate."""
        summary = aggregator.summarize([])
        assert summary.total_items == 0
        assert summary.pass_rate == 0.0


class TestBatchBuilder:
    """Tests for BatchBuilder."""

    def test_deterministic_ids(self, steel_plate: ProductSpec) -> None:
        """Test deterministic builders repeat their ids."""
        first = BatchBuilder(deterministic_ids=True).build(steel_plate, now=NOW)
        second = BatchBuilder(deterministic_ids=True).build(steel_plate, now=NOW)
        assert first.measurement_id == second.measurement_id
        assert first.batch_number == second.batch_number

    def test_id_format(self, steel_plate: ProductSpec) -> None:
        """Test generated id and batch number formats."""
        batch = BatchBuilder().build(steel_plate, now=NOW)
        assert batch.measurement_id.startswith("MSR-")
        assert len(batch.measurement_id) == 12
        assert batch.batch_number.startswith("BATCH-20250922-")
        assert len(batch.batch_number) == len("BATCH-20250922-") + 6
        assert batch.status is BatchStatus.PENDING
        assert batch.created_at == NOW

    def test_successive_ids_differ(self, steel_plate: ProductSpec) -> None:
        """Test one builder never repeats an id."""
        builder = BatchBuilder(deterministic_ids=True)
        ids = {builder.build(steel_plate).measurement_id for _ in range(5)}
        assert len(ids) == 5

    def test_sample_count(self, steel_plate: ProductSpec) -> None:
        """Test the default sample count comes from the first point."""
        builder = BatchBuilder()
        assert builder.build(steel_plate).sample_count == 5
        assert builder.build(steel_plate, sample_count=2).sample_count == 2

    def test_explicit_batch_number(self, steel_plate: ProductSpec) -> None:
        """Test a given batch number is kept."""
        batch = BatchBuilder().build(steel_plate, batch_number="LOT-7", measured_by="qc1")
        assert batch.batch_number == "LOT-7"
        assert batch.measured_by == "qc1"
