"""Tests for batch stores and file utilities."""

import json
import os
from datetime import datetime, timezone
from pathlib import Path

import pytest

from qcgate.batch import (
    Batch,
    BatchLocks,
    BatchNotFoundError,
    BatchStatus,
    InMemoryBatchStore,
    JsonBatchStore,
    MeasurementResult,
    SampleResult,
)
from qcgate.io import atomic_write, read_json, read_jsonl, write_jsonl
from qcgate.registry import EvaluationType


@pytest.fixture
def batch() -> Batch:
    """A batch with one stored result."""
    return Batch(
        measurement_id="MSR-1A2B3C4D",
        product_id="steel_plate",
        batch_number="BATCH-20250922-9F3E1C",
        sample_count=3,
        status=BatchStatus.IN_PROGRESS,
        measurement_results=[
            MeasurementResult(
                measurement_item_name_id="thickness_a",
                evaluation_type=EvaluationType.PER_SAMPLE,
                status=True,
                samples=[SampleResult(sample_index=1, single_value=14.4, status=True)],
            )
        ],
        created_at=datetime(2025, 9, 22, tzinfo=timezone.utc),
    )


class TestInMemoryBatchStore:
    """Tests for InMemoryBatchStore."""

    def test_round_trip(self, batch: Batch) -> None:
        """Test a saved batch loads back equal."""
        store = InMemoryBatchStore()
        store.save_batch(batch)
        assert store.load_batch(batch.measurement_id) == batch
        assert store.list_batches() == [batch.measurement_id]

    def test_loads_are_copies(self, batch: Batch) -> None:
        """Test mutating a loaded batch does not change the store."""
        store = InMemoryBatchStore()
        store.save_batch(batch)
        loaded = store.load_batch(batch.measurement_id)
        loaded.status = BatchStatus.CANCELLED
        assert store.load_batch(batch.measurement_id).status is BatchStatus.IN_PROGRESS

    def test_missing(self) -> None:
        """Test loading an unknown batch."""
        with pytest.raises(BatchNotFoundError, match="MSR-NOPE"):
            InMemoryBatchStore().load_batch("MSR-NOPE")


class TestJsonBatchStore:
    """Tests for JsonBatchStore."""

    def test_round_trip(self, tmp_path: Path, batch: Batch) -> None:
        """Test a batch survives a save and load through JSON."""
        store = JsonBatchStore(tmp_path / "batches")
        store.save_batch(batch)
        assert (tmp_path / "batches" / "MSR-1A2B3C4D.json").exists()
        loaded = store.load_batch("MSR-1A2B3C4D")
        assert loaded.model_dump() == batch.model_dump()
        assert store.list_batches() == ["MSR-1A2B3C4D"]

    def test_overwrite(self, tmp_path: Path, batch: Batch) -> None:
        """Test saving again replaces the document."""
        store = JsonBatchStore(tmp_path)
        store.save_batch(batch)
        batch.status = BatchStatus.COMPLETED
        store.save_batch(batch)
        assert store.load_batch(batch.measurement_id).status is BatchStatus.COMPLETED
        assert sorted(p.name for p in tmp_path.iterdir()) == ["MSR-1A2B3C4D.json"]

    def test_missing(self, tmp_path: Path) -> None:
        """Test loading an unknown batch."""
        with pytest.raises(BatchNotFoundError):
            JsonBatchStore(tmp_path).load_batch("MSR-NOPE")

    def test_list_missing_root(self, tmp_path: Path) -> None:
        """Test listing a store whose directory does not exist yet."""
        assert JsonBatchStore(tmp_path / "absent").list_batches() == []


class TestBatchLocks:
    """Tests for BatchLocks."""

    def test_same_batch_same_lock(self) -> None:
        """Test a batch always gets the same lock."""
        locks = BatchLocks()
        assert locks.get("MSR-1") is locks.get("MSR-1")
        assert locks.get("MSR-1") is not locks.get("MSR-2")

    def test_released_locks_are_dropped(self) -> None:
        """Test the registry only keeps locks that are still referenced."""
        locks = BatchLocks()
        held = locks.get("MSR-1")
        for i in range(100):
            with locks.get(f"MSR-{i + 2}"):
                pass
        reused = locks.get("MSR-1") is held
        assert reused
        assert len(locks) == 1
        del held
        assert len(locks) == 0


class TestIO:
    """Tests for file utilities."""

    def test_atomic_write(self, tmp_path: Path) -> None:
        """Test atomic_write creates parents and leaves no temp files."""
        target = tmp_path / "nested" / "doc.json"
        atomic_write(target, '{"a": 1}')
        atomic_write(target, '{"a": 2}')
        assert read_json(target) == {"a": 2}
        assert os.listdir(target.parent) == ["doc.json"]

    def test_read_json_invalid(self, tmp_path: Path) -> None:
        """Test invalid JSON raises ValueError."""
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(ValueError, match="Invalid JSON"):
            read_json(path)

    def test_jsonl(self, tmp_path: Path) -> None:
        """Test writing and reading JSONL records."""
        path = tmp_path / "items.jsonl"
        records = [{"measurement_item_name_id": "a"}, {"measurement_item_name_id": "b"}]
        assert write_jsonl(path, records) == 2
        assert list(read_jsonl(path)) == records

    def test_jsonl_skips_blank_lines(self, tmp_path: Path) -> None:
        """Test blank lines are ignored and bad lines reported by number."""
        path = tmp_path / "items.jsonl"
        path.write_text(json.dumps({"a": 1}) + "\n\n{oops\n")
        reader = read_jsonl(path)
        assert next(reader) == {"a": 1}
        with pytest.raises(ValueError, match="line 3"):
            next(reader)
