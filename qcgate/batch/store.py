"""Batch persistence.

The engine reads and writes batches through the ``BatchStore`` protocol.
Two stores are provided: an in-memory one and a directory of JSON documents,
one per batch, each replaced atomically on save.
"""

import threading
import weakref
from pathlib import Path
from typing import Protocol

import structlog

from qcgate.batch.models import Batch
from qcgate.io import atomic_write, read_json

logger = structlog.get_logger(__name__)


class BatchNotFoundError(Exception):
    """Raised when a batch is not in the store."""

    pass


class BatchStore(Protocol):
    def load_batch(self, measurement_id: str) -> Batch: ...

    def save_batch(self, batch: Batch) -> None: ...


class InMemoryBatchStore:
    """Keeps batches in a dict; loads return copies."""

    def __init__(self) -> None:
        self._batches: dict[str, Batch] = {}

    def load_batch(self, measurement_id: str) -> Batch:
        if measurement_id not in self._batches:
            raise BatchNotFoundError(f"Batch not found: {measurement_id}")
        return self._batches[measurement_id].model_copy(deep=True)

    def save_batch(self, batch: Batch) -> None:
        self._batches[batch.measurement_id] = batch.model_copy(deep=True)

    def list_batches(self) -> list[str]:
        return sorted(self._batches)


class JsonBatchStore:
    """Stores each batch as ``<root>/<measurement_id>.json``."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def _path(self, measurement_id: str) -> Path:
        return self.root / f"{measurement_id}.json"

    def load_batch(self, measurement_id: str) -> Batch:
        path = self._path(measurement_id)
        if not path.exists():
            raise BatchNotFoundError(f"Batch not found: {measurement_id} (expected at {path})")
        return Batch.model_validate(read_json(path))

    def save_batch(self, batch: Batch) -> None:
        path = self._path(batch.measurement_id)
        atomic_write(path, batch.model_dump_json(indent=2))
        logger.debug("batch_saved", batch=batch.measurement_id, path=str(path))

    def list_batches(self) -> list[str]:
        if not self.root.exists():
            return []
        return sorted(p.stem for p in self.root.glob("*.json"))


class BatchLocks:
    """One lock per batch, so writers to the same batch run one at a time.

    Locks are held weakly; an entry lives only while some caller holds its
    lock.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = (
            weakref.WeakValueDictionary()
        )

    def __len__(self) -> int:
        return len(self._locks)

    def get(self, measurement_id: str) -> threading.Lock:
        """Get or create the lock for a batch."""
        with self._guard:
            lock = self._locks.get(measurement_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[measurement_id] = lock
            return lock
