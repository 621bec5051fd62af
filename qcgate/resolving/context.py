"""Cross-item lookups for formulas that read other measurement items.

A ``BatchContext`` is built once per request. It sees the items already
evaluated in the request, the raw submissions of the request, and a snapshot
of the persisted batch; the snapshot is never re-read during the request.
"""

import math
from collections.abc import Mapping
from typing import Protocol

import structlog

from qcgate.batch.models import Batch, MeasurementResult
from qcgate.validation.models import ItemSubmission

logger = structlog.get_logger(__name__)


class BatchLookup(Protocol):
    """Read access to other items' numeric sample data."""

    def lookup_values(self, name_id: str) -> list[float] | None: ...

    def lookup_average(self, name_id: str) -> float | None: ...


class BatchContext:
    """Numeric sample data of the items in one batch request.

    Lookups search, in order:
    1. items already evaluated in this request
    2. raw submissions of this request (their ``single_value``s)
    3. the persisted batch snapshot

    A lookup that finds no numeric data returns None, unless
    ``legacy_average_fallback`` is set, in which case ``lookup_average``
    returns that constant and logs a warning.
    """

    def __init__(
        self,
        snapshot: Batch | None = None,
        submissions: Mapping[str, ItemSubmission] | None = None,
        legacy_average_fallback: float | None = None,
    ) -> None:
        self.snapshot = snapshot
        self.submissions = dict(submissions or {})
        self.legacy_average_fallback = legacy_average_fallback
        self._evaluated: dict[str, MeasurementResult] = {}

    def add_result(self, result: MeasurementResult) -> None:
        """Make a result evaluated in this request visible to later items."""
        self._evaluated[result.measurement_item_name_id] = result

    def get_result(self, name_id: str) -> MeasurementResult | None:
        """An item's result from this request, else from the snapshot."""
        if name_id in self._evaluated:
            return self._evaluated[name_id]
        if self.snapshot is not None:
            return self.snapshot.get_result(name_id)
        return None

    def lookup_values(self, name_id: str) -> list[float] | None:
        """Per-sample numeric values of an item, or None if there are none."""
        evaluated = self._evaluated.get(name_id)
        if evaluated is not None:
            values = evaluated.sample_values()
            if values:
                return values

        submission = self.submissions.get(name_id)
        if submission is not None:
            values = [s.single_value for s in submission.samples if s.single_value is not None]
            if values:
                return values

        if self.snapshot is not None:
            stored = self.snapshot.get_result(name_id)
            if stored is not None:
                values = stored.sample_values()
                if values:
                    return values
        return None

    def lookup_average(self, name_id: str) -> float | None:
        """Mean of an item's per-sample values, or None if there are none."""
        values = self.lookup_values(name_id)
        if values:
            return math.fsum(values) / len(values)
        if self.legacy_average_fallback is not None:
            logger.warning(
                "average_fallback_used",
                item=name_id,
                value=self.legacy_average_fallback,
            )
            return self.legacy_average_fallback
        return None
