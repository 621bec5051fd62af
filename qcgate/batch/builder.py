"""Builder for new Batch records."""

import uuid
from datetime import datetime, timezone

from qcgate.batch.models import Batch
from qcgate.registry.models import ProductSpec

DEFAULT_SAMPLE_COUNT = 3


class BatchBuilder:
    """Creates PENDING batches with generated identifiers.

    Measurement ids look like ``MSR-1A2B3C4D`` and default batch numbers
    like ``BATCH-20250922-9F3E1C``.
    """

    def __init__(self, deterministic_ids: bool = False) -> None:
        """Initialize the builder.

        Args:
            deterministic_ids: If True, derive ids from the product and a
                               counter (for testing). If False, use random ids.
        """
        self.deterministic_ids = deterministic_ids
        self._id_counter = 0

    def _generate_code(self, seed: str, length: int) -> str:
        if self.deterministic_ids:
            self._id_counter += 1
            namespace = uuid.UUID("6ba7b810-9dad-11d1-80b4-00c04fd430c8")
            code = uuid.uuid5(namespace, f"{seed}:{self._id_counter}").hex
        else:
            code = uuid.uuid4().hex
        return code[:length].upper()

    def build(
        self,
        product: ProductSpec,
        batch_number: str | None = None,
        sample_count: int | None = None,
        measured_by: str | None = None,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> Batch:
        """Build a new PENDING batch for a product.

        Args:
            product: The product under test.
            batch_number: Production batch number; generated if omitted.
            sample_count: Samples per item; defaults to the first point's
                          ``sample_amount``, else 3.
            measured_by: Acting user, for audit.
            notes: Free-text notes.
            now: Creation time; defaults to the current UTC time.

        Returns:
            The new Batch.
        """
        created_at = now or datetime.now(timezone.utc)
        if sample_count is None:
            points = product.measurement_points
            sample_count = points[0].setup.sample_amount if points else DEFAULT_SAMPLE_COUNT
        if batch_number is None:
            code = self._generate_code(f"{product.product_id}:batch", 6)
            batch_number = f"BATCH-{created_at:%Y%m%d}-{code}"

        return Batch(
            measurement_id=f"MSR-{self._generate_code(product.product_id, 8)}",
            product_id=product.product_id,
            batch_number=batch_number,
            sample_count=sample_count,
            measured_by=measured_by,
            notes=notes,
            created_at=created_at,
        )
