"""Batches, their results, and how results are aggregated and stored."""

from qcgate.batch.aggregator import BatchAggregator
from qcgate.batch.builder import BatchBuilder
from qcgate.batch.models import (
    Batch,
    BatchStatus,
    BatchVerdict,
    EvaluationSummary,
    ItemDetail,
    JointResult,
    MeasurementResult,
    PreProcessingValue,
    ProgressReport,
    ResolvedVariable,
    SampleResult,
    SampleSummary,
)
from qcgate.batch.store import (
    BatchLocks,
    BatchNotFoundError,
    BatchStore,
    InMemoryBatchStore,
    JsonBatchStore,
)

__all__ = [
    "Batch",
    "BatchAggregator",
    "BatchBuilder",
    "BatchLocks",
    "BatchNotFoundError",
    "BatchStatus",
    "BatchStore",
    "BatchVerdict",
    "EvaluationSummary",
    "InMemoryBatchStore",
    "ItemDetail",
    "JointResult",
    "JsonBatchStore",
    "MeasurementResult",
    "PreProcessingValue",
    "ProgressReport",
    "ResolvedVariable",
    "SampleResult",
    "SampleSummary",
]
