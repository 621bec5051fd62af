"""Batch evaluation pipeline."""

from qcgate.pipeline.orchestrator import (
    EvaluationPipeline,
    PipelineConfig,
    coerce_submissions,
    evaluation_order,
)

__all__ = ["EvaluationPipeline", "PipelineConfig", "coerce_submissions", "evaluation_order"]
