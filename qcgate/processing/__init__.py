"""Per-sample pre-processing."""

from qcgate.processing.processor import SampleProcessor, raw_bindings

__all__ = ["SampleProcessor", "raw_bindings"]
