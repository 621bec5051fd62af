"""Callable protocol for qcgate."""

from qcgate.callable.execute import execute
from qcgate.callable.result import CallableResult

__all__ = ["CallableResult", "execute"]
