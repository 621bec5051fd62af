"""Variable resolution and cross-item lookups."""

from qcgate.resolving.context import BatchContext, BatchLookup
from qcgate.resolving.resolver import VariableResolver

__all__ = ["BatchContext", "BatchLookup", "VariableResolver"]
