"""Record storage for dslkit."""

from dslkit.data.filters import compile_filter, compile_order_by, validate_filter
from dslkit.data.store import SqlStore

__all__ = [
    "SqlStore",
    "compile_filter",
    "compile_order_by",
    "validate_filter",
]
