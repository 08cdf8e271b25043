"""Core components for dslkit."""

from dslkit.core.connection import DatabaseConnection
from dslkit.core.types import (
    AccessSpec,
    FieldSpec,
    FieldType,
    ModelMetadata,
    ModelSpec,
    OperationKind,
    OperationRequest,
    PaginatedResult,
    Pagination,
    RelationSpec,
    RelationType,
)

__all__ = [
    "DatabaseConnection",
    "AccessSpec",
    "FieldSpec",
    "FieldType",
    "ModelMetadata",
    "ModelSpec",
    "OperationKind",
    "OperationRequest",
    "PaginatedResult",
    "Pagination",
    "RelationSpec",
    "RelationType",
]
