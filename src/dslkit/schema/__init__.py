"""Model registration and declaration checks."""

from dslkit.schema.registry import (
    ModelRegistry,
    default_registry,
    get_registry,
    register_many,
    register_model,
)
from dslkit.schema.validator import ModelCheckResult, ModelValidator, ValidationIssue

__all__ = [
    "ModelRegistry",
    "default_registry",
    "get_registry",
    "register_model",
    "register_many",
    "ModelValidator",
    "ValidationIssue",
    "ModelCheckResult",
]
