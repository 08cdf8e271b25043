"""Role-based access rules and ownership scoping."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from dslkit.config import DslSettings
from dslkit.core.types import ModelSpec, OperationKind
from dslkit.exceptions import (
    AuthenticationRequiredError,
    ForbiddenOperationError,
    PayloadTooLargeError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ANONYMOUS_ROLE = "anonymous"
ADMIN_ROLE = "admin"

# Operations an anonymous caller may ever perform
ANONYMOUS_OPERATIONS = (OperationKind.CREATE, OperationKind.READ)

# Script-like content rejected in anonymous writes
SUSPICIOUS_PATTERNS = [
    "<script",
    "javascript:",
    "onerror=",
    "onload=",
    "eval(",
    "function(",
    "=>",
    "document.",
    "window.",
    "alert(",
    "confirm(",
]


@dataclass(frozen=True)
class Caller:
    """Identity the host application attaches to an operation."""

    id: int | str | None = None
    roles: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_anonymous(self) -> bool:
        return self.id is None

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles


ANONYMOUS = Caller()


def check_access(
    model: ModelSpec,
    operation: str,
    caller: Caller,
    settings: DslSettings,
    data: Mapping[str, Any] | None = None,
) -> None:
    """Ensure ``caller`` may run ``operation`` on ``model``.

    Raises:
        AuthenticationRequiredError: Anonymous caller on a non-public operation
        ForbiddenOperationError: Caller holds none of the allowed roles
        PayloadTooLargeError: Anonymous write over the size limit
        ValidationError: Anonymous write with rejected content
    """
    if model.access is None:
        if caller.is_anonymous:
            raise AuthenticationRequiredError(operation, model.name)
        return

    allowed = model.access.roles_for(operation) or []

    if caller.is_anonymous:
        if ANONYMOUS_ROLE not in allowed:
            raise AuthenticationRequiredError(operation, model.name)
        _check_anonymous(model, operation, data, settings)
        return

    if not set(caller.roles) & set(allowed):
        logger.warning(
            f"Denied {operation} on '{model.key}' for caller {caller.id} "
            f"with roles {list(caller.roles)}"
        )
        raise ForbiddenOperationError(operation, model.name, allowed)


def can_access(model: ModelSpec, operation: str, caller: Caller) -> bool:
    """Role check alone, without payload rules or logging."""
    if model.access is None:
        return not caller.is_anonymous
    allowed = model.access.roles_for(operation) or []
    if caller.is_anonymous:
        return ANONYMOUS_ROLE in allowed
    return bool(set(caller.roles) & set(allowed))


def _check_anonymous(
    model: ModelSpec,
    operation: str,
    data: Mapping[str, Any] | None,
    settings: DslSettings,
) -> None:
    if operation not in ANONYMOUS_OPERATIONS:
        raise ForbiddenOperationError(
            operation,
            model.name,
            message="Anonymous access only allowed for create and read operations",
        )
    if operation == OperationKind.READ:
        return

    if not isinstance(data, Mapping):
        raise ValidationError("Data must be an object", {"data": "expected an object"})

    serialized = json.dumps(data, default=str)
    if len(serialized) > settings.anonymous_payload_limit:
        raise PayloadTooLargeError(len(serialized), settings.anonymous_payload_limit)

    lowered = serialized.lower()
    for pattern in SUSPICIOUS_PATTERNS:
        if pattern in lowered:
            raise ValidationError("Suspicious content detected", {"data": "rejected content"})

    for key, value in data.items():
        if isinstance(value, str) and len(value) > settings.anonymous_string_limit:
            raise ValidationError(f"Field {key} too long", {key: "too long"})


def ownership_scope(model: ModelSpec, operation: str, caller: Caller) -> dict[str, Any] | None:
    """Filter restricting rows to the caller's own, or None when unscoped."""
    ownership = model.ownership
    if ownership is None or caller.is_anonymous:
        return None
    if ownership.admin_bypass and caller.is_admin:
        return None

    if operation in (OperationKind.READ, OperationKind.COUNT):
        scoped = ownership.auto_filter and OperationKind.READ in ownership.operations
    else:
        scoped = operation in ownership.operations
    return {ownership.field: caller.id} if scoped else None
