"""Custom exceptions for dslkit.

Every error carries an actionable message plus a JSON-serializable context,
an HTTP-style status code and a stable machine code:
- Not-found errors list what is available
- Validation errors name the offending model, field or relation
"""

from __future__ import annotations

from typing import Any


class DslError(Exception):
    """Base exception for all dslkit errors."""

    status_code: int = 500
    code: str = "DSL_ERROR"

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as JSON-serializable dict."""
        return {
            "error": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


class ConnectionError(DslError):
    """Failed to connect to the database."""

    code = "CONNECTION_ERROR"


# === Declaration errors ===


class InvalidFieldTypeError(DslError, ValueError):
    """Invalid field type specified."""

    code = "INVALID_FIELD_TYPE"
    VALID_TYPES = ["string", "text", "int", "float", "bool", "datetime", "json", "uuid"]

    def __init__(self, field_type: str) -> None:
        message = f"Invalid field type '{field_type}'. Valid types: {', '.join(self.VALID_TYPES)}"
        super().__init__(message, {"field_type": field_type, "valid_types": self.VALID_TYPES})
        self.field_type = field_type


class InvalidRelationTypeError(DslError, ValueError):
    """Invalid relation type specified."""

    code = "INVALID_RELATION_TYPE"
    VALID_TYPES = ["belongsTo", "hasOne", "hasMany", "manyToMany"]

    def __init__(self, relation_type: str) -> None:
        message = (
            f"Invalid relation type '{relation_type}'. Valid types: {', '.join(self.VALID_TYPES)}"
        )
        super().__init__(
            message, {"relation_type": relation_type, "valid_types": self.VALID_TYPES}
        )
        self.relation_type = relation_type


# === Registry errors ===


class ModelCollisionError(DslError):
    """A model with the same key is already registered."""

    status_code = 409
    code = "MODEL_COLLISION"

    def __init__(self, key: str, existing_origin: str, new_origin: str) -> None:
        message = (
            f"Model collision: '{key}' is already registered by {existing_origin}, "
            f"cannot register it again from {new_origin}. "
            f"Use a distinct module or pass skip_if_exists=True."
        )
        super().__init__(
            message,
            {"key": key, "existing_origin": existing_origin, "new_origin": new_origin},
        )
        self.key = key
        self.existing_origin = existing_origin
        self.new_origin = new_origin


class ModelNotFoundError(DslError):
    """Model is not registered."""

    status_code = 404
    code = "MODEL_NOT_FOUND"

    def __init__(
        self,
        model_name: str,
        module: str | None = None,
        available_models: list[str] | None = None,
    ) -> None:
        available = available_models or []
        label = f"{module}.{model_name}" if module else model_name
        if available:
            message = f"Model '{label}' not found. Available models: {', '.join(available)}"
        else:
            message = f"Model '{label}' not found. No models are registered."
        super().__init__(
            message,
            {"model": model_name, "module": module, "available_models": available},
        )
        self.model_name = model_name
        self.module = module
        self.available_models = available


class AmbiguousModelError(DslError):
    """A bare model name matches models in several modules."""

    status_code = 409
    code = "AMBIGUOUS_MODEL"

    def __init__(self, model_name: str, candidates: list[str]) -> None:
        message = (
            f"Model name '{model_name}' is ambiguous, it matches: {', '.join(candidates)}. "
            f"Pass the module or use a qualified key."
        )
        super().__init__(message, {"model": model_name, "candidates": candidates})
        self.model_name = model_name
        self.candidates = candidates


# === Operation errors ===


class RecordNotFoundError(DslError):
    """Record with given ID does not exist."""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, record_id: Any, model_name: str) -> None:
        message = f"Record '{record_id}' not found in '{model_name}'."
        super().__init__(message, {"record_id": record_id, "model": model_name})
        self.record_id = record_id
        self.model_name = model_name


class ForbiddenOperationError(DslError):
    """Caller lacks a role allowed for the operation."""

    status_code = 403
    code = "FORBIDDEN"

    def __init__(
        self,
        operation: str,
        model_name: str,
        required_roles: list[str] | None = None,
        message: str | None = None,
    ) -> None:
        roles = required_roles or []
        if message is None:
            message = f"Operation '{operation}' on '{model_name}' is not allowed."
            if roles:
                message += f" Required roles: {', '.join(roles)}"
        super().__init__(
            message,
            {"operation": operation, "model": model_name, "required_roles": roles},
        )
        self.operation = operation
        self.model_name = model_name
        self.required_roles = roles


class AuthenticationRequiredError(ForbiddenOperationError):
    """Operation requires an authenticated caller."""

    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, operation: str, model_name: str) -> None:
        super().__init__(
            operation,
            model_name,
            message=f"Authentication required for '{operation}' on '{model_name}'.",
        )


class ValidationError(DslError):
    """Request validation failed."""

    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field_errors: dict[str, str] | None = None) -> None:
        super().__init__(message, {"field_errors": field_errors or {}})
        self.field_errors = field_errors or {}


class FieldNotFoundError(ValidationError):
    """Field is not declared on the model."""

    code = "FIELD_NOT_FOUND"

    def __init__(
        self, field_name: str, model_name: str, available_fields: list[str] | None = None
    ) -> None:
        available = available_fields or []
        if available:
            message = (
                f"Field '{field_name}' not found on '{model_name}'. "
                f"Available fields: {', '.join(available)}"
            )
        else:
            message = f"Field '{field_name}' not found on '{model_name}'. No fields defined."
        super().__init__(message, {field_name: "unknown field"})
        self.context.update(
            {"field_name": field_name, "model": model_name, "available_fields": available}
        )
        self.field_name = field_name
        self.model_name = model_name
        self.available_fields = available


class RelationNotFoundError(ValidationError):
    """Relation is not declared on the model."""

    code = "RELATION_NOT_FOUND"

    def __init__(
        self,
        relation_name: str,
        model_name: str,
        available_relations: list[str] | None = None,
    ) -> None:
        available = available_relations or []
        if available:
            message = (
                f"Relation '{relation_name}' not found on '{model_name}'. "
                f"Available relations: {', '.join(available)}"
            )
        else:
            message = (
                f"Relation '{relation_name}' not found on '{model_name}'. "
                "No relations defined."
            )
        super().__init__(message, {relation_name: "unknown relation"})
        self.context.update(
            {
                "relation_name": relation_name,
                "model": model_name,
                "available_relations": available,
            }
        )
        self.relation_name = relation_name
        self.model_name = model_name
        self.available_relations = available


class PayloadTooLargeError(ValidationError):
    """Anonymous payload exceeds the configured size limit."""

    status_code = 413
    code = "PAYLOAD_TOO_LARGE"

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"Payload of {size} bytes exceeds the limit of {limit} bytes.")
        self.context.update({"size": size, "limit": limit})
        self.size = size
        self.limit = limit


class QueryError(DslError):
    """Query execution failed."""

    code = "QUERY_ERROR"


# === Client errors ===


class TransportError(DslError):
    """A request could not be delivered or returned a failure status."""

    code = "TRANSPORT_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: Any = None,
    ) -> None:
        super().__init__(message, {"status_code": status_code, "body": body})
        if status_code is not None:
            self.status_code = status_code
        self.body = body


class OperationFailedError(TransportError):
    """A client operation failed, annotated with the model and operation."""

    code = "OPERATION_FAILED"

    def __init__(self, model_name: str, operation: str, cause: TransportError) -> None:
        super().__init__(
            f"Error executing {operation} operation on model {model_name}: {cause.message}",
            status_code=cause.status_code,
            body=cause.body,
        )
        self.context.update({"model": model_name, "operation": operation})
        self.model_name = model_name
        self.operation = operation
