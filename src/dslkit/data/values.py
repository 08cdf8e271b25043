"""Value conversion between request JSON and column values."""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from typing import Any

from dslkit.core.types import FieldType
from dslkit.exceptions import ValidationError


def to_storage(value: Any, field_type: str, field_name: str = "value") -> Any:
    """Convert a JSON value to what the column type expects.

    Raises:
        ValidationError: If the value cannot be converted
    """
    if value is None:
        return None
    try:
        if field_type == FieldType.DATETIME:
            if isinstance(value, datetime):
                return value if value.tzinfo else value.replace(tzinfo=UTC)
            if isinstance(value, date):
                return datetime(value.year, value.month, value.day, tzinfo=UTC)
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
        if field_type == FieldType.INT:
            if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
                raise ValueError("not an integer")
            return int(value)
        if field_type == FieldType.FLOAT:
            if isinstance(value, bool):
                raise ValueError("not a number")
            return float(value)
        if field_type == FieldType.BOOL:
            if isinstance(value, str):
                if value.lower() in ("true", "1", "yes"):
                    return True
                if value.lower() in ("false", "0", "no"):
                    return False
                raise ValueError("not a boolean")
            return bool(value)
        if field_type == FieldType.UUID:
            return str(uuid.UUID(str(value)))
        if field_type in (FieldType.STRING, FieldType.TEXT):
            if isinstance(value, (dict, list)):
                raise ValueError("not a string")
            return str(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            f"Invalid value for '{field_name}': expected {field_type}",
            {field_name: str(e)},
        ) from e
    return value


def to_output(value: Any) -> Any:
    """Render a column value as JSON-compatible data."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    return value
