"""Structured filter and ordering compilation.

Filters map field names to a value (equality) or an operator dict, and may
nest ``AND``, ``OR`` and ``NOT``:

    {"status": "published", "views": {"gte": 10}, "OR": [{"title": {"contains": "py"}}]}
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import ColumnElement, Table, and_, func, not_, or_, true

from dslkit.core.types import FieldType, ModelSpec
from dslkit.data.values import to_storage
from dslkit.exceptions import FieldNotFoundError, ValidationError

LOGICAL_KEYS = ("AND", "OR", "NOT")

FILTER_OPERATORS = (
    "equals",
    "not",
    "in",
    "notIn",
    "lt",
    "lte",
    "gt",
    "gte",
    "contains",
    "startsWith",
    "endsWith",
    "isNull",
    "mode",
)

_STRING_TYPES = (FieldType.STRING, FieldType.TEXT, FieldType.UUID)


def filter_fields(where: Mapping[str, Any] | None) -> set[str]:
    """Collect every field name referenced by a filter, including nested ones."""
    names: set[str] = set()
    if not where:
        return names
    for key, value in where.items():
        if key in LOGICAL_KEYS:
            for clause in value if isinstance(value, list) else [value]:
                if isinstance(clause, Mapping):
                    names |= filter_fields(clause)
        else:
            names.add(key)
    return names


def validate_filter(model: ModelSpec, where: Mapping[str, Any] | None) -> None:
    """Check filter fields and operators against the model.

    Raises:
        FieldNotFoundError: If a field is not declared
        ValidationError: If an operator is unknown
    """
    if not where:
        return
    for key, value in where.items():
        if key in LOGICAL_KEYS:
            clauses = value if isinstance(value, list) else [value]
            for clause in clauses:
                if not isinstance(clause, Mapping):
                    raise ValidationError(f"'{key}' expects filter objects", {key: "invalid"})
                validate_filter(model, clause)
            continue
        field = model.get_field(key)
        if field is None:
            raise FieldNotFoundError(key, model.name, model.field_names)
        if isinstance(value, Mapping) and field.type != FieldType.JSON:
            unknown = [op for op in value if op not in FILTER_OPERATORS]
            if unknown:
                raise ValidationError(
                    f"Unknown filter operator '{unknown[0]}' on '{key}'. "
                    f"Supported: {', '.join(FILTER_OPERATORS)}",
                    {key: f"unknown operator '{unknown[0]}'"},
                )


def compile_filter(
    table: Table, model: ModelSpec, where: Mapping[str, Any] | None
) -> ColumnElement[bool]:
    """Compile a filter into a SQLAlchemy boolean expression."""
    if not where:
        return true()
    clauses: list[ColumnElement[bool]] = []
    for key, value in where.items():
        if key == "AND":
            parts = value if isinstance(value, list) else [value]
            clauses.append(and_(true(), *[compile_filter(table, model, p) for p in parts]))
        elif key == "OR":
            parts = value if isinstance(value, list) else [value]
            if parts:
                clauses.append(or_(*[compile_filter(table, model, p) for p in parts]))
        elif key == "NOT":
            parts = value if isinstance(value, list) else [value]
            clauses.append(not_(and_(true(), *[compile_filter(table, model, p) for p in parts])))
        else:
            clauses.append(_compile_field(table, model, key, value))
    return and_(true(), *clauses)


def _compile_field(table: Table, model: ModelSpec, name: str, value: Any) -> ColumnElement[bool]:
    field = model.get_field(name)
    if field is None:
        raise FieldNotFoundError(name, model.name, model.field_names)
    column = table.c[name]

    if not isinstance(value, Mapping) or field.type == FieldType.JSON:
        if value is None:
            return column.is_(None)
        return column == to_storage(value, field.type, name)

    insensitive = value.get("mode") == "insensitive" and field.type in _STRING_TYPES
    target = func.lower(column) if insensitive else column

    def conv(v: Any) -> Any:
        converted = to_storage(v, field.type, name)
        return converted.lower() if insensitive and isinstance(converted, str) else converted

    clauses: list[ColumnElement[bool]] = []
    for op, operand in value.items():
        if op == "mode":
            continue
        if op == "equals":
            clauses.append(column.is_(None) if operand is None else target == conv(operand))
        elif op == "not":
            if isinstance(operand, Mapping):
                clauses.append(not_(_compile_field(table, model, name, operand)))
            elif operand is None:
                clauses.append(column.is_not(None))
            else:
                clauses.append(target != conv(operand))
        elif op == "in":
            clauses.append(target.in_([conv(v) for v in operand]))
        elif op == "notIn":
            clauses.append(target.not_in([conv(v) for v in operand]))
        elif op == "lt":
            clauses.append(target < conv(operand))
        elif op == "lte":
            clauses.append(target <= conv(operand))
        elif op == "gt":
            clauses.append(target > conv(operand))
        elif op == "gte":
            clauses.append(target >= conv(operand))
        elif op == "contains":
            clauses.append(target.contains(conv(operand), autoescape=True))
        elif op == "startsWith":
            clauses.append(target.startswith(conv(operand), autoescape=True))
        elif op == "endsWith":
            clauses.append(target.endswith(conv(operand), autoescape=True))
        elif op == "isNull":
            clauses.append(column.is_(None) if operand else column.is_not(None))
        else:
            raise ValidationError(
                f"Unknown filter operator '{op}' on '{name}'", {name: f"unknown operator '{op}'"}
            )
    return and_(true(), *clauses)


def normalize_order_by(order_by: Any) -> list[tuple[str, str]]:
    """Flatten ``{"field": "asc"}`` or a list of such dicts into pairs."""
    if not order_by:
        return []
    items = order_by if isinstance(order_by, list) else [order_by]
    pairs: list[tuple[str, str]] = []
    for item in items:
        if not isinstance(item, Mapping):
            raise ValidationError("orderBy expects {field: 'asc' | 'desc'}", {"orderBy": "invalid"})
        for name, direction in item.items():
            direction = str(direction).lower()
            if direction not in ("asc", "desc"):
                raise ValidationError(
                    f"Invalid sort direction '{direction}' for '{name}'",
                    {name: "direction must be 'asc' or 'desc'"},
                )
            pairs.append((name, direction))
    return pairs


def validate_order_by(model: ModelSpec, order_by: Any) -> None:
    for name, _ in normalize_order_by(order_by):
        if model.get_field(name) is None:
            raise FieldNotFoundError(name, model.name, model.field_names)


def compile_order_by(table: Table, model: ModelSpec, order_by: Any) -> list[Any]:
    """Compile ordering; defaults to the primary key ascending."""
    pairs = normalize_order_by(order_by)
    columns = []
    for name, direction in pairs:
        if model.get_field(name) is None:
            raise FieldNotFoundError(name, model.name, model.field_names)
        column = table.c[name]
        columns.append(column.desc() if direction == "desc" else column.asc())
    pk = model.primary_key.name
    if pk not in {name for name, _ in pairs}:
        columns.append(table.c[pk].asc())
    return columns
