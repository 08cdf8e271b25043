"""Core types and specifications for dslkit.

Model declarations are pydantic models. Python attributes are snake_case and
the JSON form uses camelCase aliases (``tableName``, ``foreignKey``, ...);
both spellings are accepted on input.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from dslkit.exceptions import InvalidFieldTypeError, InvalidRelationTypeError

_CAMEL_CONFIG: dict[str, Any] = {
    "alias_generator": to_camel,
    "populate_by_name": True,
    "use_enum_values": True,
}


def to_snake_case(name: str) -> str:
    """Convert a PascalCase/camelCase name to snake_case.

    Args:
        name: The model name (e.g., "CustomerOrder")

    Returns:
        snake_case name (e.g., "customer_order")
    """
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0 and not name[i - 1].isupper():
            result.append("_")
        result.append(char.lower())
    safe_name = "".join(result).replace(" ", "_").replace("-", "_")
    while "__" in safe_name:
        safe_name = safe_name.replace("__", "_")
    return safe_name


def lower_first(name: str) -> str:
    return name[:1].lower() + name[1:]


class FieldType(StrEnum):
    """Supported field types."""

    STRING = "string"
    TEXT = "text"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    DATETIME = "datetime"
    JSON = "json"
    UUID = "uuid"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid field type values."""
        return [t.value for t in cls]

    @classmethod
    def normalize(cls, value: Any) -> FieldType:
        """Resolve a declared type name, accepting common aliases."""
        if isinstance(value, cls):
            return value
        raw = str(value)
        name = _FIELD_TYPE_ALIASES.get(raw.lower(), raw.lower())
        if name not in cls.values():
            raise InvalidFieldTypeError(raw)
        return cls(name)


_FIELD_TYPE_ALIASES = {
    "str": "string",
    "integer": "int",
    "number": "float",
    "decimal": "float",
    "boolean": "bool",
    "date": "datetime",
    "timestamp": "datetime",
    "object": "json",
}


class RelationType(StrEnum):
    """Relation kinds between models."""

    BELONGS_TO = "belongsTo"  # e.g., Post -> Author, FK on the source
    HAS_ONE = "hasOne"  # e.g., User -> Profile, FK on the target
    HAS_MANY = "hasMany"  # e.g., Author -> Posts, FK on the target
    MANY_TO_MANY = "manyToMany"  # e.g., Post <-> Tag, through a junction model

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid relation type values."""
        return [t.value for t in cls]

    @classmethod
    def normalize(cls, value: Any) -> RelationType:
        """Resolve a declared relation type, accepting the legacy names."""
        if isinstance(value, cls):
            return value
        raw = str(value)
        legacy = {"one": "belongsTo", "many": "hasMany"}
        name = legacy.get(raw, raw)
        if name not in cls.values():
            raise InvalidRelationTypeError(raw)
        return cls(name)


class OperationKind(StrEnum):
    """Operations the dispatcher understands."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    COUNT = "count"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid operation values."""
        return [o.value for o in cls]


# === Declarations ===


class ValidationRule(BaseModel):
    """A declarative value constraint on a field."""

    type: Literal["required", "minLength", "maxLength", "pattern", "enum", "min", "max", "email"]
    value: Any = None
    message: str | None = None


class FieldUI(BaseModel):
    """Presentation hints. ``visibility`` tags drive ``get_fields`` filtering."""

    label: str | None = None
    component: str | None = None
    visibility: list[str] | None = None
    is_searchable: bool = False

    model_config = {**_CAMEL_CONFIG, "extra": "allow"}


class FieldSpec(BaseModel):
    """Specification for a field definition."""

    name: str = Field(..., description="Field name")
    type: FieldType = Field(default=FieldType.STRING, description="Field data type")
    required: bool = Field(default=False, description="Whether a value must be supplied")
    unique: bool = Field(default=False, description="Whether values must be unique")
    primary_key: bool = Field(default=False, description="Whether this is the primary key")
    autoincrement: bool = Field(
        default=False,
        validation_alias=AliasChoices("autoincrement", "autoIncrement"),
        description="Whether the store generates integer values",
    )
    default: Any = Field(default=None, description="Default value for the field")
    description: str | None = Field(default=None, description="Human-readable description")
    validation: list[ValidationRule] = Field(default_factory=list)
    ui: FieldUI | None = None

    model_config = _CAMEL_CONFIG

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> FieldType:
        return FieldType.normalize(value)


class ThroughSpec(BaseModel):
    """Junction model for a manyToMany relation."""

    model: str = Field(..., description="Junction model name")
    source_key: str = Field(..., description="Junction field pointing at the source")
    target_key: str = Field(..., description="Junction field pointing at the target")

    model_config = _CAMEL_CONFIG


class RelationSpec(BaseModel):
    """Specification for a relation definition."""

    name: str = Field(..., description="Relation name (e.g., 'author' on Post)")
    type: RelationType = Field(default=RelationType.BELONGS_TO, description="Relation type")
    target: str = Field(..., description="Target model name or key")
    module: str | None = Field(default=None, description="Module of the target model")
    foreign_key: str | None = Field(default=None, description="Field holding the reference")
    inverse_side: str | None = Field(default=None, description="Relation name on the target")
    required: bool = False
    through: ThroughSpec | None = None
    description: str | None = None
    ui: dict[str, Any] | None = None

    model_config = _CAMEL_CONFIG

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> RelationType:
        return RelationType.normalize(value)


class AccessSpec(BaseModel):
    """Roles allowed per operation. ``anonymous`` opens an operation to everyone."""

    create: list[str] | None = None
    read: list[str] | None = None
    update: list[str] | None = None
    delete: list[str] | None = None
    count: list[str] | None = None

    def roles_for(self, operation: str) -> list[str] | None:
        roles = getattr(self, operation, None)
        if roles is None and operation == OperationKind.COUNT:
            return self.read
        return roles


class OwnershipSpec(BaseModel):
    """Scopes rows to the caller through an owner field."""

    field: str
    auto_filter: bool = True
    operations: list[str] = Field(default_factory=lambda: ["read", "update", "delete"])
    admin_bypass: bool = True

    model_config = _CAMEL_CONFIG


class EventsSpec(BaseModel):
    """Event names emitted after mutating operations."""

    after_create: str | None = None
    after_update: str | None = None
    after_delete: str | None = None

    model_config = _CAMEL_CONFIG

    def event_for(self, operation: str) -> str | None:
        return getattr(self, f"after_{operation}", None)


class ModelOptions(BaseModel):
    """Model-level behaviour switches."""

    timestamps: bool = False
    created_at_field: str = "createdAt"
    updated_at_field: str = "updatedAt"

    model_config = _CAMEL_CONFIG


class ModelSpec(BaseModel):
    """Specification for a model.

    The key is ``module.name`` when a module is set, else ``name``. A model
    without a primary key gets an integer autoincrement ``id``.
    """

    name: str = Field(..., description="Model name (PascalCase recommended)")
    module: str | None = Field(default=None, description="Namespace, e.g. a plugin name")
    table_name: str | None = Field(default=None, description="Backing table name")
    fields: list[FieldSpec] = Field(default_factory=list)
    relations: list[RelationSpec] = Field(default_factory=list)
    access: AccessSpec | None = None
    ownership: OwnershipSpec | None = None
    events: EventsSpec | None = None
    description: str | None = None
    ui: dict[str, Any] | None = None
    config: ModelOptions = Field(default_factory=ModelOptions)

    model_config = _CAMEL_CONFIG

    @model_validator(mode="after")
    def _complete(self) -> ModelSpec:
        primary = [f for f in self.fields if f.primary_key]
        if len(primary) > 1:
            names = ", ".join(f.name for f in primary)
            raise ValueError(f"Model '{self.name}' declares several primary keys: {names}")
        if not primary:
            existing = next((f for f in self.fields if f.name == "id"), None)
            if existing is not None:
                promoted = existing.model_copy(update={"primary_key": True})
                self.fields = [promoted if f is existing else f for f in self.fields]
            else:
                pk = FieldSpec(name="id", type=FieldType.INT, primary_key=True, autoincrement=True)
                self.fields = [pk, *self.fields]
        if self.config.timestamps:
            declared = {f.name for f in self.fields}
            for name in (self.config.created_at_field, self.config.updated_at_field):
                if name not in declared:
                    self.fields.append(FieldSpec(name=name, type=FieldType.DATETIME))
        if not self.table_name:
            table = to_snake_case(self.name)
            self.table_name = f"{to_snake_case(self.module)}_{table}" if self.module else table
        return self

    @property
    def key(self) -> str:
        return f"{self.module}.{self.name}" if self.module else self.name

    @property
    def origin(self) -> str:
        """Where the model was declared: ``core`` or ``plugin:<module>``."""
        return f"plugin:{self.module}" if self.module else "core"

    @property
    def primary_key(self) -> FieldSpec:
        return next(f for f in self.fields if f.primary_key)

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    @property
    def relation_names(self) -> list[str]:
        return [r.name for r in self.relations]

    def get_field(self, name: str) -> FieldSpec | None:
        return next((f for f in self.fields if f.name == name), None)

    def get_relation(self, name: str) -> RelationSpec | None:
        return next((r for r in self.relations if r.name == name), None)


# === Requests and results ===


class Pagination(BaseModel):
    """Page selection and ordering for a read."""

    page: int | None = Field(default=None, gt=0)
    limit: int | None = Field(default=None, gt=0)
    order_by: dict[str, str] | list[dict[str, str]] | None = None

    model_config = _CAMEL_CONFIG

    @property
    def is_paged(self) -> bool:
        return self.page is not None or self.limit is not None


class RelationParams(BaseModel):
    """Targets a declared relation of a parent record."""

    parent_id: int | str
    relation_name: str

    model_config = _CAMEL_CONFIG


class OperationRequest(BaseModel):
    """One generic operation against a named model."""

    model: str
    module: str | None = None
    operation: OperationKind
    data: dict[str, Any] | None = None
    filter: dict[str, Any] | None = None
    include: list[str] | None = None
    pagination: Pagination | None = None
    relation: RelationParams | None = None

    model_config = _CAMEL_CONFIG


class PaginationMeta(BaseModel):
    """Page bookkeeping returned with a paginated read."""

    total: int
    page: int
    limit: int
    total_pages: int
    has_more: bool

    model_config = _CAMEL_CONFIG

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> PaginationMeta:
        total_pages = (total + limit - 1) // limit if limit else 0
        return cls(
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages,
            has_more=page < total_pages,
        )


class PaginatedResult(BaseModel):
    """Envelope for a paginated read."""

    data: list[dict[str, Any]]
    pagination_meta: PaginationMeta

    model_config = _CAMEL_CONFIG


class ModelMetadata(BaseModel):
    """Schema description of a model (output format)."""

    name: str
    module: str | None
    table_name: str
    primary_key: str
    fields: list[FieldSpec]
    relations: list[RelationSpec]
    access: AccessSpec | None = None
    description: str | None = None

    model_config = _CAMEL_CONFIG

    @classmethod
    def from_model(cls, model: ModelSpec) -> ModelMetadata:
        return cls(
            name=model.name,
            module=model.module,
            table_name=model.table_name or to_snake_case(model.name),
            primary_key=model.primary_key.name,
            fields=model.fields,
            relations=model.relations,
            access=model.access,
            description=model.description,
        )


class CycleReport(BaseModel):
    """Result of a cyclic dependency scan."""

    has_cycles: bool
    cycles: list[list[str]] = Field(default_factory=list)

    model_config = _CAMEL_CONFIG
