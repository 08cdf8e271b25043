"""dslkit - Generic CRUD engine over declared models.

Models are declared as data (fields, relations, access rules) and registered
once. A single dispatcher then serves create, read, update, delete and count
for every model, and typed clients call it in-process or over HTTP.

Example:
    from dslkit import (
        Caller,
        DatabaseConnection,
        LocalTransport,
        OperationDispatcher,
        SqlStore,
        TypedClientExecutor,
        get_registry,
        register_model,
    )

    register_model({
        "name": "Widget",
        "fields": [
            {"name": "name", "type": "string", "required": True},
            {"name": "status", "type": "string", "default": "draft"},
        ],
        "access": {"read": ["user"], "create": ["user"]},
    })

    store = SqlStore(DatabaseConnection("sqlite:///:memory:"))
    dispatcher = OperationDispatcher(get_registry(), store)
    dispatcher.ensure_storage()

    executor = TypedClientExecutor(LocalTransport(dispatcher, Caller(id=1, roles=("user",))))
    widgets = executor.get_model("Widget")
    created = await widgets.create({"name": "Sprocket"})
    page = await widgets.find_many({"status": "draft"}, pagination={"page": 1, "limit": 10})
"""

from dslkit.client import (
    HttpTransport,
    LocalTransport,
    ModelClient,
    ModelProxy,
    RelationClient,
    TypedClientExecutor,
    dsl,
    set_executor,
)
from dslkit.config import DslSettings
from dslkit.core.connection import DatabaseConnection
from dslkit.core.types import (
    FieldSpec,
    FieldType,
    ModelMetadata,
    ModelSpec,
    OperationKind,
    OperationRequest,
    Pagination,
    PaginationMeta,
    RelationSpec,
    RelationType,
)
from dslkit.data.store import SqlStore
from dslkit.dispatch import Caller, EventBus, HookType, ModelEvent, OperationDispatcher
from dslkit.exceptions import (
    AmbiguousModelError,
    AuthenticationRequiredError,
    DslError,
    FieldNotFoundError,
    ForbiddenOperationError,
    ModelCollisionError,
    ModelNotFoundError,
    OperationFailedError,
    RecordNotFoundError,
    RelationNotFoundError,
    TransportError,
    ValidationError,
)
from dslkit.schema import ModelRegistry, ModelValidator, get_registry, register_model

__version__ = "0.3.0"

__all__ = [
    # Registry
    "ModelRegistry",
    "ModelValidator",
    "get_registry",
    "register_model",
    # Server side
    "DatabaseConnection",
    "DslSettings",
    "SqlStore",
    "OperationDispatcher",
    "Caller",
    "HookType",
    "EventBus",
    "ModelEvent",
    # Client side
    "TypedClientExecutor",
    "ModelClient",
    "RelationClient",
    "ModelProxy",
    "dsl",
    "set_executor",
    "HttpTransport",
    "LocalTransport",
    # Types
    "FieldType",
    "FieldSpec",
    "RelationType",
    "RelationSpec",
    "ModelSpec",
    "ModelMetadata",
    "OperationKind",
    "OperationRequest",
    "Pagination",
    "PaginationMeta",
    # Exceptions
    "DslError",
    "ModelNotFoundError",
    "ModelCollisionError",
    "AmbiguousModelError",
    "RecordNotFoundError",
    "FieldNotFoundError",
    "RelationNotFoundError",
    "ValidationError",
    "ForbiddenOperationError",
    "AuthenticationRequiredError",
    "TransportError",
    "OperationFailedError",
]
