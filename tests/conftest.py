"""Shared test fixtures for dslkit."""

from collections.abc import Generator
from typing import Any

import pytest

from dslkit.client.executor import TypedClientExecutor
from dslkit.client.transport import LocalTransport
from dslkit.config import DslSettings
from dslkit.core.connection import DatabaseConnection
from dslkit.data.store import SqlStore
from dslkit.dispatch.access import Caller
from dslkit.dispatch.dispatcher import OperationDispatcher
from dslkit.schema.registry import ModelRegistry

USER = Caller(id=1, roles=("user",))
OTHER_USER = Caller(id=2, roles=("user",))
ADMIN = Caller(id=99, roles=("admin",))

ALL_OPS = {op: ["user", "admin"] for op in ("create", "read", "update", "delete")}

WIDGET: dict[str, Any] = {
    "name": "Widget",
    "fields": [
        {"name": "name", "type": "string", "required": True, "ui": {"visibility": ["table"]}},
        {"name": "secret", "type": "string", "ui": {"visibility": ["detail"]}},
    ],
    "access": ALL_OPS,
}

ARTICLE: dict[str, Any] = {
    "name": "Article",
    "fields": [
        {"name": "title", "type": "string", "required": True},
        {"name": "status", "type": "string", "default": "draft"},
        {"name": "views", "type": "int", "default": 0},
        {
            "name": "slug",
            "type": "string",
            "validation": [{"type": "pattern", "value": "^[a-z0-9-]+$"}],
        },
        {"name": "contact", "type": "string", "validation": [{"type": "email"}]},
    ],
    "access": {
        "create": ["anonymous", "user"],
        "read": ["anonymous", "user"],
        "update": ["user"],
        "delete": ["admin"],
    },
}

NOTE: dict[str, Any] = {
    "name": "Note",
    "fields": [
        {"name": "body", "type": "text", "required": True},
        {"name": "ownerId", "type": "int"},
        {"name": "createdBy", "type": "int"},
        {"name": "updatedBy", "type": "int"},
    ],
    "access": ALL_OPS,
    "ownership": {"field": "ownerId"},
    "config": {"timestamps": True},
}

BLOG_MODELS: list[dict[str, Any]] = [
    {
        "name": "Author",
        "fields": [{"name": "name", "type": "string", "required": True}],
        "relations": [
            {"name": "posts", "type": "hasMany", "target": "Post", "inverseSide": "author"},
            {"name": "profile", "type": "hasOne", "target": "Profile", "inverseSide": "author"},
        ],
        "access": ALL_OPS,
    },
    {
        "name": "Profile",
        "fields": [{"name": "bio", "type": "text"}, {"name": "authorId", "type": "int"}],
        "relations": [{"name": "author", "type": "belongsTo", "target": "Author"}],
        "access": ALL_OPS,
    },
    {
        "name": "Post",
        "fields": [
            {"name": "title", "type": "string", "required": True},
            {"name": "status", "type": "string", "default": "draft"},
            {"name": "authorId", "type": "int"},
        ],
        "relations": [
            {"name": "author", "type": "belongsTo", "target": "Author", "inverseSide": "posts"},
            {
                "name": "tags",
                "type": "manyToMany",
                "target": "Tag",
                "through": {"model": "PostTag", "sourceKey": "postId", "targetKey": "tagId"},
            },
        ],
        "access": ALL_OPS,
        "events": {"afterCreate": "post.created", "afterDelete": "post.deleted"},
    },
    {
        "name": "Tag",
        "fields": [{"name": "label", "type": "string", "required": True, "unique": True}],
        "relations": [
            {
                "name": "posts",
                "type": "manyToMany",
                "target": "Post",
                "through": {"model": "PostTag", "sourceKey": "tagId", "targetKey": "postId"},
            }
        ],
        "access": ALL_OPS,
    },
    {
        "name": "PostTag",
        "fields": [
            {"name": "postId", "type": "int", "required": True},
            {"name": "tagId", "type": "int", "required": True},
        ],
        "access": ALL_OPS,
    },
]


@pytest.fixture
def registry() -> ModelRegistry:
    """Registry holding every test model."""
    reg = ModelRegistry()
    reg.register_many([WIDGET, ARTICLE, NOTE, *BLOG_MODELS])
    return reg


@pytest.fixture
def settings() -> DslSettings:
    return DslSettings(database_url="sqlite:///:memory:")


@pytest.fixture
def store() -> Generator[SqlStore, None, None]:
    """Record store over SQLite in-memory."""
    record_store = SqlStore(DatabaseConnection("sqlite:///:memory:"))
    yield record_store
    record_store.close()


@pytest.fixture
def dispatcher(
    registry: ModelRegistry, store: SqlStore, settings: DslSettings
) -> OperationDispatcher:
    """Dispatcher with tables created for every test model."""
    dsl_dispatcher = OperationDispatcher(registry, store, settings)
    dsl_dispatcher.ensure_storage()
    return dsl_dispatcher


@pytest.fixture
def executor(dispatcher: OperationDispatcher) -> TypedClientExecutor:
    """Executor calling the dispatcher in-process as USER."""
    return TypedClientExecutor(LocalTransport(dispatcher, USER))


@pytest.fixture
def user() -> Caller:
    return USER


@pytest.fixture
def other_user() -> Caller:
    return OTHER_USER


@pytest.fixture
def admin() -> Caller:
    return ADMIN
