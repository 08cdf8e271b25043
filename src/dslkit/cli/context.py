"""CLI context management for the dispatcher stack and shared state."""

import asyncio
import importlib
import os
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any, TypeVar

from dslkit.cli.parsing import read_json_file
from dslkit.client.executor import TypedClientExecutor
from dslkit.client.transport import LocalTransport
from dslkit.config import DslSettings
from dslkit.core.connection import DatabaseConnection
from dslkit.data.store import SqlStore
from dslkit.dispatch.access import ADMIN_ROLE, Caller
from dslkit.dispatch.dispatcher import OperationDispatcher
from dslkit.schema.registry import ModelRegistry, default_registry

T = TypeVar("T")

DEFAULT_DATABASE_URL = "sqlite:///./dslkit.db"

# Trusted operator without an identity; audit and owner fields stay unset
SYSTEM_CALLER = Caller(roles=(ADMIN_ROLE,))


def get_database_url(url: str | None) -> str:
    """Resolve database URL from CLI arg, environment variable, or default.

    Priority:
    1. Explicit URL argument
    2. DSL_DATABASE_URL environment variable
    3. Default: sqlite:///./dslkit.db
    """
    if url:
        return url
    if env_url := os.getenv("DSL_DATABASE_URL"):
        return env_url
    return DEFAULT_DATABASE_URL


def load_model_sources(registry: ModelRegistry, sources: list[str]) -> None:
    """Register models from JSON files or import declaration modules.

    A ``.json`` source holds a model declaration or a list of them; any other
    source is a module path whose import registers its models.
    """
    for source in sources:
        if source.endswith(".json"):
            declared = read_json_file(source)
            models = declared if isinstance(declared, list) else [declared]
            registry.register_many(models, skip_if_exists=True)
        else:
            importlib.import_module(source)


@dataclass
class CLIContext:
    """Shared context for CLI commands.

    Builds the dispatcher stack lazily and owns its lifecycle.
    """

    database_url: str
    echo: bool
    json_output: bool
    model_sources: list[str] = field(default_factory=list)
    registry: ModelRegistry = field(default=default_registry)
    _dispatcher: OperationDispatcher | None = field(default=None, init=False, repr=False)
    _models_loaded: bool = field(default=False, init=False, repr=False)

    def get_registry(self) -> ModelRegistry:
        """Registry with every model source loaded."""
        if not self._models_loaded:
            load_model_sources(self.registry, self.model_sources)
            self._models_loaded = True
        return self.registry

    def get_dispatcher(self, settings: DslSettings | None = None) -> OperationDispatcher:
        """Get or create the dispatcher (lazy initialization).

        Tables for every registered model are created on first use. Without
        explicit settings, access rules are not enforced.
        """
        if self._dispatcher is None:
            settings = settings or DslSettings.from_env(
                database_url=self.database_url, echo=self.echo, enforce_access=False
            )
            store = SqlStore(DatabaseConnection(settings.database_url, echo=settings.echo))
            self._dispatcher = OperationDispatcher(self.get_registry(), store, settings)
            self._dispatcher.ensure_storage()
        return self._dispatcher

    def get_executor(self) -> TypedClientExecutor:
        """Executor running in-process as the CLI operator."""
        return TypedClientExecutor(LocalTransport(self.get_dispatcher(), SYSTEM_CALLER))

    def run(self, coro: Coroutine[Any, Any, T]) -> T:
        return asyncio.run(coro)

    def close(self) -> None:
        """Close the store connection if open."""
        if self._dispatcher is not None:
            self._dispatcher.store.close()
            self._dispatcher = None
