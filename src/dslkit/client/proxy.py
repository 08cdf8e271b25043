"""Process-wide model proxy.

``dsl.model("Widget")`` returns a cached lightweight client that looks up
the current executor on every call, so the executor can be swapped with
``set_executor`` (e.g. in tests) without invalidating the cache.

Example:
    from dslkit.client.proxy import dsl

    widgets = dsl.model("Widget")
    rows = await widgets.find_many({"status": "published"})
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from dslkit.client.executor import TypedClientExecutor
from dslkit.client.model_client import ModelClient, RelationClient
from dslkit.core.types import FieldSpec

logger = logging.getLogger(__name__)

_executor: TypedClientExecutor | None = None


def get_executor() -> TypedClientExecutor:
    """Return the process executor, building it from settings on first use."""
    global _executor
    if _executor is None:
        logger.debug("Creating process-wide executor from settings")
        _executor = TypedClientExecutor.from_settings()
    return _executor


def set_executor(executor: TypedClientExecutor | None) -> None:
    """Replace the process executor; None resets to lazy creation."""
    global _executor
    _executor = executor


ExecutorProvider = Callable[[], TypedClientExecutor]


class ProxyModelClient:
    """Model client surface that resolves the executor per call."""

    def __init__(self, name: str, provider: ExecutorProvider) -> None:
        self.name = name
        self._provider = provider

    def __repr__(self) -> str:
        return f"ProxyModelClient({self.name!r})"

    @property
    def _client(self) -> ModelClient[Any]:
        return self._provider().get_model(self.name)

    async def find_by_id(self, id: Any, include: list[str] | None = None) -> Any:
        return await self._client.find_by_id(id, include)

    async def find_many(
        self,
        filter: dict[str, Any] | None = None,
        include: list[str] | None = None,
        pagination: dict[str, Any] | None = None,
    ) -> Any:
        return await self._client.find_many(filter, include, pagination)

    async def create(self, data: dict[str, Any], include: list[str] | None = None) -> Any:
        return await self._client.create(data, include)

    async def update(
        self, id: Any, data: dict[str, Any], include: list[str] | None = None
    ) -> Any:
        return await self._client.update(id, data, include)

    async def delete(self, id: Any) -> Any:
        return await self._client.delete(id)

    async def count(self, filter: dict[str, Any] | None = None) -> int:
        return await self._client.count(filter)

    async def get_metadata(self) -> dict[str, Any]:
        return await self._client.get_metadata()

    async def get_fields(self, visibility: list[str] | None = None) -> list[FieldSpec]:
        return await self._client.get_fields(visibility)

    async def get_field(self, name: str) -> FieldSpec | None:
        return await self._client.get_field(name)

    def relation(self, id: Any, relation_name: str) -> RelationClient[Any]:
        return self._client.relation(id, relation_name)


class ModelProxy:
    """Table of proxy clients keyed by model name."""

    def __init__(self, provider: ExecutorProvider = get_executor) -> None:
        self._provider = provider
        self._clients: dict[str, ProxyModelClient] = {}

    def model(self, name: str) -> ProxyModelClient:
        client = self._clients.get(name)
        if client is None:
            client = ProxyModelClient(name, self._provider)
            self._clients[name] = client
        return client

    def clear(self) -> None:
        self._clients.clear()


dsl = ModelProxy()
