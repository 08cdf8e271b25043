"""Typed client executor.

The single client-side entry point: shapes an operation request, sends it
through a transport and hands back the decoded result. Holds the model and
relation client caches for its lifetime.
"""

from __future__ import annotations

import logging
from typing import Any

from dslkit.client.model_client import ModelClient, RelationClient
from dslkit.client.transport import HttpTransport, Transport
from dslkit.config import DslSettings
from dslkit.exceptions import OperationFailedError, TransportError

logger = logging.getLogger(__name__)


class TypedClientExecutor:
    """Executes operations through a transport.

    Example:
        executor = TypedClientExecutor(HttpTransport("http://localhost:8000"))
        widgets = executor.get_model("Widget")
        created = await widgets.create({"name": "A"})
    """

    def __init__(self, transport: Transport) -> None:
        self._transport = transport
        self._model_clients: dict[str, ModelClient[Any]] = {}
        self._relation_clients: dict[tuple[str, Any, str], RelationClient[Any]] = {}

    @classmethod
    def from_settings(cls, settings: DslSettings | None = None) -> TypedClientExecutor:
        """Build an executor talking HTTP to ``settings.api_url``."""
        settings = settings or DslSettings.from_env()
        transport = HttpTransport(
            settings.api_url,
            endpoint=settings.api_endpoint,
            timeout=settings.request_timeout,
        )
        return cls(transport)

    @property
    def transport(self) -> Transport:
        return self._transport

    def get_model(self, name: str) -> ModelClient[Any]:
        """Get the cached client for a model, creating it on first use."""
        client = self._model_clients.get(name)
        if client is None:
            logger.debug(f"Creating model client for '{name}'")
            client = ModelClient(name, self)
            self._model_clients[name] = client
        return client

    def relation_client(
        self, model: str, parent_id: Any, relation_name: str
    ) -> RelationClient[Any]:
        """Get the cached client for one parent's relation."""
        key = (model, parent_id, relation_name)
        client = self._relation_clients.get(key)
        if client is None:
            client = RelationClient(self.get_model(model), parent_id, relation_name)
            self._relation_clients[key] = client
        return client

    async def execute_operation(
        self,
        model: str,
        operation: str,
        data: Any = None,
        filter: dict[str, Any] | None = None,
        include: list[str] | None = None,
        pagination: dict[str, Any] | None = None,
        relation: dict[str, Any] | None = None,
    ) -> Any:
        """Send one operation request.

        Absent members are left out of the request body.

        Raises:
            OperationFailedError: The transport or the dispatcher reported a failure
        """
        payload: dict[str, Any] = {"model": model, "operation": operation}
        for key, value in (
            ("data", data),
            ("filter", filter),
            ("include", include),
            ("pagination", pagination),
            ("relation", relation),
        ):
            if value is not None:
                payload[key] = value

        logger.debug(f"Executing {operation} on '{model}'")
        try:
            return await self._transport.send(payload)
        except TransportError as e:
            logger.error(f"Error executing {operation} operation on model {model}: {e.message}")
            raise OperationFailedError(model, operation, e) from e

    async def close(self) -> None:
        await self._transport.close()
