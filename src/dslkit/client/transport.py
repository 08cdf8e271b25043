"""Transports carrying operation requests to a dispatcher.

- HttpTransport: POSTs the JSON body to the operation endpoint with httpx
- LocalTransport: calls an in-process dispatcher directly
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

import httpx
from pydantic import ValidationError as PydanticValidationError

from dslkit.core.types import OperationRequest
from dslkit.dispatch.access import ANONYMOUS, Caller
from dslkit.exceptions import DslError, TransportError

if TYPE_CHECKING:
    from dslkit.dispatch.dispatcher import OperationDispatcher

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Delivers one request payload and returns the decoded response."""

    async def send(self, payload: dict[str, Any]) -> Any: ...

    async def close(self) -> None: ...


class HttpTransport:
    """Sends operation requests to a remote endpoint."""

    def __init__(
        self,
        base_url: str,
        endpoint: str = "dsl",
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            base_url: API root, e.g. "http://localhost:8000"
            endpoint: Path of the operation endpoint
            timeout: Request timeout in seconds
            headers: Extra headers (authentication, caller identity)
            client: Preconfigured client to use instead of creating one
        """
        self.url = f"{base_url.rstrip('/')}/{endpoint.lstrip('/')}"
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=headers or {})
        self._owns_client = client is None

    async def send(self, payload: dict[str, Any]) -> Any:
        try:
            response = await self._client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Request to {self.url} failed: {e}")
            raise TransportError(f"Request to {self.url} failed: {e}") from e

        if response.is_success:
            return response.json()

        body = _decode(response)
        raise TransportError(_error_message(body, response), response.status_code, body)

    async def close(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()


class LocalTransport:
    """Runs requests against a dispatcher in the same process."""

    def __init__(self, dispatcher: OperationDispatcher, caller: Caller | None = None) -> None:
        self._dispatcher = dispatcher
        self.caller = caller or ANONYMOUS

    async def send(self, payload: dict[str, Any]) -> Any:
        try:
            request = OperationRequest.model_validate(payload)
        except PydanticValidationError as e:
            details = e.errors(include_url=False, include_context=False)
            raise TransportError(
                f"Malformed request: {e.error_count()} validation error(s)",
                422,
                {"error": {"message": "Malformed request", "details": details}},
            ) from e

        try:
            return await self._dispatcher.execute(request, self.caller)
        except DslError as e:
            raise TransportError(e.message, e.status_code, {"error": e.to_dict()}) from e

    async def close(self) -> None:
        return None


def _decode(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_message(body: Any, response: httpx.Response) -> str:
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
        if body.get("detail"):
            return str(body["detail"])
    return f"HTTP {response.status_code} {response.reason_phrase}"
