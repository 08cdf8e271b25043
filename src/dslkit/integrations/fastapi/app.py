"""HTTP endpoint for operation requests.

- POST {prefix}: execute an operation, returns the bare result
- GET {prefix}/registry: keys and metadata of the models the caller may read
- GET {prefix}/models/{name}: metadata of one model, under its read rule
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse

from dslkit.core.types import OperationKind, OperationRequest
from dslkit.dispatch.access import ANONYMOUS, Caller
from dslkit.dispatch.dispatcher import METADATA_FLAG, OperationDispatcher
from dslkit.exceptions import DslError

logger = logging.getLogger(__name__)

CallerDependency = Callable[..., Caller]


def caller_from_headers(
    x_user_id: str | None = Header(default=None),
    x_user_roles: str | None = Header(default=None),
) -> Caller:
    """Read the caller from ``X-User-Id`` and ``X-User-Roles`` (comma separated).

    Only for deployments behind a proxy that sets these headers itself.
    """
    if not x_user_id:
        return ANONYMOUS
    user_id: int | str = int(x_user_id) if x_user_id.isdigit() else x_user_id
    roles = tuple(r.strip() for r in (x_user_roles or "").split(",") if r.strip())
    return Caller(id=user_id, roles=roles)


def anonymous_caller() -> Caller:
    return ANONYMOUS


def default_caller(dispatcher: OperationDispatcher) -> CallerDependency:
    """Identity dependency used when the host application supplies none.

    Headers are honored only with ``trust_caller_headers`` set; otherwise every
    request is anonymous.
    """
    if dispatcher.settings.trust_caller_headers:
        return caller_from_headers
    return anonymous_caller


def create_router(
    dispatcher: OperationDispatcher,
    get_caller: CallerDependency | None = None,
    prefix: str = "/dsl",
) -> APIRouter:
    """Build the router serving ``dispatcher``."""
    router = APIRouter(prefix=prefix, tags=["DSL"])
    resolve_caller = get_caller or default_caller(dispatcher)

    @router.post("")
    async def execute_operation(
        request: OperationRequest,
        caller: Caller = Depends(resolve_caller),
    ) -> Any:
        """Execute one operation request."""
        logger.debug(f"{request.operation} on '{request.model}' by caller {caller.id}")
        return await dispatcher.execute(request, caller)

    @router.get("/registry")
    async def describe_registry(caller: Caller = Depends(resolve_caller)) -> dict[str, Any]:
        """List the models the caller may read."""
        return dispatcher.describe_registry(caller)

    @router.get("/models/{name}")
    async def get_model_metadata(
        name: str,
        module: str | None = None,
        caller: Caller = Depends(resolve_caller),
    ) -> dict[str, Any]:
        """Get a model's metadata."""
        result: dict[str, Any] = await dispatcher.execute_operation(
            name, OperationKind.READ, filter={METADATA_FLAG: True}, caller=caller, module=module
        )
        return result

    return router


async def _handle_dsl_error(request: Request, exc: DslError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


def install_error_handlers(app: FastAPI) -> None:
    """Render DslError subclasses as ``{"error": {...}}`` with their status code."""
    app.add_exception_handler(DslError, _handle_dsl_error)  # type: ignore[arg-type]


def create_app(
    dispatcher: OperationDispatcher,
    get_caller: CallerDependency | None = None,
    prefix: str = "/dsl",
    title: str = "dslkit",
) -> FastAPI:
    """Create a FastAPI application exposing ``dispatcher``.

    Without ``get_caller`` the identity follows :func:`default_caller`.
    """
    app = FastAPI(title=title)
    app.state.dispatcher = dispatcher
    app.include_router(create_router(dispatcher, get_caller, prefix))
    install_error_handlers(app)
    return app
