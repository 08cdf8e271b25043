"""FastAPI integration for dslkit.

Mounts the operation endpoint on a FastAPI application.

Example:
    from dslkit.integrations.fastapi import create_app

    app = create_app(dispatcher)

    # Or serve it (after pip install)
    dslkit -d sqlite:///./app.db -m myapp.models serve --port 8000
"""

from dslkit.integrations.fastapi.app import (
    anonymous_caller,
    caller_from_headers,
    create_app,
    create_router,
    default_caller,
    install_error_handlers,
)

__all__ = [
    "create_app",
    "create_router",
    "caller_from_headers",
    "anonymous_caller",
    "default_caller",
    "install_error_handlers",
]
