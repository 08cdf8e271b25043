"""Client side of dslkit: executor, model clients and the proxy cache."""

from dslkit.client.executor import TypedClientExecutor
from dslkit.client.model_client import ModelClient, RelationClient
from dslkit.client.proxy import ModelProxy, ProxyModelClient, dsl, get_executor, set_executor
from dslkit.client.transport import HttpTransport, LocalTransport, Transport

__all__ = [
    "TypedClientExecutor",
    "ModelClient",
    "RelationClient",
    "ModelProxy",
    "ProxyModelClient",
    "dsl",
    "get_executor",
    "set_executor",
    "HttpTransport",
    "LocalTransport",
    "Transport",
]
