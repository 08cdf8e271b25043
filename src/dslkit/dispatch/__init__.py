"""Server-side operation dispatch."""

from dslkit.dispatch.access import ANONYMOUS, Caller
from dslkit.dispatch.dispatcher import OperationDispatcher
from dslkit.dispatch.hooks import EventBus, HookContext, HookRegistry, HookType, ModelEvent
from dslkit.dispatch.relations import RelationNavigator

__all__ = [
    "ANONYMOUS",
    "Caller",
    "OperationDispatcher",
    "EventBus",
    "HookContext",
    "HookRegistry",
    "HookType",
    "ModelEvent",
    "RelationNavigator",
]
