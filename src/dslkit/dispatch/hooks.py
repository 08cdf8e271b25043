"""Lifecycle hooks and model events.

Hooks run inline around an operation and may replace the data (before) or
the result (after). Events are fire-and-report notifications emitted after a
mutating operation; a failing subscriber is logged, never propagated.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from dslkit.core.types import ModelSpec

logger = logging.getLogger(__name__)


class HookType(StrEnum):
    """Hook points around each operation."""

    BEFORE_CREATE = "beforeCreate"
    AFTER_CREATE = "afterCreate"
    BEFORE_READ = "beforeRead"
    AFTER_READ = "afterRead"
    BEFORE_UPDATE = "beforeUpdate"
    AFTER_UPDATE = "afterUpdate"
    BEFORE_DELETE = "beforeDelete"
    AFTER_DELETE = "afterDelete"
    BEFORE_COUNT = "beforeCount"
    AFTER_COUNT = "afterCount"

    @classmethod
    def before(cls, operation: str) -> HookType:
        return cls(f"before{operation.capitalize()}")

    @classmethod
    def after(cls, operation: str) -> HookType:
        return cls(f"after{operation.capitalize()}")


@dataclass
class HookContext:
    """What a hook knows about the running operation."""

    model: ModelSpec
    operation: str
    filter: dict[str, Any] | None = None
    caller: Any = None


HookHandler = Callable[[Any, HookContext], Any | Awaitable[Any]]


async def _call(handler: Callable[..., Any], *args: Any) -> Any:
    result = handler(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class HookRegistry:
    """Hooks per model key and hook type, run in registration order."""

    def __init__(self) -> None:
        self._hooks: dict[tuple[str, str], list[HookHandler]] = defaultdict(list)

    def register(self, model_key: str, hook_type: HookType | str, handler: HookHandler) -> None:
        self._hooks[(model_key, HookType(hook_type))].append(handler)

    def has_hooks(self, model_key: str, hook_type: HookType | str) -> bool:
        return bool(self._hooks.get((model_key, HookType(hook_type))))

    async def run(self, hook_type: HookType, value: Any, context: HookContext) -> Any:
        """Pass ``value`` through every hook; a hook returning None keeps it."""
        for handler in self._hooks.get((context.model.key, hook_type), []):
            returned = await _call(handler, value, context)
            if returned is not None:
                value = returned
        return value


@dataclass
class ModelEvent:
    """Payload of an event emitted after a mutating operation."""

    name: str
    model: str
    module: str | None
    record: Any
    user_id: int | str | None = None
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())


EventHandler = Callable[[ModelEvent], Any | Awaitable[Any]]


class EventBus:
    """In-process publish/subscribe keyed by event name.

    Subscribing to ``"*"`` receives every event.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, name: str, handler: EventHandler) -> Callable[[], None]:
        """Subscribe a handler.

        Returns:
            A callable that removes the subscription
        """
        self._subscribers[name].append(handler)

        def unsubscribe() -> None:
            if handler in self._subscribers[name]:
                self._subscribers[name].remove(handler)

        return unsubscribe

    async def emit(self, event: ModelEvent) -> None:
        handlers = [*self._subscribers.get(event.name, []), *self._subscribers.get("*", [])]
        logger.info(f"Emitting event '{event.name}' for '{event.model}'")
        for handler in handlers:
            try:
                await _call(handler, event)
            except Exception:
                logger.exception(f"Subscriber failed for event '{event.name}'")
