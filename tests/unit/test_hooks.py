"""Tests for lifecycle hooks and model events."""

import pytest

from dslkit.dispatch.hooks import EventBus, HookType, ModelEvent


class TestHookType:
    def test_before_after(self):
        assert HookType.before("create") == HookType.BEFORE_CREATE
        assert HookType.after("count") == "afterCount"

    def test_unknown(self):
        with pytest.raises(ValueError):
            HookType("beforeUpsert")


class TestHooks:
    """Hooks registered on the dispatcher."""

    @pytest.mark.asyncio
    async def test_before_create_replaces_data(self, dispatcher, user):
        dispatcher.register_hook(
            "Widget", "beforeCreate", lambda data, ctx: {**data, "secret": "hooked"}
        )
        created = await dispatcher.execute_operation(
            "Widget", "create", data={"name": "A"}, caller=user
        )
        assert created["secret"] == "hooked"

    @pytest.mark.asyncio
    async def test_async_after_read(self, dispatcher, user):
        async def redact(rows, ctx):
            assert ctx.operation == "read"
            assert ctx.caller is user
            return [{**row, "secret": None} for row in rows]

        dispatcher.register_hook("Widget", HookType.AFTER_READ, redact)
        await dispatcher.execute_operation(
            "Widget", "create", data={"name": "A", "secret": "x"}, caller=user
        )
        rows = await dispatcher.execute_operation("Widget", "read", caller=user)
        assert rows[0]["secret"] is None

    @pytest.mark.asyncio
    async def test_hook_returning_none_keeps_value(self, dispatcher, user):
        seen = []
        dispatcher.register_hook("Widget", "afterCreate", lambda row, ctx: seen.append(row["id"]))
        created = await dispatcher.execute_operation(
            "Widget", "create", data={"name": "A"}, caller=user
        )
        assert created["name"] == "A"
        assert seen == [1]

    @pytest.mark.asyncio
    async def test_hooks_run_in_order(self, dispatcher, user):
        dispatcher.register_hook("Widget", "afterCount", lambda n, ctx: n + 1)
        dispatcher.register_hook("Widget", "afterCount", lambda n, ctx: n * 10)
        assert await dispatcher.execute_operation("Widget", "count", caller=user) == 10

    @pytest.mark.asyncio
    async def test_hook_error_propagates(self, dispatcher, user):
        def reject(data, ctx):
            raise RuntimeError("no widgets today")

        dispatcher.register_hook("Widget", "beforeCreate", reject)
        with pytest.raises(RuntimeError):
            await dispatcher.execute_operation(
                "Widget", "create", data={"name": "A"}, caller=user
            )
        assert await dispatcher.execute_operation("Widget", "count", caller=user) == 0

    def test_has_hooks(self, dispatcher):
        dispatcher.register_hook("Widget", "beforeDelete", lambda data, ctx: None)
        assert dispatcher.hooks.has_hooks("Widget", "beforeDelete") is True
        assert dispatcher.hooks.has_hooks("Widget", "afterDelete") is False


class TestEvents:
    """Events emitted after mutating operations."""

    @pytest.mark.asyncio
    async def test_create_event(self, dispatcher, user):
        received = []
        dispatcher.events.subscribe("post.created", received.append)
        created = await dispatcher.execute_operation(
            "Post", "create", data={"title": "Hello"}, caller=user
        )
        assert len(received) == 1
        assert received[0].model == "Post"
        assert received[0].record == created
        assert received[0].user_id == 1

    @pytest.mark.asyncio
    async def test_undeclared_event_not_emitted(self, dispatcher, user):
        received = []
        dispatcher.events.subscribe("*", received.append)
        await dispatcher.execute_operation("Widget", "create", data={"name": "A"}, caller=user)
        await dispatcher.execute_operation("Post", "create", data={"title": "A"}, caller=user)
        await dispatcher.execute_operation(
            "Post", "update", data={"title": "B"}, filter={"id": 1}, caller=user
        )
        assert [e.name for e in received] == ["post.created"]

    @pytest.mark.asyncio
    async def test_delete_event(self, dispatcher, user):
        received = []
        dispatcher.events.subscribe("post.deleted", received.append)
        await dispatcher.execute_operation("Post", "create", data={"title": "A"}, caller=user)
        await dispatcher.execute_operation("Post", "delete", data={"id": 1}, caller=user)
        assert received[0].record["title"] == "A"

    @pytest.mark.asyncio
    async def test_failing_subscriber_is_contained(self, dispatcher, user):
        def broken(event):
            raise RuntimeError("subscriber down")

        dispatcher.events.subscribe("post.created", broken)
        created = await dispatcher.execute_operation(
            "Post", "create", data={"title": "Hello"}, caller=user
        )
        assert created["id"] == 1


class TestEventBus:
    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = EventBus()
        received = []
        unsubscribe = bus.subscribe("a", received.append)
        await bus.emit(ModelEvent(name="a", model="Widget", module=None, record={}))
        unsubscribe()
        await bus.emit(ModelEvent(name="a", model="Widget", module=None, record={}))
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_async_subscriber(self):
        bus = EventBus()
        received = []

        async def handler(event):
            received.append(event.name)

        bus.subscribe("b", handler)
        await bus.emit(ModelEvent(name="b", model="Widget", module=None, record={}))
        assert received == ["b"]
