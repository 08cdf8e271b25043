"""Tests for the process-wide model proxy."""

import pytest

from dslkit.client.executor import TypedClientExecutor
from dslkit.client.proxy import ModelProxy, ProxyModelClient, get_executor, set_executor
from dslkit.client.transport import HttpTransport, LocalTransport


@pytest.fixture(autouse=True)
def reset_executor():
    """Leave no process executor behind for other tests."""
    set_executor(None)
    yield
    set_executor(None)


class TestExecutorSlot:
    def test_lazy_default(self, monkeypatch):
        monkeypatch.setenv("DSL_API_URL", "http://api.test")
        executor = get_executor()
        assert isinstance(executor.transport, HttpTransport)
        assert executor.transport.url == "http://api.test/dsl"
        assert get_executor() is executor

    def test_set_executor(self, executor):
        set_executor(executor)
        assert get_executor() is executor


class TestModelProxy:
    """Proxy clients are cached and follow the current executor."""

    def test_clients_cached(self):
        dsl = ModelProxy()
        widgets = dsl.model("Widget")
        assert isinstance(widgets, ProxyModelClient)
        assert dsl.model("Widget") is widgets
        dsl.clear()
        assert dsl.model("Widget") is not widgets

    @pytest.mark.asyncio
    async def test_follows_executor_swap(self, dispatcher, user, admin):
        """A cached proxy client uses whichever executor is current."""
        dsl = ModelProxy()
        notes = dsl.model("Note")

        set_executor(TypedClientExecutor(LocalTransport(dispatcher, user)))
        await notes.create({"body": "mine"})
        assert await notes.count() == 1

        set_executor(TypedClientExecutor(LocalTransport(dispatcher, admin)))
        await notes.create({"body": "admin"})
        assert await notes.count() == 2
        assert dsl.model("Note") is notes

    @pytest.mark.asyncio
    async def test_custom_provider(self, executor):
        dsl = ModelProxy(lambda: executor)
        widgets = dsl.model("Widget")
        created = await widgets.create({"name": "A"})
        assert (await widgets.find_by_id(created["id"]))["name"] == "A"
        assert [f.name for f in await widgets.get_fields(["table"])] == ["name"]

    @pytest.mark.asyncio
    async def test_relation(self, executor):
        dsl = ModelProxy(lambda: executor)
        author = await dsl.model("Author").create({"name": "Ada"})
        posts = dsl.model("Author").relation(author["id"], "posts")
        await posts.create({"title": "Engines"})
        assert await posts.count() == 1
        assert posts is executor.relation_client("Author", author["id"], "posts")
