"""End-to-end tests over the HTTP endpoint."""

import httpx
import pytest
from fastapi.testclient import TestClient

from dslkit.client.executor import TypedClientExecutor
from dslkit.client.transport import HttpTransport
from dslkit.config import DslSettings
from dslkit.dispatch.dispatcher import OperationDispatcher
from dslkit.exceptions import OperationFailedError
from dslkit.integrations.fastapi import caller_from_headers, create_app

USER_HEADERS = {"X-User-Id": "1", "X-User-Roles": "user"}


@pytest.fixture
def app(dispatcher):
    return create_app(dispatcher, get_caller=caller_from_headers)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


class TestEndpoint:
    """Operation requests through FastAPI."""

    def test_create_and_read(self, client):
        response = client.post(
            "/dsl",
            json={"model": "Widget", "operation": "create", "data": {"name": "A"}},
            headers=USER_HEADERS,
        )
        assert response.status_code == 200
        assert response.json() == {"id": 1, "name": "A", "secret": None}

        response = client.post(
            "/dsl",
            json={"model": "Widget", "operation": "read", "data": {"id": 1}},
            headers=USER_HEADERS,
        )
        assert response.json()["name"] == "A"

    def test_paginated_read(self, client):
        for i in range(3):
            client.post(
                "/dsl",
                json={"model": "Article", "operation": "create", "data": {"title": f"T{i}"}},
            )
        response = client.post(
            "/dsl",
            json={"model": "Article", "operation": "read", "pagination": {"page": 1, "limit": 2}},
        )
        body = response.json()
        assert len(body["data"]) == 2
        assert body["paginationMeta"]["hasMore"] is True

    def test_count(self, client):
        response = client.post(
            "/dsl", json={"model": "Widget", "operation": "count"}, headers=USER_HEADERS
        )
        assert response.json() == 0

    def test_anonymous_rejected(self, client):
        response = client.post("/dsl", json={"model": "Widget", "operation": "read"})
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    def test_forbidden(self, client):
        response = client.post(
            "/dsl",
            json={"model": "Article", "operation": "delete", "data": {"id": 1}},
            headers=USER_HEADERS,
        )
        assert response.status_code == 403

    def test_not_found(self, client):
        response = client.post(
            "/dsl",
            json={"model": "Widget", "operation": "read", "data": {"id": 9}},
            headers=USER_HEADERS,
        )
        assert response.status_code == 404
        assert response.json()["error"]["error"] == "RecordNotFoundError"

    def test_validation_error(self, client):
        response = client.post(
            "/dsl",
            json={"model": "Widget", "operation": "create", "data": {}},
            headers=USER_HEADERS,
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_malformed_request(self, client):
        response = client.post("/dsl", json={"model": "Widget", "operation": "upsert"})
        assert response.status_code == 422

    def test_registry(self, client):
        response = client.get("/dsl/registry", headers=USER_HEADERS)
        assert response.status_code == 200
        assert "Post" in response.json()["modelNames"]

    def test_registry_lists_readable_models(self, client):
        response = client.get("/dsl/registry")
        assert response.json()["modelNames"] == ["Article"]
        assert [m["name"] for m in response.json()["models"]] == ["Article"]

    def test_model_metadata(self, client):
        response = client.get("/dsl/models/Post", headers=USER_HEADERS)
        assert response.json()["primaryKey"] == "id"
        assert client.get("/dsl/models/Ghost", headers=USER_HEADERS).status_code == 404

    def test_model_metadata_requires_read_access(self, client):
        assert client.get("/dsl/models/Post").status_code == 401
        assert client.get("/dsl/models/Article").status_code == 200


class TestCallerIdentity:
    """Identity headers count only when trusted."""

    ADMIN_HEADERS = {"X-User-Id": "7", "X-User-Roles": "admin"}

    def test_headers_ignored_by_default(self, dispatcher):
        with TestClient(create_app(dispatcher)) as client:
            response = client.post(
                "/dsl",
                json={"model": "Widget", "operation": "create", "data": {"name": "A"}},
                headers=self.ADMIN_HEADERS,
            )
        assert response.status_code == 401
        assert dispatcher.store.count(dispatcher.registry.get_model("Widget")) == 0

    def test_trusted_headers(self, registry, store):
        dispatcher = OperationDispatcher(registry, store, DslSettings(trust_caller_headers=True))
        dispatcher.ensure_storage()
        with TestClient(create_app(dispatcher)) as client:
            response = client.post(
                "/dsl",
                json={"model": "Widget", "operation": "create", "data": {"name": "A"}},
                headers=self.ADMIN_HEADERS,
            )
        assert response.status_code == 200
        assert response.json()["name"] == "A"


class TestHttpTransport:
    """The typed client talking to the app over HTTP."""

    @pytest.fixture
    def executor(self, app):
        http = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://test",
            headers=USER_HEADERS,
        )
        return TypedClientExecutor(HttpTransport("http://test", client=http))

    @pytest.mark.asyncio
    async def test_model_client(self, executor):
        widgets = executor.get_model("Widget")
        created = await widgets.create({"name": "A", "secret": "x"})
        assert await widgets.find_by_id(created["id"]) == created
        assert [f.name for f in await widgets.get_fields(["detail"])] == ["secret"]

    @pytest.mark.asyncio
    async def test_relation_client(self, executor):
        author = await executor.get_model("Author").create({"name": "Ada"})
        posts = executor.get_model("Author").relation(author["id"], "posts")
        await posts.create({"title": "Engines"})
        assert await posts.count() == 1

    @pytest.mark.asyncio
    async def test_error_wrapped(self, executor):
        with pytest.raises(OperationFailedError) as exc_info:
            await executor.get_model("Widget").find_by_id(9)
        assert exc_info.value.status_code == 404
        assert "Record '9' not found in 'Widget'" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        http = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
        executor = TypedClientExecutor(HttpTransport("http://down", client=http))
        with pytest.raises(OperationFailedError) as exc_info:
            await executor.get_model("Widget").count()
        assert exc_info.value.status_code == 500
