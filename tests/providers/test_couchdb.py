"""Tests for stowage.providers.couchdb: HTTP API mapping via httpx.MockTransport."""

import json

import httpx
import pytest

from stowage.errors import (
    AmbiguousResultError,
    AuthenticationFailedError,
    ConfigurationError,
    ConflictError,
    DatabaseNotFoundError,
    InvalidArgumentError,
    NotFoundError,
    ProviderConnectionError,
    ServerNotFoundError,
)
from stowage.providers.couchdb import CouchDBProvider, CouchDBResponseError

CONFIG = {
    "name": "Profiles",
    "url": "http://couch.test:5984",
    "database": "profiles",
    "design": "profiles",
    "view": "by_email",
}


class FakeCouch:
    """Records requests and answers them from a route table."""

    def __init__(self):
        self.requests = []
        self.routes = {("GET", "/"): (200, {"couchdb": "Welcome"})}

    def route(self, method, path, status, body):
        self.routes[(method, path)] = (status, body)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.routes.get(
            (request.method, request.url.path), (404, {"error": "not_found", "reason": "missing"})
        )
        return httpx.Response(status, json=body)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def couch():
    return FakeCouch()


@pytest.fixture
def provider(couch):
    return CouchDBProvider(CONFIG, transport=httpx.MockTransport(couch))


class TestConfiguration:
    @pytest.mark.parametrize(
        "missing, message",
        [
            ("url", "Expected a url in the CouchDB configuration"),
            ("database", "Expected a database name in the CouchDB configuration"),
            ("design", "Expected a design document name in the CouchDB configuration"),
            ("view", "Expected a view name in the CouchDB configuration"),
        ],
    )
    def test_required_keys(self, missing, message):
        config = {k: v for k, v in CONFIG.items() if k != missing}
        with pytest.raises(ConfigurationError, match=message):
            CouchDBProvider(config)

    def test_url_gets_trailing_slash(self, provider):
        assert provider.url == "http://couch.test:5984/"


class TestConnection:
    @pytest.mark.asyncio
    async def test_connect_checks_server(self, provider, couch):
        assert (await provider.connect()).is_ok()
        assert couch.last.url.path == "/"

    @pytest.mark.asyncio
    async def test_unreachable_server(self):
        def refuse(request):
            raise httpx.ConnectError("Name or service not known", request=request)

        provider = CouchDBProvider(CONFIG, transport=httpx.MockTransport(refuse))

        result = await provider.connect()

        assert isinstance(result.error, ServerNotFoundError)
        assert str(result.error) == "Server 'http://couch.test:5984/' not found."
        assert not provider.is_connected()

    @pytest.mark.asyncio
    async def test_bad_credentials(self, provider, couch):
        couch.route("GET", "/", 401, {"error": "unauthorized", "reason": "Name or password is incorrect."})

        result = await provider.connect()

        assert isinstance(result.error, AuthenticationFailedError)
        assert str(result.error) == "Name or password is incorrect."

    @pytest.mark.asyncio
    async def test_server_error_on_connect(self, provider, couch):
        couch.route("GET", "/", 500, {"error": "internal", "reason": "boom"})

        result = await provider.connect()

        assert isinstance(result.error, ProviderConnectionError)
        assert str(result.error) == "Cannot connect to the CouchDB server: internal: boom"
        assert isinstance(result.error.__cause__, CouchDBResponseError)
        assert result.error.__cause__.status_code == 500
        assert not provider.is_connected()


class TestDatabase:
    @pytest.mark.asyncio
    async def test_create(self, provider, couch):
        couch.route("PUT", "/profiles", 201, {"ok": True})
        await provider.connect()

        assert (await provider.create()).unwrap() == "profiles"

    @pytest.mark.asyncio
    async def test_drop_missing_database(self, provider, couch):
        couch.route("DELETE", "/profiles", 404, {"error": "not_found", "reason": "Database does not exist."})
        await provider.connect()

        result = await provider.drop()

        assert isinstance(result.error, DatabaseNotFoundError)
        assert str(result.error) == "Database 'profiles' not found."

    @pytest.mark.asyncio
    async def test_recreate(self, provider, couch):
        couch.route("DELETE", "/profiles", 404, {"error": "not_found", "reason": "no_db_file"})
        couch.route("PUT", "/profiles", 201, {"ok": True})
        await provider.connect()

        assert (await provider.recreate()).unwrap() == "profiles"
        assert [r.method for r in couch.requests[-2:]] == ["DELETE", "PUT"]

    @pytest.mark.asyncio
    async def test_operation_on_missing_database(self, provider, couch):
        couch.route("POST", "/profiles", 404, {"error": "not_found", "reason": "Database does not exist."})

        result = await provider.save({"email": "a@x"})

        assert isinstance(result.error, DatabaseNotFoundError)


class TestDocuments:
    @pytest.mark.asyncio
    async def test_insert(self, provider, couch):
        couch.route("POST", "/profiles", 201, {"ok": True, "id": "abc", "rev": "1-x"})

        saved = (await provider.save({"email": "a@x"})).unwrap()

        assert saved == {"email": "a@x", "_id": "abc", "_rev": "1-x"}
        assert json.loads(couch.last.content) == {"email": "a@x"}

    @pytest.mark.asyncio
    async def test_update_uses_put(self, provider, couch):
        couch.route("PUT", "/profiles/abc", 201, {"ok": True, "id": "abc", "rev": "2-y"})

        saved = (await provider.save({"_id": "abc", "_rev": "1-x", "email": "b@x"})).unwrap()

        assert saved["_rev"] == "2-y"
        assert couch.last.method == "PUT"

    @pytest.mark.asyncio
    async def test_update_conflict(self, provider, couch):
        couch.route("PUT", "/profiles/abc", 409, {"error": "conflict", "reason": "Document update conflict."})

        result = await provider.save({"_id": "abc", "_rev": "1-old"})

        assert isinstance(result.error, ConflictError)
        assert str(result.error) == "Document update conflict for item with id 'abc'"

    @pytest.mark.asyncio
    async def test_save_many_uses_bulk_docs(self, provider, couch):
        couch.route(
            "POST",
            "/profiles/_bulk_docs",
            201,
            [{"ok": True, "id": "a", "rev": "1-a"}, {"ok": True, "id": "b", "rev": "1-b"}],
        )

        saved = (await provider.save_many([{"n": 1}, {"n": 2}])).unwrap()

        assert saved == [{"n": 1, "_id": "a", "_rev": "1-a"}, {"n": 2, "_id": "b", "_rev": "1-b"}]
        assert json.loads(couch.last.content) == {"docs": [{"n": 1}, {"n": 2}]}

    @pytest.mark.asyncio
    async def test_save_many_reports_first_failed_row(self, provider, couch):
        couch.route(
            "POST",
            "/profiles/_bulk_docs",
            201,
            [{"ok": True, "id": "a", "rev": "1-a"}, {"id": "b", "error": "conflict", "reason": "Document update conflict."}],
        )

        result = await provider.save_many([{"_id": "a"}, {"_id": "b"}])

        assert str(result.error) == "Document update conflict for item with id 'b'"

    def test_remove_requires_revision(self, provider):
        with pytest.raises(InvalidArgumentError, match="Argument 'data' is missing a '_rev' property"):
            provider.remove({"_id": "abc"})

    @pytest.mark.asyncio
    async def test_remove(self, provider, couch):
        couch.route("DELETE", "/profiles/abc", 200, {"ok": True, "id": "abc", "rev": "2-z"})

        removed = (await provider.remove({"_id": "abc", "_rev": "1-x"})).unwrap()

        assert removed == {"_id": "abc", "_rev": "2-z", "_deleted": True}
        assert couch.last.url.params["rev"] == "1-x"

    @pytest.mark.asyncio
    async def test_remove_missing(self, provider):
        result = await provider.remove({"_id": "abc", "_rev": "1-x"})
        assert isinstance(result.error, NotFoundError)
        assert str(result.error) == "Item with id 'abc' and rev '1-x' does not exist"

    @pytest.mark.asyncio
    async def test_remove_many_sends_deleted_stubs(self, provider, couch):
        couch.route("POST", "/profiles/_bulk_docs", 201, [{"ok": True, "id": "a", "rev": "2-a"}])

        removed = (await provider.remove_many([{"_id": "a", "_rev": "1-a", "email": "x"}])).unwrap()

        assert json.loads(couch.last.content) == {"docs": [{"_id": "a", "_rev": "1-a", "_deleted": True}]}
        assert removed == [{"_id": "a", "_rev": "2-a", "_deleted": True}]


class TestLookups:
    @pytest.mark.asyncio
    async def test_find_by_id(self, provider, couch):
        couch.route("GET", "/profiles/abc", 200, {"_id": "abc", "_rev": "1-x", "email": "a@x"})

        found = (await provider.find_by_id("abc", "1-x")).unwrap()

        assert found["email"] == "a@x"
        assert couch.last.url.params["rev"] == "1-x"

    @pytest.mark.asyncio
    async def test_find_by_id_missing(self, provider):
        result = await provider.find_by_id("ghost")
        assert str(result.error) == "Item with id 'ghost' does not exist"

    @pytest.mark.asyncio
    async def test_find_by_key_queries_view(self, provider, couch):
        couch.route(
            "POST",
            "/profiles/_design/profiles/_view/by_email",
            200,
            {"rows": [{"id": "abc", "key": "a@x", "doc": {"_id": "abc", "email": "a@x"}}]},
        )

        found = (await provider.find_by_key("a@x")).unwrap()

        assert found == {"_id": "abc", "email": "a@x"}
        assert json.loads(couch.last.content) == {"keys": ["a@x"]}
        assert couch.last.url.params["include_docs"] == "true"

    @pytest.mark.asyncio
    async def test_find_by_key_ambiguous(self, provider, couch):
        rows = [{"doc": {"_id": "1"}}, {"doc": {"_id": "2"}}]
        couch.route("POST", "/profiles/_design/profiles/_view/by_email", 200, {"rows": rows})

        result = await provider.find_by_key("dup@x")

        assert isinstance(result.error, AmbiguousResultError)

    @pytest.mark.asyncio
    async def test_find_many_by_key_empty(self, provider, couch):
        couch.route("POST", "/profiles/_design/profiles/_view/by_email", 200, {"rows": []})
        assert (await provider.find_many_by_key("none@x")).unwrap() == []

    @pytest.mark.asyncio
    async def test_find_all(self, provider, couch):
        couch.route(
            "GET",
            "/profiles/_all_docs",
            200,
            {"rows": [{"doc": {"_id": "a"}}, {"doc": {"_id": "b"}}]},
        )
        assert [d["_id"] for d in (await provider.find_all()).unwrap()] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_disconnect_closes_client(self, provider):
        await provider.connect()
        client = provider._handle

        await provider.disconnect()

        assert client.is_closed
