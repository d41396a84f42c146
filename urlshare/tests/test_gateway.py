import json
from urllib.parse import urlencode

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from urlshare.config.settings import Settings
from urlshare.core import gateway
from urlshare.core.admin import MappingAdmin
from urlshare.core.errors import MethodNotAllowedError
from urlshare.core.gateway import create_app
from urlshare.core.handlers import MappingWriteHandler, RedirectHandler
from urlshare.core.resolver import RedirectResolver
from urlshare.storage.sqlite_store import SqliteMappingStore


def _settings(tmp_path, **overrides) -> Settings:
    values = {
        "db_path": str(tmp_path / "urlshare.db"),
        "base_url": "http://testserver",
        "log_requests": False,
    }
    values.update(overrides)
    return Settings(**values)


def _build_request(path: str, *, method: str = "GET", query: str = "", form: dict | None = None) -> Request:
    payload = urlencode(form or {}).encode("utf-8")
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("latin-1"),
        "query_string": query.encode("latin-1"),
        "headers": [(b"content-type", b"application/x-www-form-urlencoded")],
        "client": ("127.0.0.1", 50000),
        "server": ("127.0.0.1", 8080),
    }

    sent = False

    async def receive() -> dict:
        nonlocal sent
        if sent:
            return {"type": "http.request", "body": b"", "more_body": False}
        sent = True
        return {"type": "http.request", "body": payload, "more_body": False}

    return Request(scope, receive)


@pytest.fixture
def client(tmp_path):
    app = create_app(_settings(tmp_path))
    with TestClient(app, follow_redirects=False) as test_client:
        yield test_client


@pytest.mark.asyncio
async def test_redirect_handler_returns_temporary_redirect(tmp_path):
    store = SqliteMappingStore(db_path=str(tmp_path / "store.db"))
    store.update("x", "https://example.com/x?a=1")
    handler = RedirectHandler(RedirectResolver(store))

    resp = await handler.handle(_build_request("/x", query="a=2&b=3"))

    assert resp.status_code == 307
    assert resp.headers["location"] == "https://example.com/x?a=1&a=2&b=3"


@pytest.mark.asyncio
async def test_redirect_handler_not_found(tmp_path):
    store = SqliteMappingStore(db_path=str(tmp_path / "store.db"))
    handler = RedirectHandler(RedirectResolver(store))

    resp = await handler.handle(_build_request("/missing"))
    body = json.loads(resp.body.decode("utf-8"))

    assert resp.status_code == 404
    assert body["error"] == "not_found"


@pytest.mark.asyncio
async def test_write_handler_reads_form_fields(tmp_path):
    store = SqliteMappingStore(db_path=str(tmp_path / "store.db"))
    handler = MappingWriteHandler(MappingAdmin(store))

    resp = await handler.handle(
        _build_request("/admin/mappings", method="PATCH", form={"fromIri": "promo", "toIri": "https://shop.example/"})
    )

    assert resp.status_code == 200
    assert resp.body == b""
    assert store.get("promo").target == "https://shop.example/"


@pytest.mark.asyncio
async def test_write_handler_rejects_wrong_method(tmp_path):
    store = SqliteMappingStore(db_path=str(tmp_path / "store.db"))
    handler = MappingWriteHandler(MappingAdmin(store))

    with pytest.raises(MethodNotAllowedError):
        await handler.handle(_build_request("/admin/mappings", method="PUT", form={"toIri": "https://shop.example/"}))
    assert store.list_mappings() == []


def test_create_then_redirect_end_to_end(client):
    created = client.patch("/admin/mappings", data={"toIri": "https://news.example/article/42"})
    assert created.status_code == 200
    assert created.content == b""

    first = client.get("/1")
    assert first.status_code == 307
    assert first.headers["location"] == "https://news.example/article/42"

    client.patch("/admin/mappings", data={"toIri": "https://news.example/?ref=site"})
    second = client.get("/2?utm=foo")
    assert second.status_code == 307
    assert second.headers["location"] == "https://news.example/?ref=site&utm=foo"


def test_unknown_short_key_is_404(client):
    resp = client.get("/does-not-exist")

    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


def test_missing_to_iri_is_400_without_mutation(client):
    resp = client.patch("/admin/mappings", data={"fromIri": "promo"})

    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_input"
    assert client.app.state.store.list_mappings() == []


def test_wrong_write_method_is_405(client):
    resp = client.post("/admin/mappings", data={"toIri": "https://news.example/"})

    assert resp.status_code == 405
    assert resp.json()["error"] == "method_not_allowed"
    assert resp.headers["allow"] == "PATCH"


def test_legacy_post_write_method(tmp_path):
    app = create_app(_settings(tmp_path, write_method="POST"))
    with TestClient(app, follow_redirects=False) as client:
        assert client.post("/admin/mappings", data={"toIri": "https://news.example/"}).status_code == 200
        assert client.patch("/admin/mappings", data={"toIri": "https://news.example/"}).status_code == 405
        assert client.get("/1").headers["location"] == "https://news.example/"


def test_upsert_through_api_overwrites(client):
    client.patch("/admin/mappings", data={"fromIri": "promo", "toIri": "https://shop.example/old"})
    client.patch("/admin/mappings", data={"fromIri": "promo", "toIri": "https://shop.example/new"})

    resp = client.get("/promo")

    assert resp.headers["location"] == "https://shop.example/new"


def test_malformed_stored_target_is_500(client):
    client.app.state.store.update("broken", "http://[::1")

    resp = client.get("/broken")

    assert resp.status_code == 500
    assert resp.json()["error"] == "malformed_target"


def test_admin_page_lists_most_recent_first(client):
    for target in ("https://a.example/", "https://b.example/", "https://c.example/"):
        client.patch("/admin/mappings", data={"toIri": target})

    resp = client.get("/admin")

    assert resp.status_code == 200
    assert "text/html" in resp.headers["content-type"]
    text = resp.text
    assert text.index("http://testserver/3") < text.index("http://testserver/2") < text.index("http://testserver/1")
    assert "https://c.example/" in text


def test_admin_page_template_failure_is_500(tmp_path):
    empty_dir = tmp_path / "templates"
    empty_dir.mkdir()
    app = create_app(_settings(tmp_path, template_dir=str(empty_dir)))
    with TestClient(app, follow_redirects=False) as client:
        resp = client.get("/admin")

    assert resp.status_code == 500
    assert resp.json()["error"] == "template_failure"


def test_storage_failure_is_500(client):
    client.app.state.store.close()

    resp = client.get("/1")

    assert resp.status_code == 500
    assert resp.json()["error"] == "storage_failure"


def test_static_assets(client):
    assert client.get("/static/app.js").status_code == 200
    assert client.get("/static/missing.js").status_code == 404


def test_external_key_mode_end_to_end(tmp_path):
    app = create_app(_settings(tmp_path, key_mode="external"))
    with TestClient(app, follow_redirects=False) as client:
        client.patch("/admin/mappings", data={"toIri": "https://news.example/?ref=site"})
        assert client.app.state.store.get("http://testserver/r/1") is not None

        resp = client.get("/r/1?utm=foo")

    assert resp.status_code == 307
    assert resp.headers["location"] == "https://news.example/?ref=site&utm=foo"


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_external_key_mode_without_base_url_is_rejected(tmp_path):
    with pytest.raises(ValueError):
        create_app(_settings(tmp_path, key_mode="external", base_url=""))


@pytest.mark.asyncio
async def test_dispatch_tags_request_with_handler_name(tmp_path):
    with SqliteMappingStore(db_path=str(tmp_path / "store.db")) as store:
        handler = RedirectHandler(RedirectResolver(store))
        request = _build_request("/missing")

        resp = await handler.dispatch(request)

    assert resp.status_code == 404
    assert request.state.route_handler == "redirect"


def test_request_log_names_the_route_handler(tmp_path, monkeypatch):
    logged: list[tuple[str, int, str]] = []

    def fake_log_request(method, url, status_code, elapsed_ms, handler="-"):
        logged.append((method, status_code, handler))

    monkeypatch.setattr(gateway, "log_request", fake_log_request)
    app = create_app(_settings(tmp_path, log_requests=True))
    with TestClient(app, follow_redirects=False) as client:
        client.patch("/admin/mappings", data={"toIri": "https://news.example/"})
        client.get("/1")
        client.get("/health")

    assert logged == [("PATCH", 200, "mapping_write"), ("GET", 307, "redirect"), ("GET", 200, "-")]


@pytest.mark.parametrize("method", ["HEAD", "OPTIONS"])
def test_head_and_options_on_write_endpoint_are_405(client, method):
    resp = client.request(method, "/admin/mappings")

    assert resp.status_code == 405
    assert resp.headers["allow"] == "PATCH"


def test_options_on_write_endpoint_uses_error_shape(client):
    body = client.options("/admin/mappings").json()

    assert body["error"] == "method_not_allowed"


def test_framework_http_errors_use_error_shape(client):
    resp = client.get("/static/missing.js")

    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"
    assert "detail" in resp.json()
