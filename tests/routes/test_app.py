import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer, make_mocked_request

from davmedia_backend.routes import create_app, register_all_routes
from davmedia_backend.routes.core import services as services_mod
from davmedia_backend.routes.registry import REQUEST_ID_KEY, request_context_middleware
from davmedia_backend.shared import request_id_var


def test_register_all_routes_covers_api() -> None:
    routes = register_all_routes()
    registered = {(r.method, r.path) for r in routes}

    for expected in [
        ("POST", "/davmedia/scan"),
        ("POST", "/davmedia/scan/multi"),
        ("POST", "/davmedia/scan/background"),
        ("GET", "/davmedia/scan/background"),
        ("GET", "/davmedia/scan/status/{progress_id}"),
        ("GET", "/davmedia/scan/state"),
        ("GET", "/davmedia/cache"),
        ("DELETE", "/davmedia/cache"),
        ("GET", "/davmedia/logs"),
        ("DELETE", "/davmedia/logs"),
        ("GET", "/davmedia/tasks"),
        ("GET", "/davmedia/tasks/{task_id}"),
        ("GET", "/davmedia/schedules"),
        ("POST", "/davmedia/schedules"),
        ("DELETE", "/davmedia/schedules"),
        ("POST", "/davmedia/schedules/run"),
        ("GET", "/davmedia/health"),
    ]:
        assert expected in registered


@pytest.mark.asyncio
async def test_app_serves_health_with_request_id(services) -> None:
    client = TestClient(TestServer(create_app(services, start_scheduler=False)))
    await client.start_server()
    try:
        resp = await client.get("/davmedia/health", headers={"X-Request-ID": "req-1"})
        payload = await resp.json()

        assert resp.status == 200
        assert resp.headers["X-Request-ID"] == "req-1"
        assert resp.headers["Cache-Control"] == "no-store"
        assert payload["ok"] is True
        assert payload["data"]["status"] == "ok"

        invalid = await client.post("/davmedia/scan", data="{", headers={"Content-Type": "application/json"})
        assert (await invalid.json())["code"] == "INVALID_JSON"
    finally:
        await client.close()

    assert services_mod._services is None


@pytest.mark.asyncio
async def test_app_generates_request_id(services) -> None:
    client = TestClient(TestServer(create_app(services, start_scheduler=False)))
    await client.start_server()
    try:
        resp = await client.get("/davmedia/tasks")
        assert len(resp.headers["X-Request-ID"]) == 32
        assert (await resp.json())["meta"] == {"total": 0, "running": 0}
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_request_id_is_stored_on_request_under_typed_key() -> None:
    seen = {}

    async def handler(request):
        seen["stored"] = request[REQUEST_ID_KEY]
        seen["context"] = request_id_var.get()
        return web.json_response({})

    req = make_mocked_request("GET", "/davmedia/health", headers={"X-Request-ID": "req-9"})
    resp = await request_context_middleware(req, handler)

    assert seen == {"stored": "req-9", "context": "req-9"}
    assert resp.headers["X-Request-ID"] == "req-9"
