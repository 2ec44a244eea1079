import json

import pytest
from aiohttp import web
from aiohttp.test_utils import make_mocked_request

from davmedia_backend.features.scan import ScanCache, ScanLog, ScanOrchestrator, ScanProgressBoard, ScanTaskRegistry
from davmedia_backend.routes.handlers import scan as scan_mod
from davmedia_backend.shared import Result

from ..webdav_fakes import FakeClientFactory, FakeWebDav

URL = "https://dav.example.com"

TREE = {
    "/": ["a.jpg", "b.mp4", "sub/"],
    "/sub": ["c.png"],
    "/other": ["d.jpg"],
}


def _build_scan_app() -> web.Application:
    app = web.Application()
    routes = web.RouteTableDef()
    scan_mod.register_scan_routes(routes)
    app.add_routes(routes)
    return app


def _services(db, client=None) -> dict:
    client = client or FakeWebDav(TREE)
    cache = ScanCache(db)
    scan_log = ScanLog(db)
    tasks = ScanTaskRegistry()
    progress = ScanProgressBoard()
    orchestrator = ScanOrchestrator(cache, scan_log, tasks, progress, FakeClientFactory(client))
    return {
        "db": db,
        "cache": cache,
        "scan_log": scan_log,
        "tasks": tasks,
        "progress": progress,
        "orchestrator": orchestrator,
    }


def _patch(monkeypatch, svc, body=None):
    async def _require_services():
        return svc, None

    async def _read_json(_request):
        return Result.Ok(body or {})

    monkeypatch.setattr(scan_mod, "_require_services", _require_services)
    monkeypatch.setattr(scan_mod, "_read_json", _read_json)


async def _call(method: str, path: str) -> dict:
    app = _build_scan_app()
    req = make_mocked_request(method, path, app=app)
    match = await app.router.resolve(req)
    req = make_mocked_request(method, path, app=app, match_info=dict(match))
    resp = await match.handler(req)
    assert resp.status == 200
    return json.loads(resp.text)


@pytest.mark.asyncio
async def test_scan_requires_url_and_path(db, monkeypatch) -> None:
    _patch(monkeypatch, _services(db), body={"path": "/"})
    payload = await _call("POST", "/davmedia/scan")
    assert payload["ok"] is False
    assert payload["code"] == "INVALID_INPUT"

    _patch(monkeypatch, _services(db), body={"url": "ftp://dav.example.com", "path": "/"})
    assert (await _call("POST", "/davmedia/scan"))["code"] == "INVALID_INPUT"

    _patch(monkeypatch, _services(db), body={"url": URL})
    assert (await _call("POST", "/davmedia/scan"))["error"] == "Missing 'path'"


@pytest.mark.asyncio
async def test_scan_then_cached(db, monkeypatch) -> None:
    svc = _services(db)
    _patch(monkeypatch, svc, body={"url": URL, "username": "alice", "password": "pw", "path": "/", "settings": {"maxDepth": 5}})

    first = await _call("POST", "/davmedia/scan")
    second = await _call("POST", "/davmedia/scan")

    assert first["ok"] is True
    assert first["data"]["status"] == "completed"
    assert first["data"]["result"]["total_files"] == 3
    assert second["data"]["from_cache"] is True
    assert second["data"]["result"]["total_files"] == 3


@pytest.mark.asyncio
async def test_scan_maps_auth_failure(db, monkeypatch) -> None:
    svc = _services(db, FakeWebDav(TREE, auth_failing={"/"}))
    _patch(monkeypatch, svc, body={"url": URL, "username": "alice", "password": "bad", "path": "/"})

    payload = await _call("POST", "/davmedia/scan")

    assert payload["ok"] is False
    assert payload["code"] == "AUTH_FAILED"
    assert payload["error"].startswith("Scan failed")
    assert payload["meta"]["path"] == "/"


@pytest.mark.asyncio
async def test_multi_scan_requires_paths(db, monkeypatch) -> None:
    _patch(monkeypatch, _services(db), body={"url": URL, "paths": []})

    payload = await _call("POST", "/davmedia/scan/multi")

    assert payload["code"] == "INVALID_INPUT"


@pytest.mark.asyncio
async def test_multi_scan_returns_totals(db, monkeypatch) -> None:
    _patch(monkeypatch, _services(db), body={"url": URL, "username": "alice", "paths": ["/sub", "/other"]})

    payload = await _call("POST", "/davmedia/scan/multi")

    assert payload["ok"] is True
    assert payload["data"]["total_files"] == 2
    assert len(payload["data"]["paths"]) == 2


@pytest.mark.asyncio
async def test_background_scan_and_status(db, monkeypatch) -> None:
    svc = _services(db)
    _patch(monkeypatch, svc, body={"url": URL, "username": "alice", "paths": "/sub,/other"})

    started = await _call("POST", "/davmedia/scan/background")
    await svc["orchestrator"].wait_background()
    status = await _call("GET", f"/davmedia/scan/background?url={URL}&username=alice&paths=/sub,/other,/nope")

    assert started["data"]["status"] == "started"
    assert started["data"]["paths"] == ["/sub", "/other"]
    assert status["meta"] == {"total": 3, "scanned": 2}
    assert [s["scanned"] for s in status["data"]] == [True, True, False]


@pytest.mark.asyncio
async def test_progress_status_lookup(db, monkeypatch) -> None:
    svc = _services(db)
    _patch(monkeypatch, svc, body={"url": URL, "username": "alice", "path": "/"})

    scanned = await _call("POST", "/davmedia/scan")
    progress_id = scanned["data"]["progress_id"]
    found = await _call("GET", f"/davmedia/scan/status/{progress_id}")
    missing = await _call("GET", "/davmedia/scan/status/progress-nope")

    assert found["data"]["status"] == "completed"
    assert found["data"]["progress"]["percentage"] == 100
    assert missing["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_scan_state_never_scans(db, monkeypatch) -> None:
    client = FakeWebDav(TREE)
    _patch(monkeypatch, _services(db, client))

    payload = await _call("GET", f"/davmedia/scan/state?url={URL}&username=alice&path=/sub")

    assert payload["data"]["cached"] is False
    assert client.calls == []


@pytest.mark.asyncio
async def test_services_unavailable_is_reported(monkeypatch) -> None:
    async def _require_services():
        return None, Result.Err("SERVICE_UNAVAILABLE", "Services are unavailable")

    monkeypatch.setattr(scan_mod, "_require_services", _require_services)

    payload = await _call("GET", "/davmedia/scan/status/progress-x")

    assert payload["ok"] is False
    assert payload["code"] == "SERVICE_UNAVAILABLE"
