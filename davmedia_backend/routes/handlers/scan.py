"""
Scan endpoints: synchronous, multi-path and background scans, progress and state.
"""
import asyncio

from aiohttp import web

from davmedia_backend.features.scan.models import ScanSettings
from davmedia_backend.shared import ErrorCode, Result, get_logger
from davmedia_backend.utils import parse_bool

from ..core import _json_response, _read_json, _require_services
from .scan_helpers import error_result, parse_path, parse_paths, parse_target

logger = get_logger(__name__)


def _settings_from_body(body: dict) -> ScanSettings:
    raw = body.get("settings")
    return ScanSettings.from_payload(raw if isinstance(raw, dict) else body)


def _force_from_body(body: dict) -> bool:
    return parse_bool(body.get("force_rescan", body.get("forceRescan")), False)


def register_scan_routes(routes: web.RouteTableDef) -> None:
    """Register scan routes."""

    @routes.post("/davmedia/scan")
    async def run_scan(request):
        """
        Scan one path, or return its cached result.

        JSON body:
            url, username, password: WebDAV server and credentials
            path: Remote directory to scan
            settings: Optional {batchSize, maxDepth, maxFiles, timeoutMs}
            force_rescan: Ignore and replace the cached result (default: false)
        """
        svc, error_result_ = await _require_services()
        if error_result_:
            return _json_response(error_result_)

        body_res = await _read_json(request)
        if not body_res.ok:
            return _json_response(body_res)
        body = body_res.data or {}

        target = parse_target(body, need_password=True)
        if not target.ok:
            return _json_response(target)
        path = parse_path(body)
        if not path.ok:
            return _json_response(path)

        t = target.data
        try:
            outcome = await svc["orchestrator"].run_scan(
                t["url"],
                t["username"],
                t["password"],
                path.data,
                _settings_from_body(body),
                force_rescan=_force_from_body(body),
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            return _json_response(error_result(exc, "Scan failed", path=path.data))
        return _json_response(Result.Ok(outcome.to_dict()))

    @routes.post("/davmedia/scan/multi")
    async def run_multi_scan(request):
        """Scan several paths one after another; the first failure stops the run."""
        svc, error_result_ = await _require_services()
        if error_result_:
            return _json_response(error_result_)

        body_res = await _read_json(request)
        if not body_res.ok:
            return _json_response(body_res)
        body = body_res.data or {}

        target = parse_target(body, need_password=True)
        if not target.ok:
            return _json_response(target)
        paths = parse_paths(body.get("paths"))
        if not paths.ok:
            return _json_response(paths)

        t = target.data
        try:
            summary = await svc["orchestrator"].run_multi_scan(
                t["url"],
                t["username"],
                t["password"],
                paths.data,
                _settings_from_body(body),
                force_rescan=_force_from_body(body),
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            return _json_response(error_result(exc, "Multi-path scan failed"))
        return _json_response(Result.Ok(summary))

    @routes.post("/davmedia/scan/background")
    async def start_background_scan(request):
        """Kick off scans of uncached paths and return immediately with the task id."""
        svc, error_result_ = await _require_services()
        if error_result_:
            return _json_response(error_result_)

        body_res = await _read_json(request)
        if not body_res.ok:
            return _json_response(body_res)
        body = body_res.data or {}

        target = parse_target(body, need_password=True)
        if not target.ok:
            return _json_response(target)
        paths = parse_paths(body.get("paths"))
        if not paths.ok:
            return _json_response(paths)

        t = target.data
        try:
            started = await svc["orchestrator"].start_background_scan(
                t["url"],
                t["username"],
                t["password"],
                paths.data,
                _settings_from_body(body),
                force_rescan=_force_from_body(body),
            )
        except Exception as exc:
            return _json_response(error_result(exc, "Failed to start background scan"))
        return _json_response(Result.Ok(started))

    @routes.get("/davmedia/scan/background")
    async def background_status(request):
        """Per-path cached/scanning status. Query: url, username, paths (comma separated)."""
        svc, error_result_ = await _require_services()
        if error_result_:
            return _json_response(error_result_)

        target = parse_target(request.query)
        if not target.ok:
            return _json_response(target)
        paths = parse_paths(request.query.get("paths", ""))
        if not paths.ok:
            return _json_response(paths)

        try:
            status = await svc["orchestrator"].get_background_status(
                target.data["url"], target.data["username"], paths.data
            )
        except Exception as exc:
            return _json_response(error_result(exc, "Failed to read scan status"))
        scanned = sum(1 for s in status if s["scanned"])
        return _json_response(Result.Ok(status, total=len(status), scanned=scanned))

    @routes.get("/davmedia/scan/status/{progress_id}")
    async def scan_status(request):
        svc, error_result_ = await _require_services()
        if error_result_:
            return _json_response(error_result_)

        progress_id = request.match_info.get("progress_id", "")
        entry = svc["progress"].get(progress_id)
        if entry is None:
            return _json_response(Result.Err(ErrorCode.NOT_FOUND, f"Unknown progress id: {progress_id}"))
        return _json_response(Result.Ok(entry.to_dict()))

    @routes.get("/davmedia/scan/state")
    async def scan_state(request):
        """Read-only cache and task state for one path. Query: url, username, path."""
        svc, error_result_ = await _require_services()
        if error_result_:
            return _json_response(error_result_)

        target = parse_target(request.query)
        if not target.ok:
            return _json_response(target)
        path = parse_path(request.query)
        if not path.ok:
            return _json_response(path)

        try:
            state = await svc["orchestrator"].get_scan_state(target.data["url"], target.data["username"], path.data)
        except Exception as exc:
            return _json_response(error_result(exc, "Failed to read scan state", path=path.data))
        return _json_response(Result.Ok(state))
