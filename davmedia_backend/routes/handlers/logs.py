"""
Scan log endpoints.
"""
from aiohttp import web

from davmedia_backend.config import SCAN_LOG_DEFAULT_LIMIT
from davmedia_backend.shared import Result
from davmedia_backend.utils import parse_int

from ..core import _json_response, _require_services
from .scan_helpers import error_result, parse_path, parse_target

MAX_LOG_LIMIT = 1000


def register_log_routes(routes: web.RouteTableDef) -> None:
    @routes.get("/davmedia/logs")
    async def read_logs(request):
        """Scan attempts for one path, most recent first. Query: url, username, path, limit."""
        svc, error_result_ = await _require_services()
        if error_result_:
            return _json_response(error_result_)

        target = parse_target(request.query)
        if not target.ok:
            return _json_response(target)
        path = parse_path(request.query)
        if not path.ok:
            return _json_response(path)
        limit = parse_int(request.query.get("limit"), SCAN_LOG_DEFAULT_LIMIT, min_value=1, max_value=MAX_LOG_LIMIT)

        try:
            records = await svc["scan_log"].read(target.data["url"], target.data["username"], path.data, limit)
        except Exception as exc:
            return _json_response(error_result(exc, "Failed to read scan logs", path=path.data))
        return _json_response(Result.Ok([r.to_dict() for r in records], total=len(records), limit=limit))

    @routes.delete("/davmedia/logs")
    async def clear_logs(request):
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
            cleared = await svc["scan_log"].clear(target.data["url"], target.data["username"], path.data)
        except Exception as exc:
            return _json_response(error_result(exc, "Failed to clear scan logs", path=path.data))
        return _json_response(Result.Ok({"cleared": cleared, "path": path.data}))
