"""
Scan cache endpoints.
"""
from aiohttp import web

from davmedia_backend.shared import ErrorCode, Result
from davmedia_backend.utils import parse_bool, parse_int

from ..core import _json_response, _require_services
from .scan_helpers import error_result, parse_target


def register_cache_routes(routes: web.RouteTableDef) -> None:
    """Register scan cache routes."""

    @routes.get("/davmedia/cache")
    async def cache_summary(request):
        """
        Cached scan summaries for one server account, keyed by path.

        Query:
            url, username: server account
            path: Optional; restrict to one entry
            include_files: Include the cached file list (default: false)
        """
        svc, error_result_ = await _require_services()
        if error_result_:
            return _json_response(error_result_)

        target = parse_target(request.query)
        if not target.ok:
            return _json_response(target)
        url, username = target.data["url"], target.data["username"]
        include_files = parse_bool(request.query.get("include_files"), False)
        path = (request.query.get("path") or "").strip()

        cache = svc["cache"]
        try:
            if path:
                entry = await cache.get(url, username, path)
                if entry is None:
                    return _json_response(Result.Err(ErrorCode.NOT_FOUND, "No cached scan for this path", path=path))
                data = entry.summary()
                if include_files:
                    data["files"] = [f.to_dict() for f in entry.result.files]
                return _json_response(Result.Ok(data))

            entries = await cache.list_by_server(url, username, include_files=include_files)
        except Exception as exc:
            return _json_response(error_result(exc, "Failed to read scan cache", path=path or None))

        by_path = {}
        for entry in entries:
            item = entry.summary()
            if include_files:
                item["files"] = [f.to_dict() for f in entry.result.files]
            by_path[entry.path] = item
        return _json_response(Result.Ok(by_path, total=len(by_path)))

    @routes.delete("/davmedia/cache")
    async def delete_cache(request):
        """
        Delete one cache entry (query: url, username, path), or, without a path,
        drop entries older than `max_age_days` across all servers.
        """
        svc, error_result_ = await _require_services()
        if error_result_:
            return _json_response(error_result_)

        cache = svc["cache"]
        path = (request.query.get("path") or "").strip()
        if not path:
            if "max_age_days" not in request.query:
                return _json_response(Result.Err(ErrorCode.INVALID_INPUT, "Missing 'path' or 'max_age_days'"))
            days = parse_int(request.query.get("max_age_days"), 7, min_value=0)
            try:
                removed = await cache.cleanup(days)
            except Exception as exc:
                return _json_response(error_result(exc, "Cache cleanup failed"))
            return _json_response(Result.Ok({"removed": removed}))

        target = parse_target(request.query)
        if not target.ok:
            return _json_response(target)
        try:
            deleted = await cache.delete(target.data["url"], target.data["username"], path)
        except Exception as exc:
            return _json_response(error_result(exc, "Failed to delete cache entry", path=path))
        return _json_response(Result.Ok({"deleted": deleted, "path": path}))
