"""
Scheduled scan endpoints.
"""
from aiohttp import web

from davmedia_backend.shared import ErrorCode, Result
from davmedia_backend.utils import parse_bool, parse_int

from ..core import _json_response, _read_json, _require_services
from .scan_helpers import parse_paths, parse_target


def _scan_id(value) -> int | None:
    scan_id = parse_int(value, 0, min_value=0)
    return scan_id or None


def register_schedule_routes(routes: web.RouteTableDef) -> None:
    @routes.get("/davmedia/schedules")
    async def list_schedules(request):
        svc, error_result = await _require_services()
        if error_result:
            return _json_response(error_result)

        res = await svc["schedules"].list_all()
        if not res.ok:
            return _json_response(res)
        items = [s.to_dict() for s in res.data or []]
        return _json_response(Result.Ok(items, total=len(items), scheduler=svc["scheduler"].status()))

    @routes.post("/davmedia/schedules")
    async def save_schedule(request):
        """
        Create a scheduled scan, or update one when `id` is present.

        JSON body:
            url, username, password: WebDAV server and credentials
            paths: Remote directories to rescan
            interval_minutes: Run every N minutes
            settings: Optional scan settings
            is_active: Default true
        """
        svc, error_result = await _require_services()
        if error_result:
            return _json_response(error_result)

        body_res = await _read_json(request)
        if not body_res.ok:
            return _json_response(body_res)
        body = body_res.data or {}
        store = svc["schedules"]

        scan_id = _scan_id(body.get("id"))
        if scan_id is not None:
            fields = {}
            if "url" in body:
                fields["server_url"] = body["url"]
            for key in ("username", "password", "interval_minutes", "settings"):
                if key in body:
                    fields[key] = body[key]
            if "paths" in body:
                fields["media_paths"] = body["paths"]
            if "is_active" in body:
                fields["is_active"] = parse_bool(body["is_active"], True)
            res = await store.update(scan_id, **fields)
        else:
            target = parse_target(body, need_password=True)
            if not target.ok:
                return _json_response(target)
            paths = parse_paths(body.get("paths"))
            if not paths.ok:
                return _json_response(paths)
            t = target.data
            res = await store.create(
                t["url"],
                t["username"],
                t["password"],
                paths.data,
                body.get("interval_minutes"),
                settings=body.get("settings") if isinstance(body.get("settings"), dict) else None,
                is_active=parse_bool(body.get("is_active"), True),
            )
        if not res.ok:
            return _json_response(res)
        return _json_response(Result.Ok(res.data.to_dict()))

    @routes.delete("/davmedia/schedules")
    async def delete_schedule(request):
        svc, error_result = await _require_services()
        if error_result:
            return _json_response(error_result)

        scan_id = _scan_id(request.query.get("id"))
        if scan_id is None:
            return _json_response(Result.Err(ErrorCode.INVALID_INPUT, "Missing or invalid 'id'"))
        res = await svc["schedules"].delete(scan_id)
        if not res.ok:
            return _json_response(res)
        return _json_response(Result.Ok({"deleted": True, "id": scan_id}))

    @routes.post("/davmedia/schedules/run")
    async def run_due_schedules(request):
        """Run every due scheduled scan now and report per-entry outcomes."""
        svc, error_result = await _require_services()
        if error_result:
            return _json_response(error_result)

        executed = await svc["scheduler"].run_due()
        return _json_response(Result.Ok(executed, total=len(executed)))
