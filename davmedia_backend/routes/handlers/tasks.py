"""
Scan task registry endpoints.
"""
from aiohttp import web

from davmedia_backend.shared import ErrorCode, Result

from ..core import _json_response, _require_services


def register_task_routes(routes: web.RouteTableDef) -> None:
    @routes.get("/davmedia/tasks")
    async def list_tasks(request):
        svc, error_result = await _require_services()
        if error_result:
            return _json_response(error_result)

        status = (request.query.get("status") or "").strip().lower()
        records = svc["tasks"].list_tasks()
        if status:
            records = [r for r in records if r.status == status]
        running = sum(1 for r in records if r.status == "running")
        return _json_response(Result.Ok([r.to_dict() for r in records], total=len(records), running=running))

    @routes.get("/davmedia/tasks/{task_id}")
    async def get_task(request):
        svc, error_result = await _require_services()
        if error_result:
            return _json_response(error_result)

        task_id = request.match_info.get("task_id", "")
        record = svc["tasks"].get_task(task_id)
        if record is None:
            return _json_response(Result.Err(ErrorCode.NOT_FOUND, f"Unknown task: {task_id}"))
        data = record.to_dict()
        data["progress"] = [e.to_dict() for e in svc["progress"].find_by_task(task_id)]
        return _json_response(Result.Ok(data))
