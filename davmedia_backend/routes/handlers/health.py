"""
Health check endpoint.
"""
from aiohttp import web

from davmedia_backend.shared import Result

from ..core import _json_response, _require_services


def register_health_routes(routes: web.RouteTableDef) -> None:
    @routes.get("/davmedia/health")
    async def health(_request):
        svc, error_result = await _require_services()
        if error_result:
            return _json_response(error_result)

        running = [t for t in svc["tasks"].list_tasks() if t.status == "running"]
        data = {
            "status": "ok",
            "database": svc["db"].get_runtime_status(),
            "scheduler": svc["scheduler"].status(),
            "running_tasks": len(running),
        }
        return _json_response(Result.Ok(data))
