"""
Route registration and aiohttp application factory.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from uuid import uuid4

from aiohttp import web

from davmedia_backend.config import SCHEDULER_ENABLED
from davmedia_backend.shared import get_logger, request_id_var

from .core import _build_services, _dispose_services, install_services
from .handlers import (
    register_cache_routes,
    register_health_routes,
    register_log_routes,
    register_scan_routes,
    register_schedule_routes,
    register_task_routes,
)

API_PREFIX = "/davmedia/"
_APP_KEY_START_SCHEDULER: web.AppKey[bool] = web.AppKey("_davmedia_start_scheduler", bool)
REQUEST_ID_KEY: web.RequestKey[str] = web.RequestKey("davmedia_request_id", str)

logger = get_logger(__name__)


def _get_request_id(request: web.Request) -> str:
    rid = (request.headers.get("X-Request-ID") or "").strip()
    return rid or uuid4().hex


@web.middleware
async def request_context_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    """Add request-id correlation to logs and responses."""
    rid = _get_request_id(request)
    request[REQUEST_ID_KEY] = rid
    token = request_id_var.set(rid)
    start = time.perf_counter()
    try:
        response = await handler(request)
        response.headers["X-Request-ID"] = rid
        return response
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        if request.path.startswith(API_PREFIX):
            logger.debug("%s %s handled in %.1fms", request.method, request.path, elapsed_ms)
        request_id_var.reset(token)


@web.middleware
async def security_headers_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    """API responses are never cached or sniffed."""
    response = await handler(request)
    if request.path.startswith(API_PREFIX):
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Cache-Control", "no-store")
    return response


def register_all_routes(routes: web.RouteTableDef | None = None) -> web.RouteTableDef:
    routes = routes if routes is not None else web.RouteTableDef()
    register_scan_routes(routes)
    register_cache_routes(routes)
    register_log_routes(routes)
    register_task_routes(routes)
    register_schedule_routes(routes)
    register_health_routes(routes)
    return routes


async def _on_startup(app: web.Application) -> None:
    services = await _build_services()
    if not services:
        logger.error("Services unavailable at startup; requests will report SERVICE_UNAVAILABLE")
        return
    services["tasks"].start_sweeper()
    if app[_APP_KEY_START_SCHEDULER]:
        services["scheduler"].start()


async def _on_cleanup(_app: web.Application) -> None:
    await _dispose_services()


def create_app(services: dict | None = None, *, start_scheduler: bool = SCHEDULER_ENABLED) -> web.Application:
    """
    Build the aiohttp application.

    Args:
        services: Prebuilt services dict (default: built lazily from config)
        start_scheduler: Start the scheduled-scan loop on startup
    """
    if services is not None:
        install_services(services)
    app = web.Application(middlewares=[request_context_middleware, security_headers_middleware])
    app[_APP_KEY_START_SCHEDULER] = bool(start_scheduler)
    app.add_routes(register_all_routes())
    app.on_startup.append(_on_startup)
    app.on_cleanup.append(_on_cleanup)
    return app
