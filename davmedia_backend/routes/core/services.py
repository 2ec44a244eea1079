"""
Service management and initialization.
"""
import asyncio
import threading
from typing import Any

from davmedia_backend.deps import build_services, dispose_services
from davmedia_backend.shared import ErrorCode, Result, get_logger

logger = get_logger(__name__)

_services = None
_services_error = None
_services_lock: asyncio.Lock | None = None
_services_lock_guard = threading.Lock()


def _get_services_lock() -> asyncio.Lock:
    global _services_lock
    if _services_lock is not None:
        return _services_lock
    with _services_lock_guard:
        if _services_lock is None:
            _services_lock = asyncio.Lock()
        return _services_lock


def install_services(services: dict | None) -> None:
    """Use an already built services dict (app factory, tests)."""
    global _services, _services_error
    _services = services
    _services_error = None


async def _dispose_services():
    global _services
    if not _services:
        return
    services, _services = _services, None
    try:
        await dispose_services(services)
    except Exception as exc:
        logger.warning("Service disposal failed: %s", exc, exc_info=True)


async def _build_services(force: bool = False):
    global _services, _services_error
    async with _get_services_lock():
        if _services and not force:
            return _services

        if force:
            await _dispose_services()

        try:
            services_result = await build_services()
        except Exception as exc:
            _services_error = str(exc)
            logger.error("Failed to initialize services: %s", exc, exc_info=True)
            _services = None
            return None

        if not services_result or not services_result.ok:
            _services_error = services_result.error if services_result else "Initialization failed"
            logger.error("Failed to initialize services: %s", _services_error)
            _services = None
            return None

        _services = services_result.data
        _services_error = None
        return _services


async def _require_services() -> tuple[dict[str, Any] | None, Result[Any] | None]:
    services = await _build_services()
    if services:
        return services, None
    return None, Result.Err(
        ErrorCode.SERVICE_UNAVAILABLE,
        "Services are unavailable",
        detail=_services_error or "Initialization failed",
    )


def get_services_error():
    """Get the current services error if any."""
    return _services_error
