"""
Route handlers.
"""
from .cache import register_cache_routes
from .health import register_health_routes
from .logs import register_log_routes
from .scan import register_scan_routes
from .schedules import register_schedule_routes
from .tasks import register_task_routes

__all__ = [
    "register_cache_routes",
    "register_health_routes",
    "register_log_routes",
    "register_scan_routes",
    "register_schedule_routes",
    "register_task_routes",
]
