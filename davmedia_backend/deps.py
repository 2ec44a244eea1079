"""
Dependency injection - builds services.
Simple, debug-friendly DI without framework magic.
"""

from .adapters.db.schema import migrate_schema
from .adapters.db.sqlite import Sqlite
from .adapters.webdav import WebDavClientFactory
from .config import DB_TIMEOUT, INDEX_DB, WEBDAV_REQUEST_TIMEOUT, initialize_directories
from .features.scan import ScanCache, ScanLog, ScanOrchestrator, ScanProgressBoard, ScanTaskRegistry
from .features.schedule import ScanScheduler, ScheduledScanStore
from .shared import ErrorCode, Result, get_logger, log_success

logger = get_logger(__name__)


def _init_db_or_error(db_path: str) -> Result[Sqlite]:
    logger.info("Initializing database: %s", db_path)
    try:
        return Result.Ok(Sqlite(db_path, timeout=DB_TIMEOUT))
    except Exception as exc:
        logger.error("Failed to initialize database: %s", exc)
        return Result.Err(ErrorCode.DB_ERROR, f"Failed to initialize database: {exc}")


async def _migrate_db_or_error(db: Sqlite) -> Result[bool]:
    migrate_result = await migrate_schema(db)
    if not migrate_result.ok:
        logger.error("Schema migration failed: %s", migrate_result.error)
        return Result.Err(migrate_result.code or ErrorCode.DB_ERROR, f"Failed to initialize database: {migrate_result.error}")
    return Result.Ok(True)


async def build_services(db_path: str | None = None) -> Result[dict]:
    """
    Build all services (DI container).

    Args:
        db_path: Path to SQLite database (default: from config.INDEX_DB)

    Returns:
        Result[dict] of service instances
    """
    logger.info("Building services...")
    if db_path is None:
        try:
            initialize_directories()
        except Exception as exc:
            logger.error("Failed to initialize directories: %s", exc)
            return Result.Err(ErrorCode.DB_ERROR, f"Failed to initialize directories: {exc}")
        db_path = INDEX_DB

    db_res = _init_db_or_error(db_path)
    if not db_res.ok or db_res.data is None:
        return Result.Err(db_res.code or ErrorCode.DB_ERROR, db_res.error or "Failed to initialize database")
    db = db_res.data

    migrate_result = await _migrate_db_or_error(db)
    if not migrate_result.ok:
        await db.aclose()
        return Result.Err(migrate_result.code, migrate_result.error or "Schema migration failed")

    cache = ScanCache(db)
    scan_log = ScanLog(db)
    tasks = ScanTaskRegistry()
    progress = ScanProgressBoard()
    client_factory = WebDavClientFactory(timeout=WEBDAV_REQUEST_TIMEOUT)
    orchestrator = ScanOrchestrator(cache, scan_log, tasks, progress, client_factory)
    schedules = ScheduledScanStore(db)
    scheduler = ScanScheduler(schedules, orchestrator)

    services = {
        "db": db,
        "cache": cache,
        "scan_log": scan_log,
        "tasks": tasks,
        "progress": progress,
        "client_factory": client_factory,
        "orchestrator": orchestrator,
        "schedules": schedules,
        "scheduler": scheduler,
    }
    log_success(logger, "Services ready")
    return Result.Ok(services)


async def dispose_services(services: dict) -> None:
    """Stop background work and close connections, in reverse build order."""
    scheduler = services.get("scheduler")
    if scheduler is not None:
        await scheduler.stop()
    orchestrator = services.get("orchestrator")
    if orchestrator is not None:
        await orchestrator.aclose()
    tasks = services.get("tasks")
    if tasks is not None:
        await tasks.stop_sweeper()
    client_factory = services.get("client_factory")
    if client_factory is not None:
        await client_factory.aclose()
    db = services.get("db")
    if db is not None:
        await db.aclose()
    logger.info("Services disposed")
