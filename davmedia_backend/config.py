"""
Configuration for the DavMedia scan service.

Everything is read from environment variables once at import time.
"""
import logging
import os
from pathlib import Path

from .utils import env_bool

logger = logging.getLogger(__name__)


def _env_raw(*names: str, default: str | None = None) -> str | None:
    for name in names:
        if not name:
            continue
        val = os.getenv(name)
        if val is not None and str(val).strip() != "":
            return str(val).strip()
    return default


def _env_int(default: int, *names: str, min_value: int | None = None, max_value: int | None = None) -> int:
    raw = _env_raw(*names)
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid integer for %s=%r, using default=%s", names[0] if names else "<unknown>", raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("Value too small for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, min_value)
        value = min_value
    if max_value is not None and value > max_value:
        logger.warning("Value too large for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, max_value)
        value = max_value
    return value


def _env_float(default: float, *names: str, min_value: float | None = None, max_value: float | None = None) -> float:
    raw = _env_raw(*names)
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid float for %s=%r, using default=%s", names[0] if names else "<unknown>", raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("Value too small for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, min_value)
        value = min_value
    if max_value is not None and value > max_value:
        logger.warning("Value too large for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, max_value)
        value = max_value
    return value


def _env_bool(default: bool, *names: str) -> bool:
    for name in names:
        if name and name in os.environ:
            return env_bool(name, default)
    return default


# --- Paths ---
DATA_DIR_PATH = Path(_env_raw("DAVMEDIA_DATA_DIR", default="./data") or "./data").expanduser().resolve()
DATA_DIR = str(DATA_DIR_PATH)
INDEX_DB = str(
    Path(_env_raw("DAVMEDIA_DB_PATH", default=str(DATA_DIR_PATH / "davmedia.sqlite3")) or "").expanduser()
)

# --- Database ---
DB_TIMEOUT = _env_float(30.0, "DAVMEDIA_DB_TIMEOUT", min_value=1.0)

# --- Scan defaults (overridable per request) ---
SCAN_BATCH_SIZE = _env_int(10, "DAVMEDIA_SCAN_BATCH_SIZE", min_value=1, max_value=100)
SCAN_MAX_DEPTH = _env_int(10, "DAVMEDIA_SCAN_MAX_DEPTH", min_value=0, max_value=64)
SCAN_MAX_FILES = _env_int(200_000, "DAVMEDIA_SCAN_MAX_FILES", min_value=1)
SCAN_TIMEOUT_MS = _env_int(60_000, "DAVMEDIA_SCAN_TIMEOUT_MS", min_value=1)
SCAN_BATCH_SIZE_MAX = 100

# --- WebDAV transport ---
WEBDAV_REQUEST_TIMEOUT = _env_float(30.0, "DAVMEDIA_WEBDAV_REQUEST_TIMEOUT", min_value=1.0)

# --- Task registry lifetimes (seconds) ---
TASK_COMPLETED_TTL = _env_float(5 * 60, "DAVMEDIA_TASK_COMPLETED_TTL", min_value=0.0)
TASK_FAILED_TTL = _env_float(60, "DAVMEDIA_TASK_FAILED_TTL", min_value=0.0)
TASK_STALE_AGE = _env_float(30 * 60, "DAVMEDIA_TASK_STALE_AGE", min_value=1.0)
TASK_SWEEP_INTERVAL = _env_float(10 * 60, "DAVMEDIA_TASK_SWEEP_INTERVAL", min_value=1.0)

# --- Scheduler ---
SCHEDULER_ENABLED = _env_bool(True, "DAVMEDIA_SCHEDULER_ENABLED")
SCHEDULER_INTERVAL = _env_float(5 * 60, "DAVMEDIA_SCHEDULER_INTERVAL", min_value=60.0)
SCHEDULER_MIN_INTERVAL = 60.0

# --- Logs ---
SCAN_LOG_DEFAULT_LIMIT = _env_int(50, "DAVMEDIA_LOG_LIMIT", min_value=1, max_value=1000)

# --- Server ---
SERVER_HOST = _env_raw("DAVMEDIA_HOST", default="127.0.0.1") or "127.0.0.1"
SERVER_PORT = _env_int(8188, "DAVMEDIA_PORT", min_value=1, max_value=65535)
MAX_JSON_BYTES = _env_int(1024 * 1024, "DAVMEDIA_MAX_JSON_SIZE", min_value=1024)


def initialize_directories() -> None:
    """Create the data directory and the database parent if missing."""
    DATA_DIR_PATH.mkdir(parents=True, exist_ok=True)
    Path(INDEX_DB).parent.mkdir(parents=True, exist_ok=True)
