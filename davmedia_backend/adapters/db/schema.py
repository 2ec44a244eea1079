"""
Database schema and migrations.
"""
from ...shared import Result, get_logger, log_success

logger = get_logger(__name__)

CURRENT_SCHEMA_VERSION = 2
# Schema version history (high-level):
# 1: scan cache + scan logs
# 2: scheduled scans, truncation/failed-directory columns on scan_cache

SCHEMA_V1 = """
-- Metadata table for schema versioning
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- Last successful scan per (server, username, path); password is not part of the key
CREATE TABLE IF NOT EXISTS scan_cache (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    webdav_url TEXT NOT NULL,
    webdav_username TEXT NOT NULL,
    path TEXT NOT NULL,
    files_data TEXT NOT NULL,  -- JSON array of media file entries
    total_files INTEGER NOT NULL,
    image_count INTEGER NOT NULL,
    video_count INTEGER NOT NULL,
    scan_duration_ms INTEGER NOT NULL DEFAULT 0,
    scan_settings TEXT NOT NULL DEFAULT '{}',  -- JSON object
    last_scan REAL NOT NULL,  -- unix timestamp
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(webdav_url, webdav_username, path)
);

-- Append-only scan attempt log, partitioned by a hash of (server, username, path)
CREATE TABLE IF NOT EXISTS scan_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    partition_key TEXT NOT NULL,
    webdav_url TEXT NOT NULL,
    webdav_username TEXT NOT NULL,
    path TEXT NOT NULL,
    timestamp REAL NOT NULL,
    scan_type TEXT NOT NULL,
    status TEXT NOT NULL,  -- started, completed, failed
    total_files INTEGER,
    image_count INTEGER,
    video_count INTEGER,
    duration_ms INTEGER,
    error_message TEXT,
    log_details TEXT
);

CREATE INDEX IF NOT EXISTS idx_scan_logs_partition ON scan_logs(partition_key, id);
"""

SCHEMA_V2 = """
CREATE TABLE IF NOT EXISTS scheduled_scans (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    webdav_url TEXT NOT NULL,
    webdav_username TEXT NOT NULL,
    webdav_password TEXT NOT NULL,
    media_paths TEXT NOT NULL,  -- JSON array
    scan_settings TEXT NOT NULL DEFAULT '{}',  -- JSON object
    interval_minutes INTEGER NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    last_run REAL,
    next_run REAL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_scheduled_scans_next_run ON scheduled_scans(is_active, next_run);
"""

# Columns added after the first release: (table, column, definition)
_ADDED_COLUMNS = (
    ("scan_cache", "truncated", "INTEGER NOT NULL DEFAULT 0"),
    ("scan_cache", "truncated_by", "TEXT"),
    ("scan_cache", "failed_directories", "INTEGER NOT NULL DEFAULT 0"),
)


async def table_has_column(db, table: str, column: str) -> bool:
    res = await db.aquery(f"PRAGMA table_info({table})")
    if not res.ok:
        return False
    return any(str(row.get("name")) == column for row in res.data or [])


async def _ensure_columns(db) -> Result[bool]:
    for table, column, definition in _ADDED_COLUMNS:
        if await table_has_column(db, table, column):
            continue
        res = await db.aexecute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
        if not res.ok:
            logger.error("Failed to add column %s.%s: %s", table, column, res.error)
            return Result.Err(res.code, res.error or "ALTER TABLE failed")
    return Result.Ok(True)


async def migrate_schema(db) -> Result[bool]:
    """
    Bring the schema to the current version by ensuring expected tables,
    columns and indexes exist. Safe to run on every start.

    Args:
        db: Sqlite instance

    Returns:
        Result with success boolean
    """
    current_version = await db.aget_schema_version()
    logger.info("Ensuring schema (current version %s -> target %s)", current_version, CURRENT_SCHEMA_VERSION)

    for script in (SCHEMA_V1, SCHEMA_V2):
        res = await db.aexecutescript(script)
        if not res.ok:
            logger.error("Schema creation failed: %s", res.error)
            return res

    columns_res = await _ensure_columns(db)
    if not columns_res.ok:
        return columns_res

    version_res = await db.aset_schema_version(CURRENT_SCHEMA_VERSION)
    if not version_res.ok:
        logger.error("Failed to set schema version: %s", version_res.error)
        return version_res

    if current_version == CURRENT_SCHEMA_VERSION:
        logger.debug("Schema already up to date (%s)", current_version)
    else:
        log_success(logger, f"Schema migrated from version {current_version} to {CURRENT_SCHEMA_VERSION}")
    return Result.Ok(True)
