"""
Scan cache: last successful scan per (server_url, username, path).

The password is not part of the key; the same account on the same server
shares one entry across password changes.
"""
from __future__ import annotations

import asyncio
import json
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Optional

from ...adapters.db import Sqlite
from ...shared import ScanCacheError, get_logger
from .models import CacheEntry, MediaFileEntry, ScanResult, normalize_server_url, normalize_target

logger = get_logger(__name__)

_SUMMARY_COLUMNS = (
    "webdav_url, webdav_username, path, total_files, image_count, video_count, "
    "scan_duration_ms, truncated, truncated_by, failed_directories, scan_settings, last_scan"
)


def _decode_json(raw: Any, default: Any) -> Any:
    if raw is None or raw == "":
        return default
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Discarding undecodable JSON column value in scan cache")
        return default


def _row_to_entry(row: dict[str, Any], *, include_files: bool) -> CacheEntry:
    files: tuple[MediaFileEntry, ...] = ()
    if include_files:
        files = tuple(
            MediaFileEntry.from_dict(item)
            for item in _decode_json(row.get("files_data"), [])
            if isinstance(item, dict)
        )
    truncated_by = row.get("truncated_by") or None
    result = ScanResult(
        root_path=str(row.get("path") or ""),
        files=files,
        total_files=int(row.get("total_files") or 0),
        image_count=int(row.get("image_count") or 0),
        video_count=int(row.get("video_count") or 0),
        scan_duration_ms=int(row.get("scan_duration_ms") or 0),
        truncated=bool(row.get("truncated")),
        truncated_by=truncated_by,
        failed_directories=int(row.get("failed_directories") or 0),
    )
    settings = _decode_json(row.get("scan_settings"), {})
    return CacheEntry(
        server_url=str(row.get("webdav_url") or ""),
        username=str(row.get("webdav_username") or ""),
        path=result.root_path,
        result=result,
        last_scan=float(row.get("last_scan") or 0.0),
        settings=settings if isinstance(settings, dict) else {},
    )


class ScanCache:
    """
    SQLite-backed scan cache. Saves replace the whole row; saves to the same
    key are serialized by a per-key lock.
    """

    def __init__(self, db: Sqlite, *, clock=time.time) -> None:
        self._db = db
        self._clock = clock
        self._key_locks: dict[tuple[str, str, str], asyncio.Lock] = {}
        self._key_users: dict[tuple[str, str, str], int] = {}

    @asynccontextmanager
    async def _lock_for(self, key: tuple[str, str, str]) -> AsyncIterator[None]:
        """Hold the lock for `key`; it is dropped once nobody holds or awaits it."""
        lock = self._key_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._key_locks[key] = lock
        self._key_users[key] = self._key_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            users = self._key_users[key] - 1
            if users:
                self._key_users[key] = users
            else:
                del self._key_users[key]
                del self._key_locks[key]

    async def get(self, server_url: str, username: str, path: str) -> Optional[CacheEntry]:
        url, user, norm_path = normalize_target(server_url, username, path)
        res = await self._db.aquery_one(
            "SELECT * FROM scan_cache WHERE webdav_url = ? AND webdav_username = ? AND path = ?",
            (url, user, norm_path),
        )
        if not res.ok:
            raise ScanCacheError(f"Failed to read scan cache: {res.error}")
        if res.data is None:
            return None
        return _row_to_entry(res.data, include_files=True)

    async def save(
        self,
        server_url: str,
        username: str,
        path: str,
        result: ScanResult,
        settings_used: Optional[dict[str, Any]] = None,
    ) -> CacheEntry:
        """Replace the entry for the key with `result`."""
        key = normalize_target(server_url, username, path)
        files_data = json.dumps([f.to_dict() for f in result.files], ensure_ascii=False)
        settings_json = json.dumps(dict(settings_used or {}), ensure_ascii=False)
        last_scan = float(self._clock())
        async with self._lock_for(key):
            res = await self._db.aexecute(
                """
                INSERT OR REPLACE INTO scan_cache
                (webdav_url, webdav_username, path, files_data, total_files, image_count, video_count,
                 scan_duration_ms, truncated, truncated_by, failed_directories, scan_settings, last_scan)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    key[0],
                    key[1],
                    key[2],
                    files_data,
                    result.total_files,
                    result.image_count,
                    result.video_count,
                    result.scan_duration_ms,
                    1 if result.truncated else 0,
                    result.truncated_by,
                    result.failed_directories,
                    settings_json,
                    last_scan,
                ),
            )
        if not res.ok:
            raise ScanCacheError(f"Failed to save scan cache: {res.error}")
        logger.debug("Cached %s files for %s %s", result.total_files, key[0], key[2])
        return CacheEntry(
            server_url=key[0],
            username=key[1],
            path=key[2],
            result=result,
            last_scan=last_scan,
            settings=dict(settings_used or {}),
        )

    async def delete(self, server_url: str, username: str, path: str) -> bool:
        """Remove the entry; returns True when a row existed."""
        key = normalize_target(server_url, username, path)
        async with self._lock_for(key):
            res = await self._db.aexecute(
                "DELETE FROM scan_cache WHERE webdav_url = ? AND webdav_username = ? AND path = ?",
                key,
            )
        if not res.ok:
            raise ScanCacheError(f"Failed to delete scan cache entry: {res.error}")
        return bool(res.data)

    async def list_by_server(
        self,
        server_url: str,
        username: str,
        *,
        include_files: bool = False,
    ) -> list[CacheEntry]:
        """Entries for one server account, most recently scanned first."""
        columns = "*" if include_files else _SUMMARY_COLUMNS
        res = await self._db.aquery(
            f"SELECT {columns} FROM scan_cache WHERE webdav_url = ? AND webdav_username = ? ORDER BY last_scan DESC",
            (normalize_server_url(server_url), str(username or "")),
        )
        if not res.ok:
            raise ScanCacheError(f"Failed to list scan cache: {res.error}")
        return [_row_to_entry(row, include_files=include_files) for row in res.data or []]

    async def list_all(self) -> list[CacheEntry]:
        res = await self._db.aquery(f"SELECT {_SUMMARY_COLUMNS} FROM scan_cache ORDER BY last_scan DESC")
        if not res.ok:
            raise ScanCacheError(f"Failed to list scan cache: {res.error}")
        return [_row_to_entry(row, include_files=False) for row in res.data or []]

    async def cleanup(self, max_age_days: float = 7.0) -> int:
        """Drop entries older than `max_age_days`; returns the number removed."""
        cutoff = float(self._clock()) - float(max_age_days) * 86400.0
        res = await self._db.aexecute("DELETE FROM scan_cache WHERE last_scan < ?", (cutoff,))
        if not res.ok:
            raise ScanCacheError(f"Failed to clean up scan cache: {res.error}")
        removed = int(res.data or 0)
        if removed:
            logger.info("Removed %s stale scan cache entries", removed)
        return removed
