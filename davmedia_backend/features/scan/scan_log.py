"""
Append-only log of scan attempts, one partition per (server_url, username, path).
"""
from __future__ import annotations

import hashlib
import time
from typing import Optional

from ...adapters.db import Sqlite
from ...config import SCAN_LOG_DEFAULT_LIMIT
from ...shared import ScanLogError, get_logger
from .models import LogStatus, ScanLogRecord, normalize_target

logger = get_logger(__name__)


def _short_hash(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()[:8]


def partition_key(server_url: str, username: str, path: str) -> str:
    """Stable partition name derived from the three key strings."""
    url, user, norm_path = normalize_target(server_url, username, path)
    return f"scan_{_short_hash(url)}_{_short_hash(user)}_{_short_hash(norm_path)}"


class ScanLog:
    """
    Scan attempt records. Appends never raise: a log write failure must not
    fail the scan it describes.
    """

    def __init__(self, db: Sqlite, *, clock=time.time) -> None:
        self._db = db
        self._clock = clock

    async def append(
        self,
        server_url: str,
        username: str,
        path: str,
        *,
        scan_type: str,
        status: LogStatus,
        total_files: Optional[int] = None,
        image_count: Optional[int] = None,
        video_count: Optional[int] = None,
        duration_ms: Optional[int] = None,
        error_message: Optional[str] = None,
        log_details: Optional[str] = None,
    ) -> Optional[ScanLogRecord]:
        url, user, norm_path = normalize_target(server_url, username, path)
        record = ScanLogRecord(
            timestamp=float(self._clock()),
            path=norm_path,
            scan_type=scan_type,
            status=status,
            total_files=total_files,
            image_count=image_count,
            video_count=video_count,
            duration_ms=duration_ms,
            error_message=error_message,
            log_details=log_details,
        )
        res = await self._db.aexecute(
            """
            INSERT INTO scan_logs
            (partition_key, webdav_url, webdav_username, path, timestamp, scan_type, status,
             total_files, image_count, video_count, duration_ms, error_message, log_details)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                partition_key(url, user, norm_path),
                url,
                user,
                norm_path,
                record.timestamp,
                record.scan_type,
                record.status,
                record.total_files,
                record.image_count,
                record.video_count,
                record.duration_ms,
                record.error_message,
                record.log_details,
            ),
        )
        if not res.ok:
            logger.warning("Failed to write scan log for %s (%s): %s", norm_path, status, res.error)
            return None
        return record

    async def read(
        self,
        server_url: str,
        username: str,
        path: str,
        limit: int = SCAN_LOG_DEFAULT_LIMIT,
    ) -> list[ScanLogRecord]:
        """Records for one partition, most recent first."""
        res = await self._db.aquery(
            """
            SELECT timestamp, path, scan_type, status, total_files, image_count, video_count,
                   duration_ms, error_message, log_details
            FROM scan_logs
            WHERE partition_key = ?
            ORDER BY id DESC
            LIMIT ?
            """,
            (partition_key(server_url, username, path), max(1, int(limit))),
        )
        if not res.ok:
            raise ScanLogError(f"Failed to read scan logs: {res.error}")
        return [
            ScanLogRecord(
                timestamp=float(row.get("timestamp") or 0.0),
                path=str(row.get("path") or ""),
                scan_type=str(row.get("scan_type") or ""),
                status=row.get("status") or "started",
                total_files=row.get("total_files"),
                image_count=row.get("image_count"),
                video_count=row.get("video_count"),
                duration_ms=row.get("duration_ms"),
                error_message=row.get("error_message"),
                log_details=row.get("log_details"),
            )
            for row in res.data or []
        ]

    async def clear(self, server_url: str, username: str, path: str) -> bool:
        """Drop a partition. Returns False when it held no records."""
        res = await self._db.aexecute(
            "DELETE FROM scan_logs WHERE partition_key = ?",
            (partition_key(server_url, username, path),),
        )
        if not res.ok:
            raise ScanLogError(f"Failed to clear scan logs: {res.error}")
        return bool(res.data)
