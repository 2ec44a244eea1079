"""
Scheduled scans store - recurring multi-path scans persisted in `scheduled_scans`.

Entries repeat every `interval_minutes`; `next_run` is recomputed from the
time of the last run.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ...adapters.db import Sqlite
from ...adapters.webdav import normalize_remote_path
from ...shared import ErrorCode, Result, format_timestamp, get_logger
from ..scan.models import ScanSettings, normalize_server_url

logger = get_logger(__name__)

MIN_INTERVAL_MINUTES = 1
MAX_INTERVAL_MINUTES = 60 * 24 * 31

_UPDATABLE = ("webdav_url", "webdav_username", "webdav_password", "media_paths", "scan_settings", "interval_minutes", "is_active")


@dataclass
class ScheduledScan:
    id: int
    server_url: str
    username: str
    password: str
    media_paths: List[str]
    settings: ScanSettings
    interval_minutes: int
    is_active: bool = True
    last_run: Optional[float] = None
    next_run: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        # Credentials stay server side.
        return {
            "id": self.id,
            "server_url": self.server_url,
            "username": self.username,
            "media_paths": list(self.media_paths),
            "scan_settings": self.settings.to_dict(),
            "interval_minutes": self.interval_minutes,
            "is_active": self.is_active,
            "last_run": format_timestamp(self.last_run) if self.last_run else None,
            "next_run": format_timestamp(self.next_run) if self.next_run else None,
        }


def _row_to_scan(row: Dict[str, Any]) -> ScheduledScan:
    try:
        paths = json.loads(row.get("media_paths") or "[]")
    except (TypeError, ValueError):
        paths = []
    try:
        settings = json.loads(row.get("scan_settings") or "{}")
    except (TypeError, ValueError):
        settings = {}
    return ScheduledScan(
        id=int(row["id"]),
        server_url=str(row.get("webdav_url") or ""),
        username=str(row.get("webdav_username") or ""),
        password=str(row.get("webdav_password") or ""),
        media_paths=[str(p) for p in paths if isinstance(p, str)],
        settings=ScanSettings.from_payload(settings if isinstance(settings, dict) else {}),
        interval_minutes=int(row.get("interval_minutes") or MIN_INTERVAL_MINUTES),
        is_active=bool(row.get("is_active")),
        last_run=row.get("last_run"),
        next_run=row.get("next_run"),
    )


def _validate_interval(value: Any) -> Optional[int]:
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        return None
    if minutes < MIN_INTERVAL_MINUTES or minutes > MAX_INTERVAL_MINUTES:
        return None
    return minutes


def _validate_paths(value: Any) -> Optional[List[str]]:
    if not isinstance(value, (list, tuple)) or not value:
        return None
    out: List[str] = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            return None
        norm = normalize_remote_path(item)
        if norm not in out:
            out.append(norm)
    return out


class ScheduledScanStore:
    def __init__(self, db: Sqlite, *, clock=time.time):
        self._db = db
        self._clock = clock

    async def create(
        self,
        server_url: str,
        username: str,
        password: str,
        media_paths: List[str],
        interval_minutes: int,
        settings: Optional[Dict[str, Any]] = None,
        is_active: bool = True,
    ) -> Result[ScheduledScan]:
        url = normalize_server_url(server_url)
        if not url:
            return Result.Err(ErrorCode.INVALID_INPUT, "Missing server_url")
        paths = _validate_paths(media_paths)
        if paths is None:
            return Result.Err(ErrorCode.INVALID_INPUT, "media_paths must be a non-empty list of paths")
        minutes = _validate_interval(interval_minutes)
        if minutes is None:
            return Result.Err(
                ErrorCode.INVALID_INPUT,
                f"interval_minutes must be between {MIN_INTERVAL_MINUTES} and {MAX_INTERVAL_MINUTES}",
            )
        scan_settings = ScanSettings.from_payload(settings)
        next_run = float(self._clock()) + minutes * 60
        res = await self._db.aexecute(
            """
            INSERT INTO scheduled_scans
            (webdav_url, webdav_username, webdav_password, media_paths, scan_settings, interval_minutes, is_active, next_run)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                url,
                str(username or ""),
                str(password or ""),
                json.dumps(paths),
                json.dumps(scan_settings.to_dict()),
                minutes,
                1 if is_active else 0,
                next_run,
            ),
        )
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to create scheduled scan")
        logger.info("Scheduled scan %s created for %s (%s paths, every %s min)", res.data, url, len(paths), minutes)
        return await self.get(int(res.data))

    async def get(self, scan_id: int) -> Result[ScheduledScan]:
        res = await self._db.aquery_one("SELECT * FROM scheduled_scans WHERE id = ?", (int(scan_id),))
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to load scheduled scan")
        if res.data is None:
            return Result.Err(ErrorCode.NOT_FOUND, f"Scheduled scan {scan_id} not found")
        return Result.Ok(_row_to_scan(res.data))

    async def list_all(self) -> Result[List[ScheduledScan]]:
        res = await self._db.aquery("SELECT * FROM scheduled_scans ORDER BY created_at DESC, id DESC")
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to list scheduled scans")
        return Result.Ok([_row_to_scan(row) for row in res.data or []])

    async def list_active(self) -> Result[List[ScheduledScan]]:
        res = await self._db.aquery("SELECT * FROM scheduled_scans WHERE is_active = 1 ORDER BY next_run ASC")
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to list scheduled scans")
        return Result.Ok([_row_to_scan(row) for row in res.data or []])

    async def list_due(self, now: Optional[float] = None) -> Result[List[ScheduledScan]]:
        """Active entries whose next run is at or before `now`."""
        ts = float(self._clock() if now is None else now)
        res = await self._db.aquery(
            "SELECT * FROM scheduled_scans WHERE is_active = 1 AND next_run IS NOT NULL AND next_run <= ? ORDER BY next_run ASC",
            (ts,),
        )
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to list due scheduled scans")
        return Result.Ok([_row_to_scan(row) for row in res.data or []])

    async def update(self, scan_id: int, **fields: Any) -> Result[ScheduledScan]:
        """
        Update the given fields. Accepts `server_url`, `username`, `password`,
        `media_paths`, `settings`, `interval_minutes`, `is_active`.
        """
        current = await self.get(scan_id)
        if not current.ok:
            return current
        entry = current.data
        values: Dict[str, Any] = {}
        if "server_url" in fields:
            url = normalize_server_url(fields["server_url"])
            if not url:
                return Result.Err(ErrorCode.INVALID_INPUT, "Missing server_url")
            values["webdav_url"] = url
        if "username" in fields:
            values["webdav_username"] = str(fields["username"] or "")
        if "password" in fields:
            values["webdav_password"] = str(fields["password"] or "")
        if "media_paths" in fields:
            paths = _validate_paths(fields["media_paths"])
            if paths is None:
                return Result.Err(ErrorCode.INVALID_INPUT, "media_paths must be a non-empty list of paths")
            values["media_paths"] = json.dumps(paths)
        if "settings" in fields:
            values["scan_settings"] = json.dumps(ScanSettings.from_payload(fields["settings"]).to_dict())
        if "interval_minutes" in fields:
            minutes = _validate_interval(fields["interval_minutes"])
            if minutes is None:
                return Result.Err(ErrorCode.INVALID_INPUT, "Invalid interval_minutes")
            values["interval_minutes"] = minutes
        if "is_active" in fields:
            values["is_active"] = 1 if fields["is_active"] else 0
        if not values:
            return Result.Ok(entry)

        if "interval_minutes" in values:
            base = entry.last_run if entry.last_run else float(self._clock())
            values["next_run"] = base + values["interval_minutes"] * 60

        columns = [c for c in values if c in _UPDATABLE or c == "next_run"]
        assignments = ", ".join(f"{c} = ?" for c in columns)
        res = await self._db.aexecute(
            f"UPDATE scheduled_scans SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            tuple(values[c] for c in columns) + (int(scan_id),),
        )
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to update scheduled scan")
        return await self.get(scan_id)

    async def delete(self, scan_id: int) -> Result[bool]:
        res = await self._db.aexecute("DELETE FROM scheduled_scans WHERE id = ?", (int(scan_id),))
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to delete scheduled scan")
        if not res.data:
            return Result.Err(ErrorCode.NOT_FOUND, f"Scheduled scan {scan_id} not found")
        return Result.Ok(True)

    async def mark_run(self, scan_id: int, ran_at: Optional[float] = None) -> Result[bool]:
        """Record a run and push `next_run` one interval past it."""
        ts = float(self._clock() if ran_at is None else ran_at)
        res = await self._db.aexecute(
            """
            UPDATE scheduled_scans
            SET last_run = ?, next_run = ? + interval_minutes * 60, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            (ts, ts, int(scan_id)),
        )
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to record scheduled run")
        return Result.Ok(bool(res.data))
