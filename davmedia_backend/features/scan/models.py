"""
Scan data model: file entries, results, progress snapshots, settings, task and log records.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from ...adapters.webdav import normalize_remote_path
from ...config import (
    SCAN_BATCH_SIZE,
    SCAN_BATCH_SIZE_MAX,
    SCAN_MAX_DEPTH,
    SCAN_MAX_FILES,
    SCAN_TIMEOUT_MS,
)
from ...shared import classify_file, format_timestamp
from ...utils import parse_int

TaskStatus = Literal["running", "completed", "failed"]
LogStatus = Literal["started", "completed", "failed"]
TruncationReason = Literal["timeout", "max_files", "max_depth"]


def normalize_server_url(server_url: str) -> str:
    return str(server_url or "").strip().rstrip("/")


def normalize_target(server_url: str, username: str, path: str) -> tuple[str, str, str]:
    """Canonical (server_url, username, path) triple used by cache, registry and log keys."""
    return normalize_server_url(server_url), str(username or ""), normalize_remote_path(path)


@dataclass(frozen=True)
class MediaFileEntry:
    full_path: str
    base_name: str
    size_bytes: int
    kind: Literal["image", "video"]
    last_modified: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.full_path,
            "basename": self.base_name,
            "size": self.size_bytes,
            "kind": self.kind,
            "lastmod": self.last_modified,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MediaFileEntry":
        full_path = str(data.get("filename") or "")
        kind = data.get("kind") or classify_file(full_path)
        return cls(
            full_path=full_path,
            base_name=str(data.get("basename") or full_path.rsplit("/", 1)[-1]),
            size_bytes=parse_int(data.get("size"), 0, min_value=0),
            kind="video" if kind == "video" else "image",
            last_modified=data.get("lastmod"),
        )


@dataclass(frozen=True)
class ScanResult:
    """
    Outcome of one walk. `image_count + video_count <= total_files` always holds;
    the counts are derived from `files` by `from_files`.
    """

    root_path: str
    files: tuple[MediaFileEntry, ...]
    total_files: int
    image_count: int
    video_count: int
    scan_duration_ms: int
    truncated: bool = False
    truncated_by: Optional[TruncationReason] = None
    failed_directories: int = 0

    @classmethod
    def from_files(
        cls,
        root_path: str,
        files: Iterable[MediaFileEntry],
        *,
        scan_duration_ms: int,
        truncated_by: Optional[TruncationReason] = None,
        failed_directories: int = 0,
    ) -> "ScanResult":
        items = tuple(files)
        kinds = [classify_file(f.base_name) for f in items]
        return cls(
            root_path=root_path,
            files=items,
            total_files=len(items),
            image_count=kinds.count("image"),
            video_count=kinds.count("video"),
            scan_duration_ms=int(scan_duration_ms),
            truncated=truncated_by is not None,
            truncated_by=truncated_by,
            failed_directories=int(failed_directories),
        )

    def summary(self) -> dict[str, Any]:
        return {
            "path": self.root_path,
            "total_files": self.total_files,
            "image_count": self.image_count,
            "video_count": self.video_count,
            "duration_ms": self.scan_duration_ms,
            "truncated": self.truncated,
            "truncated_by": self.truncated_by,
            "failed_directories": self.failed_directories,
        }


@dataclass(frozen=True)
class ScanSettings:
    batch_size: int = SCAN_BATCH_SIZE
    max_depth: int = SCAN_MAX_DEPTH
    max_files: int = SCAN_MAX_FILES
    timeout_ms: int = SCAN_TIMEOUT_MS

    @classmethod
    def from_payload(cls, payload: Optional[Mapping[str, Any]]) -> "ScanSettings":
        """Merge request settings (camelCase or snake_case keys) over configured defaults."""
        data = dict(payload or {})

        def pick(*keys: str) -> Any:
            for key in keys:
                if data.get(key) is not None:
                    return data[key]
            return None

        return cls(
            batch_size=parse_int(pick("batch_size", "batchSize"), SCAN_BATCH_SIZE, min_value=1, max_value=SCAN_BATCH_SIZE_MAX),
            max_depth=parse_int(pick("max_depth", "maxDepth"), SCAN_MAX_DEPTH, min_value=0),
            max_files=parse_int(pick("max_files", "maxFiles"), SCAN_MAX_FILES, min_value=1),
            timeout_ms=parse_int(pick("timeout_ms", "timeoutMs", "timeout"), SCAN_TIMEOUT_MS, min_value=1),
        )

    def split_across(self, count: int) -> "ScanSettings":
        """Divide the file and time budgets evenly across `count` paths."""
        n = max(1, int(count))
        return ScanSettings(
            batch_size=self.batch_size,
            max_depth=self.max_depth,
            max_files=max(1, self.max_files // n),
            timeout_ms=max(1, self.timeout_ms // n),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "batchSize": self.batch_size,
            "maxDepth": self.max_depth,
            "maxFiles": self.max_files,
            "timeoutMs": self.timeout_ms,
        }


@dataclass(frozen=True)
class ScanProgress:
    current_path: str
    scanned_directories: int
    total_directories: int
    found_files: int
    percentage: int
    pending_directories: tuple[str, ...] = ()
    completed_directories: tuple[str, ...] = ()

    @staticmethod
    def compute_percentage(scanned: int, total: int) -> int:
        if total <= 0:
            return 0
        return max(0, min(100, round(scanned / total * 100)))

    def to_dict(self, *, include_directories: bool = False) -> dict[str, Any]:
        out: dict[str, Any] = {
            "current_path": self.current_path,
            "scanned_directories": self.scanned_directories,
            "total_directories": self.total_directories,
            "found_files": self.found_files,
            "percentage": self.percentage,
            "pending_count": len(self.pending_directories),
        }
        if include_directories:
            out["pending_directories"] = list(self.pending_directories)
            out["completed_directories"] = list(self.completed_directories)
        return out


@dataclass(frozen=True)
class CacheEntry:
    server_url: str
    username: str
    path: str
    result: ScanResult
    last_scan: float
    settings: dict[str, Any] = field(default_factory=dict)

    def summary(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "total": self.result.total_files,
            "images": self.result.image_count,
            "videos": self.result.video_count,
            "lastScan": format_timestamp(self.last_scan),
            "truncated": self.result.truncated,
        }


@dataclass
class ScanTaskRecord:
    task_id: str
    server_url: str
    username: str
    paths: tuple[str, ...]
    start_time: float
    status: TaskStatus = "running"
    error_message: Optional[str] = None
    finished_at: Optional[float] = None

    @property
    def key(self) -> tuple[str, str, tuple[str, ...]]:
        return (self.server_url, self.username, self.paths)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "server_url": self.server_url,
            "username": self.username,
            "paths": list(self.paths),
            "start_time": format_timestamp(self.start_time),
            "status": self.status,
            "error": self.error_message,
            "finished_at": format_timestamp(self.finished_at) if self.finished_at else None,
        }


@dataclass(frozen=True)
class ScanLogRecord:
    timestamp: float
    path: str
    scan_type: str
    status: LogStatus
    total_files: Optional[int] = None
    image_count: Optional[int] = None
    video_count: Optional[int] = None
    duration_ms: Optional[int] = None
    error_message: Optional[str] = None
    log_details: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": format_timestamp(self.timestamp),
            "path": self.path,
            "scanType": self.scan_type,
            "status": self.status,
            "totalFiles": self.total_files,
            "imageCount": self.image_count,
            "videoCount": self.video_count,
            "durationMs": self.duration_ms,
            "errorMessage": self.error_message,
            "logDetails": self.log_details,
        }


@dataclass(frozen=True)
class ScanOutcome:
    """What `run_scan` hands back: a fresh result, a cached one, or a join on a running task."""

    status: Literal["completed", "cached", "joined"]
    result: Optional[ScanResult] = None
    task_id: Optional[str] = None
    progress_id: Optional[str] = None
    last_scan: Optional[float] = None

    @property
    def from_cache(self) -> bool:
        return self.status == "cached"

    @property
    def task_running(self) -> bool:
        return self.status == "joined"

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "status": self.status,
            "from_cache": self.from_cache,
            "task_running": self.task_running,
            "task_id": self.task_id,
            "progress_id": self.progress_id,
        }
        if self.result is not None:
            out["result"] = self.result.summary()
        if self.last_scan is not None:
            out["last_scan"] = format_timestamp(self.last_scan)
        return out
