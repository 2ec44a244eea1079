"""
Progress board: latest snapshot per running scan, plus live subscriptions.

Each scan gets a progress id when it starts. Clients either poll `get()` or
iterate `subscribe()`, which yields every snapshot published after
subscription and ends when the scan finishes.
"""
from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ...shared import format_timestamp, get_logger
from .models import ScanProgress

logger = get_logger(__name__)

_FINISHED_RETENTION_SECONDS = 300.0


@dataclass
class ProgressEntry:
    progress_id: str
    task_id: str
    server_url: str
    username: str
    path: str
    started_at: float
    status: str = "running"
    latest: Optional[ScanProgress] = None
    error: Optional[str] = None
    finished_at: Optional[float] = None
    subscribers: list[asyncio.Queue] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "progress_id": self.progress_id,
            "task_id": self.task_id,
            "path": self.path,
            "status": self.status,
            "started_at": format_timestamp(self.started_at),
            "error": self.error,
        }
        if self.latest is not None:
            out["progress"] = self.latest.to_dict(include_directories=True)
        if self.finished_at is not None:
            out["finished_at"] = format_timestamp(self.finished_at)
        return out


class ScanProgressBoard:
    def __init__(
        self,
        *,
        retention_seconds: float = _FINISHED_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._entries: dict[str, ProgressEntry] = {}
        self._retention = float(retention_seconds)
        self._clock = clock

    def _prune(self) -> None:
        now = self._clock()
        for pid, entry in list(self._entries.items()):
            if entry.finished_at is not None and now - entry.finished_at > self._retention:
                self._entries.pop(pid, None)

    def create(self, task_id: str, server_url: str, username: str, path: str) -> str:
        self._prune()
        progress_id = f"progress-{uuid.uuid4().hex[:12]}"
        self._entries[progress_id] = ProgressEntry(
            progress_id=progress_id,
            task_id=task_id,
            server_url=server_url,
            username=username,
            path=path,
            started_at=self._clock(),
        )
        return progress_id

    def publish(self, progress_id: str, progress: ScanProgress) -> None:
        entry = self._entries.get(progress_id)
        if entry is None:
            return
        entry.latest = progress
        for queue in entry.subscribers:
            queue.put_nowait(progress)

    def finish(self, progress_id: str, status: str, error: Optional[str] = None) -> None:
        entry = self._entries.get(progress_id)
        if entry is None:
            return
        entry.status = status
        entry.error = error
        entry.finished_at = self._clock()
        for queue in entry.subscribers:
            queue.put_nowait(None)
        entry.subscribers.clear()

    def get(self, progress_id: str) -> Optional[ProgressEntry]:
        self._prune()
        return self._entries.get(progress_id)

    def find_by_task(self, task_id: str) -> list[ProgressEntry]:
        self._prune()
        return [e for e in self._entries.values() if e.task_id == task_id]

    async def subscribe(self, progress_id: str) -> AsyncIterator[ScanProgress]:
        """Yield snapshots until the scan finishes. Ends at once for unknown or finished ids."""
        entry = self._entries.get(progress_id)
        if entry is None or entry.finished_at is not None:
            return
        queue: asyncio.Queue = asyncio.Queue()
        entry.subscribers.append(queue)
        try:
            while True:
                item = await queue.get()
                if item is None:
                    return
                yield item
        finally:
            if queue in entry.subscribers:
                entry.subscribers.remove(queue)
