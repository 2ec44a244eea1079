"""
In-memory ledger of running and recently finished scans.

A task is identified by its canonical key (server_url, username, sorted paths).
While a task with a key is running, starting the same key joins it and hands
back its id. Finished records linger for a while so clients polling by id still
see the outcome:

- completed: removed `completed_ttl` seconds after completion;
- failed: removed `failed_ttl` seconds after failure;
- any record older than `stale_age` seconds from start is removed by the sweep.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from collections.abc import Iterable
from dataclasses import replace
from typing import Callable, Optional

from ...config import TASK_COMPLETED_TTL, TASK_FAILED_TTL, TASK_STALE_AGE, TASK_SWEEP_INTERVAL
from ...adapters.webdav import normalize_remote_path
from ...shared import get_logger, log_structured
from .models import ScanTaskRecord, normalize_server_url

logger = get_logger(__name__)

TaskKey = tuple[str, str, tuple[str, ...]]


def _new_task_id() -> str:
    return f"scan-{uuid.uuid4().hex[:12]}"


class ScanTaskRegistry:
    """
    Thread-safe task registry. All record access goes through `_lock`.
    Expiry is applied lazily on every call and by the optional sweeper task.
    """

    def __init__(
        self,
        *,
        completed_ttl: float = TASK_COMPLETED_TTL,
        failed_ttl: float = TASK_FAILED_TTL,
        stale_age: float = TASK_STALE_AGE,
        sweep_interval: float = TASK_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._completed_ttl = float(completed_ttl)
        self._failed_ttl = float(failed_ttl)
        self._stale_age = float(stale_age)
        self._sweep_interval = float(sweep_interval)
        self._clock = clock
        self._lock = threading.Lock()
        self._tasks: dict[str, ScanTaskRecord] = {}
        self._running: dict[TaskKey, str] = {}
        self._expires_at: dict[str, float] = {}
        self._sweeper: Optional[asyncio.Task] = None

    @staticmethod
    def task_key(server_url: str, username: str, paths: Iterable[str]) -> TaskKey:
        norm_paths = tuple(sorted({normalize_remote_path(p) for p in paths}))
        return normalize_server_url(server_url), str(username or ""), norm_paths

    # ------------------------------------------------------------------
    # Expiry (caller holds _lock)
    # ------------------------------------------------------------------

    def _drop_locked(self, task_id: str) -> None:
        record = self._tasks.pop(task_id, None)
        self._expires_at.pop(task_id, None)
        if record is not None and self._running.get(record.key) == task_id:
            self._running.pop(record.key, None)

    def _expire_locked(self, now: float) -> list[str]:
        removed: list[str] = []
        for task_id, record in list(self._tasks.items()):
            expires = self._expires_at.get(task_id)
            if (expires is not None and now >= expires) or now - record.start_time > self._stale_age:
                self._drop_locked(task_id)
                removed.append(task_id)
        return removed

    def _find_running_locked(self, key: TaskKey) -> Optional[ScanTaskRecord]:
        task_id = self._running.get(key)
        if task_id is not None:
            return self._tasks.get(task_id)
        # A running multi-path task that covers every requested path counts too.
        url, user, paths = key
        wanted = set(paths)
        for running_key, running_id in self._running.items():
            if running_key[0] == url and running_key[1] == user and wanted <= set(running_key[2]):
                return self._tasks.get(running_id)
        return None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def try_start_task(self, server_url: str, username: str, paths: Iterable[str]) -> tuple[str, bool]:
        """
        Atomically join or start. Returns `(task_id, started)`; `started` is
        False when an already running task was joined.
        """
        key = self.task_key(server_url, username, paths)
        with self._lock:
            now = self._clock()
            self._expire_locked(now)
            existing = self._find_running_locked(key)
            if existing is not None:
                joined_id = existing.task_id
                started = False
            else:
                joined_id = _new_task_id()
                self._tasks[joined_id] = ScanTaskRecord(
                    task_id=joined_id,
                    server_url=key[0],
                    username=key[1],
                    paths=key[2],
                    start_time=now,
                )
                self._running[key] = joined_id
                started = True
        log_structured(
            logger,
            logging.INFO if started else logging.DEBUG,
            "scan task started" if started else "scan task joined",
            task_id=joined_id,
            server_url=key[0],
            paths=list(key[2]),
        )
        return joined_id, started

    def start_task(self, server_url: str, username: str, paths: Iterable[str]) -> str:
        """Start a task, or return the id of the running task for the same key."""
        return self.try_start_task(server_url, username, paths)[0]

    def _finish(self, task_id: str, status: str, error: Optional[str], ttl: float) -> bool:
        with self._lock:
            now = self._clock()
            record = self._tasks.get(task_id)
            if record is None:
                return False
            record.status = status
            record.error_message = error
            record.finished_at = now
            self._expires_at[task_id] = now + ttl
            if self._running.get(record.key) == task_id:
                self._running.pop(record.key, None)
            return True

    def complete_task(self, task_id: str) -> bool:
        done = self._finish(task_id, "completed", None, self._completed_ttl)
        if not done:
            logger.debug("complete_task: unknown task %s", task_id)
        return done

    def fail_task(self, task_id: str, error_message: str) -> bool:
        done = self._finish(task_id, "failed", str(error_message or "Scan failed"), self._failed_ttl)
        if done:
            log_structured(logger, logging.WARNING, "scan task failed", task_id=task_id, error=error_message)
        else:
            logger.debug("fail_task: unknown task %s", task_id)
        return done

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_task_running(self, server_url: str, username: str, paths: Iterable[str]) -> bool:
        return self.get_running_task(server_url, username, paths) is not None

    def get_running_task(self, server_url: str, username: str, paths: Iterable[str]) -> Optional[ScanTaskRecord]:
        """Copy of the running task for the key, if any."""
        key = self.task_key(server_url, username, paths)
        with self._lock:
            self._expire_locked(self._clock())
            record = self._find_running_locked(key)
            return replace(record) if record is not None else None

    def get_task(self, task_id: str) -> Optional[ScanTaskRecord]:
        with self._lock:
            self._expire_locked(self._clock())
            record = self._tasks.get(task_id)
            return replace(record) if record is not None else None

    def list_tasks(self) -> list[ScanTaskRecord]:
        with self._lock:
            self._expire_locked(self._clock())
            records = [replace(r) for r in self._tasks.values()]
        return sorted(records, key=lambda r: r.start_time, reverse=True)

    def is_path_being_scanned(self, server_url: str, username: str, path: str) -> bool:
        url = normalize_server_url(server_url)
        user = str(username or "")
        target = normalize_remote_path(path)
        with self._lock:
            self._expire_locked(self._clock())
            return any(
                key[0] == url and key[1] == user and target in key[2]
                for key in self._running
            )

    def get_paths_to_scan(self, server_url: str, username: str, paths: Iterable[str]) -> list[str]:
        """`paths` minus those a running task already covers, in input order."""
        return [p for p in paths if not self.is_path_being_scanned(server_url, username, p)]

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def cleanup_expired_tasks(self) -> int:
        with self._lock:
            removed = self._expire_locked(self._clock())
        if removed:
            log_structured(logger, logging.INFO, "expired scan tasks removed", count=len(removed), task_ids=removed)
        return len(removed)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                self.cleanup_expired_tasks()
            except Exception as exc:
                logger.warning("Task sweep failed: %s", exc)

    def start_sweeper(self) -> None:
        """Start the periodic sweep on the running event loop (idempotent)."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def stop_sweeper(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
