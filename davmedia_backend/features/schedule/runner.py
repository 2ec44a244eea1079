"""
Scheduler loop: runs due scheduled scans through the scan orchestrator.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from ...config import SCHEDULER_INTERVAL, SCHEDULER_MIN_INTERVAL
from ...shared import get_logger, log_structured, sanitize_error_message
from ..scan.orchestrator import ScanOrchestrator
from .store import ScheduledScan, ScheduledScanStore

logger = get_logger(__name__)


class ScanScheduler:
    """
    Periodically checks for due entries. Each due entry is scanned path by
    path with a forced rescan; the file and time budgets are divided evenly
    across its paths.
    """

    def __init__(
        self,
        store: ScheduledScanStore,
        orchestrator: ScanOrchestrator,
        *,
        default_interval: float = SCHEDULER_INTERVAL,
        min_interval: float = SCHEDULER_MIN_INTERVAL,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._orchestrator = orchestrator
        self._default_interval = max(float(min_interval), float(default_interval))
        self._min_interval = float(min_interval)
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self._last_check: Optional[float] = None
        self._check_interval = self._default_interval

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "check_interval_seconds": self._check_interval,
            "last_check": self._last_check,
        }

    async def compute_check_interval(self) -> float:
        """Smallest active entry interval in seconds, never below the minimum."""
        res = await self._store.list_active()
        if not res.ok or not res.data:
            return self._default_interval
        smallest = min(entry.interval_minutes for entry in res.data) * 60.0
        return max(self._min_interval, smallest)

    async def _run_entry(self, entry: ScheduledScan, now: float) -> Dict[str, Any]:
        settings = entry.settings.split_across(len(entry.media_paths))
        outcome: Dict[str, Any] = {"id": entry.id, "server_url": entry.server_url}
        try:
            summary = await self._orchestrator.run_multi_scan(
                entry.server_url,
                entry.username,
                entry.password,
                entry.media_paths,
                settings,
                force_rescan=True,
            )
            outcome["status"] = "success"
            outcome["result"] = {
                "total_files": summary["total_files"],
                "image_count": summary["image_count"],
                "video_count": summary["video_count"],
                "scanned_paths": len(summary["paths"]),
            }
        except Exception as exc:
            logger.warning("Scheduled scan %s failed: %s", entry.id, exc)
            outcome["status"] = "error"
            outcome["error"] = sanitize_error_message(exc, "Scheduled scan failed")
        finally:
            marked = await self._store.mark_run(entry.id, now)
            if not marked.ok:
                logger.error("Failed to record run of scheduled scan %s: %s", entry.id, marked.error)
        return outcome

    async def run_due(self, now: Optional[float] = None) -> List[Dict[str, Any]]:
        """Execute every due entry once, sequentially. Returns one outcome per entry."""
        ts = float(self._clock() if now is None else now)
        self._last_check = ts
        due = await self._store.list_due(ts)
        if not due.ok:
            logger.error("Failed to load due scheduled scans: %s", due.error)
            return []
        executed = []
        for entry in due.data or []:
            executed.append(await self._run_entry(entry, ts))
        if executed:
            log_structured(
                logger,
                logging.INFO,
                "scheduled scans executed",
                count=len(executed),
                failed=sum(1 for e in executed if e["status"] != "success"),
            )
        return executed

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_due()
                self._check_interval = await self.compute_check_interval()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("Scheduler iteration failed: %s", exc)
            await asyncio.sleep(self._check_interval)

    def start(self) -> bool:
        """Start the loop on the running event loop. Returns False if already running."""
        if self.is_running:
            return False
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info("Scan scheduler started (check interval %.0fs)", self._check_interval)
        return True

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Scan scheduler stopped")
