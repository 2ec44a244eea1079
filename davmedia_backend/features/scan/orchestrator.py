"""
Scan orchestration: cache hit vs rescan, task de-duplication, walk, cache save,
scan log and progress publication.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable
from typing import Any, Callable, Optional

from ...adapters.webdav import WebDavClientFactory, normalize_remote_path
from ...shared import get_logger, log_structured, timer
from .cache import ScanCache
from .models import CacheEntry, ScanOutcome, ScanProgress, ScanResult, ScanSettings, normalize_server_url
from .progress import ScanProgressBoard
from .scan_log import ScanLog
from .tasks import ScanTaskRegistry
from .walker import DirectoryLister, DirectoryWalker, WalkOptions

logger = get_logger(__name__)

WalkerFactory = Callable[[DirectoryLister], DirectoryWalker]


def format_batch_line(batch_number: int, progress: ScanProgress) -> str:
    return (
        f"batch {batch_number} done: {progress.scanned_directories}/{progress.total_directories} directories, "
        f"{progress.found_files} files ({progress.percentage}%)"
    )


def _unique_paths(paths: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for p in paths:
        norm = normalize_remote_path(p)
        if norm not in seen:
            seen.add(norm)
            out.append(norm)
    return out


class ScanOrchestrator:
    """
    Entry point for every scan. Owns no global state: all collaborators are
    passed in, so tests can build an isolated instance per case.
    """

    def __init__(
        self,
        cache: ScanCache,
        scan_log: ScanLog,
        tasks: ScanTaskRegistry,
        progress: ScanProgressBoard,
        client_factory: WebDavClientFactory,
        *,
        walker_factory: WalkerFactory = DirectoryWalker,
    ) -> None:
        self._cache = cache
        self._scan_log = scan_log
        self._tasks = tasks
        self._progress = progress
        self._client_factory = client_factory
        self._walker_factory = walker_factory
        self._background: dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Single path
    # ------------------------------------------------------------------

    async def run_scan(
        self,
        server_url: str,
        username: str,
        password: str,
        path: str,
        settings: Optional[ScanSettings] = None,
        *,
        force_rescan: bool = False,
    ) -> ScanOutcome:
        """
        Return the cached result for `path`, join a running scan of it, or
        scan it now.

        Raises whatever the walk or the cache raised; the failure is logged
        and the task marked failed first.
        """
        settings = settings or ScanSettings()
        url = normalize_server_url(server_url)
        root = normalize_remote_path(path)

        if not force_rescan:
            entry = await self._cache.get(url, username, root)
            if entry is not None:
                logger.debug("Cache hit for %s %s (%s files)", url, root, entry.result.total_files)
                return ScanOutcome(status="cached", result=entry.result, last_scan=entry.last_scan)

        task_id, started = self._tasks.try_start_task(url, username, [root])
        if not started:
            running = self._progress.find_by_task(task_id)
            return ScanOutcome(
                status="joined",
                task_id=task_id,
                progress_id=running[-1].progress_id if running else None,
            )

        progress_id = self._progress.create(task_id, url, username, root)
        try:
            entry = await self._scan_path(
                url, username, password, root, settings,
                force_rescan=force_rescan, progress_id=progress_id,
            )
        except asyncio.CancelledError:
            self._tasks.fail_task(task_id, "Scan cancelled")
            raise
        except Exception as exc:
            self._tasks.fail_task(task_id, str(exc) or type(exc).__name__)
            raise
        self._tasks.complete_task(task_id)
        return ScanOutcome(
            status="completed",
            result=entry.result,
            task_id=task_id,
            progress_id=progress_id,
            last_scan=entry.last_scan,
        )

    async def _scan_path(
        self,
        server_url: str,
        username: str,
        password: str,
        path: str,
        settings: ScanSettings,
        *,
        force_rescan: bool,
        progress_id: str,
        scan_type: str = "recursive",
    ) -> CacheEntry:
        """Walk one path under an already started task and persist the result."""
        started = time.perf_counter()
        batch_log: list[str] = []

        def elapsed_ms() -> int:
            return int((time.perf_counter() - started) * 1000)

        log_structured(logger, logging.INFO, "scan started", server_url=server_url, path=path, force=force_rescan)
        try:
            if force_rescan:
                await self._cache.delete(server_url, username, path)
            await self._scan_log.append(server_url, username, path, scan_type=scan_type, status="started")

            walker = self._walker_factory(self._client_factory.get(server_url, username, password))
            result: Optional[ScanResult] = None
            async for event in walker.iter_scan(path, WalkOptions.from_settings(settings)):
                if isinstance(event, ScanResult):
                    result = event
                    continue
                batch_log.append(format_batch_line(len(batch_log) + 1, event))
                self._progress.publish(progress_id, event)
            if result is None:
                raise RuntimeError(f"Walk of {path} ended without a result")

            with timer("scan cache save", logger):
                entry = await self._cache.save(server_url, username, path, result, settings.to_dict())
        except asyncio.CancelledError:
            await self._log_failure(server_url, username, path, scan_type, "Scan cancelled", elapsed_ms(), batch_log)
            self._progress.finish(progress_id, "failed", "Scan cancelled")
            raise
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            await self._log_failure(server_url, username, path, scan_type, message, elapsed_ms(), batch_log)
            self._progress.finish(progress_id, "failed", message)
            log_structured(logger, logging.ERROR, "scan failed", server_url=server_url, path=path, error=message)
            raise

        duration = elapsed_ms()
        summary = (
            f"scan complete: {result.total_files} media files "
            f"(images: {result.image_count}, videos: {result.video_count}) in {duration}ms"
        )
        if result.truncated:
            summary += f", truncated by {result.truncated_by}"
        if result.failed_directories:
            summary += f", {result.failed_directories} directories failed"
        await self._scan_log.append(
            server_url,
            username,
            path,
            scan_type=scan_type,
            status="completed",
            total_files=result.total_files,
            image_count=result.image_count,
            video_count=result.video_count,
            duration_ms=duration,
            log_details="\n".join([*batch_log, summary]),
        )
        self._progress.finish(progress_id, "completed")
        context = dict(result.summary(), server_url=server_url, path=path, duration_ms=duration)
        log_structured(logger, logging.INFO, "scan completed", **context)
        return entry

    async def _log_failure(
        self,
        server_url: str,
        username: str,
        path: str,
        scan_type: str,
        message: str,
        duration_ms: int,
        batch_log: list[str],
    ) -> None:
        await self._scan_log.append(
            server_url,
            username,
            path,
            scan_type=scan_type,
            status="failed",
            duration_ms=duration_ms,
            error_message=message,
            log_details="\n".join([*batch_log, f"scan failed: {message}"]),
        )

    async def get_scan_state(self, server_url: str, username: str, path: str) -> dict[str, Any]:
        """Read-only view of cache and task state for one path; never starts a scan."""
        url = normalize_server_url(server_url)
        root = normalize_remote_path(path)
        entry = await self._cache.get(url, username, root)
        running = self._tasks.get_running_task(url, username, [root])
        return {
            "path": root,
            "cached": entry is not None,
            "cache": entry.summary() if entry is not None else None,
            "result": entry.result.summary() if entry is not None else None,
            "task": running.to_dict() if running is not None else None,
        }

    # ------------------------------------------------------------------
    # Several paths
    # ------------------------------------------------------------------

    async def run_multi_scan(
        self,
        server_url: str,
        username: str,
        password: str,
        paths: Iterable[str],
        settings: Optional[ScanSettings] = None,
        *,
        force_rescan: bool = False,
    ) -> dict[str, Any]:
        """
        Scan paths one after another. The first failure propagates and the
        remaining paths are not scanned.
        """
        per_path: list[dict[str, Any]] = []
        totals = {"total_files": 0, "image_count": 0, "video_count": 0}
        started = time.perf_counter()
        for path in _unique_paths(paths):
            outcome = await self.run_scan(
                server_url, username, password, path, settings, force_rescan=force_rescan
            )
            per_path.append(dict(outcome.to_dict(), path=path))
            if outcome.result is not None:
                totals["total_files"] += outcome.result.total_files
                totals["image_count"] += outcome.result.image_count
                totals["video_count"] += outcome.result.video_count
        return {
            **totals,
            "duration_ms": int((time.perf_counter() - started) * 1000),
            "paths": per_path,
        }

    async def start_background_scan(
        self,
        server_url: str,
        username: str,
        password: str,
        paths: Iterable[str],
        settings: Optional[ScanSettings] = None,
        *,
        force_rescan: bool = False,
    ) -> dict[str, Any]:
        """
        Start scanning every uncached path not already being scanned, without
        waiting. Returns the task id and which paths were skipped.
        """
        settings = settings or ScanSettings()
        url = normalize_server_url(server_url)
        requested = _unique_paths(paths)

        if force_rescan:
            uncached = list(requested)
        else:
            uncached = [p for p in requested if await self._cache.get(url, username, p) is None]
        to_scan = self._tasks.get_paths_to_scan(url, username, uncached)
        response: dict[str, Any] = {
            "task_id": None,
            "paths": to_scan,
            "skipped_cached": [p for p in requested if p not in uncached],
            "skipped_running": [p for p in uncached if p not in to_scan],
        }
        if not to_scan:
            response["status"] = "nothing_to_scan"
            return response

        task_id, started = self._tasks.try_start_task(url, username, to_scan)
        response["task_id"] = task_id
        if not started:
            response["status"] = "joined"
            return response

        bg = asyncio.get_running_loop().create_task(
            self._run_background(task_id, url, username, password, to_scan, settings, force_rescan)
        )
        self._background[task_id] = bg
        bg.add_done_callback(lambda _t, tid=task_id: self._background.pop(tid, None))
        response["status"] = "started"
        return response

    async def _run_background(
        self,
        task_id: str,
        server_url: str,
        username: str,
        password: str,
        paths: list[str],
        settings: ScanSettings,
        force_rescan: bool,
    ) -> dict[str, int]:
        jobs = []
        for path in paths:
            progress_id = self._progress.create(task_id, server_url, username, path)
            jobs.append(
                self._scan_path(
                    server_url, username, password, path, settings,
                    force_rescan=force_rescan, progress_id=progress_id, scan_type="background",
                )
            )
        try:
            results = await asyncio.gather(*jobs, return_exceptions=True)
        except asyncio.CancelledError:
            self._tasks.fail_task(task_id, "Background scan cancelled")
            raise

        failed = sum(1 for r in results if isinstance(r, BaseException))
        tally = {"succeeded": len(results) - failed, "failed": failed}
        if failed:
            self._tasks.fail_task(task_id, f"{failed} path(s) failed")
        else:
            self._tasks.complete_task(task_id)
        log_structured(logger, logging.INFO, "background scan finished", task_id=task_id, **tally)
        return tally

    async def get_background_status(self, server_url: str, username: str, paths: Iterable[str]) -> list[dict[str, Any]]:
        url = normalize_server_url(server_url)
        out: list[dict[str, Any]] = []
        for path in _unique_paths(paths):
            entry = await self._cache.get(url, username, path)
            out.append(
                {
                    "path": path,
                    "scanned": entry is not None,
                    "scanning": self._tasks.is_path_being_scanned(url, username, path),
                    "file_count": entry.result.total_files if entry else 0,
                    "image_count": entry.result.image_count if entry else 0,
                    "video_count": entry.result.video_count if entry else 0,
                    "last_scan": entry.summary()["lastScan"] if entry else None,
                }
            )
        return out

    async def wait_background(self, task_id: Optional[str] = None) -> None:
        """Wait for one (or every) background scan to finish."""
        if task_id is not None:
            pending = [t for tid, t in self._background.items() if tid == task_id]
        else:
            pending = list(self._background.values())
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel background scans still in flight."""
        pending = list(self._background.values())
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._background.clear()
