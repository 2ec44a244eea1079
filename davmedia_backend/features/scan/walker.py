"""
Directory walker: bounded, batched traversal of a WebDAV tree.

Two phases:
1. estimation: count directories down to `max_depth` so progress can be reported
   as a percentage;
2. traversal: drain a FIFO work queue `batch_size` directories at a time, listing
   each batch concurrently and emitting one `ScanProgress` per batch.

Budgets (depth, file count, wall time) end the walk early with a partial,
non-error result flagged `truncated`.
"""
from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Optional, Protocol, Union

from ...adapters.webdav import WebDavItem, normalize_remote_path
from ...shared import WebDavAuthError, classify_file, get_logger
from .models import MediaFileEntry, ScanProgress, ScanResult, ScanSettings, TruncationReason

logger = get_logger(__name__)

ScanEvent = Union[ScanProgress, ScanResult]
ProgressCallback = Callable[[ScanProgress], Union[None, Awaitable[None]]]


class DirectoryLister(Protocol):
    async def list_directory(self, path: str) -> list[WebDavItem]: ...


@dataclass(frozen=True)
class WalkOptions:
    max_depth: int
    max_files: int
    timeout_ms: int
    batch_size: int

    @classmethod
    def from_settings(cls, settings: ScanSettings) -> "WalkOptions":
        return cls(
            max_depth=max(0, int(settings.max_depth)),
            max_files=max(1, int(settings.max_files)),
            timeout_ms=max(1, int(settings.timeout_ms)),
            batch_size=max(1, int(settings.batch_size)),
        )


class DirectoryWalker:
    """
    Walks one WebDAV subtree. A walker instance holds no state between scans.
    """

    def __init__(self, client: DirectoryLister, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._client = client
        self._clock = clock

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def _list_safely(self, path: str, *, is_root: bool = False) -> Optional[list[WebDavItem]]:
        """
        List one directory. Returns None when the listing failed.

        Rejected credentials on the root listing are re-raised: nothing under
        the root can be listed either.
        """
        try:
            return list(await self._client.list_directory(path))
        except WebDavAuthError as exc:
            if is_root and exc.status == 401:
                raise
            logger.warning("Access denied listing %s: %s", path, exc)
            return None
        except Exception as exc:
            if is_root:
                logger.warning("Root directory %s could not be listed: %s", path, exc)
            else:
                logger.debug("Listing failed for %s, treating as empty: %s", path, exc)
            return None

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)

    # ------------------------------------------------------------------
    # Phase 1: estimation
    # ------------------------------------------------------------------

    async def estimate_directories(
        self,
        root_path: str,
        options: WalkOptions,
        *,
        started: Optional[float] = None,
    ) -> int:
        """
        Count the directories the traversal will visit (root included).

        Sub-listing failures count as zero subdirectories. Stops counting once
        the time budget is spent; the traversal then reports against a partial total.
        """
        started = self._clock() if started is None else started
        root = normalize_remote_path(root_path)
        total = 1
        queue: deque[tuple[str, int]] = deque()
        if options.max_depth > 0:
            queue.append((root, 0))
        while queue:
            if self._elapsed_ms(started) > options.timeout_ms:
                logger.debug("Directory estimation for %s stopped by time budget at %s", root, total)
                break
            batch = [queue.popleft() for _ in range(min(options.batch_size, len(queue)))]
            listings = await asyncio.gather(*(self._list_safely(path) for path, _ in batch))
            for (_, depth), items in zip(batch, listings):
                for item in items or ():
                    if not item.is_dir:
                        continue
                    total += 1
                    if depth + 1 < options.max_depth:
                        queue.append((item.path, depth + 1))
        return total

    # ------------------------------------------------------------------
    # Phase 2: traversal
    # ------------------------------------------------------------------

    async def iter_scan(self, root_path: str, options: WalkOptions) -> AsyncIterator[ScanEvent]:
        """
        Walk `root_path`, yielding a `ScanProgress` after every batch and the
        final `ScanResult` last. The sequence is finite and not restartable.
        """
        started = self._clock()
        root = normalize_remote_path(root_path)
        total_directories = await self.estimate_directories(root, options, started=started)

        queue: deque[tuple[str, int]] = deque([(root, 0)])
        files: list[MediaFileEntry] = []
        completed: list[str] = []
        scanned = 0
        failed = 0
        truncated_by: Optional[TruncationReason] = None
        depth_limited = False

        while queue:
            if self._elapsed_ms(started) > options.timeout_ms:
                truncated_by = "timeout"
                logger.info("Scan of %s stopped by time budget (%sms)", root, options.timeout_ms)
                break

            batch = [queue.popleft() for _ in range(min(options.batch_size, len(queue)))]
            listings = await asyncio.gather(
                *(self._list_safely(path, is_root=(depth == 0)) for path, depth in batch)
            )

            for index, ((path, depth), items) in enumerate(zip(batch, listings)):
                if items is None:
                    failed += 1
                    items = []
                completed.append(path)
                for pos, item in enumerate(items):
                    if item.is_dir:
                        if depth + 1 <= options.max_depth:
                            queue.append((item.path, depth + 1))
                        else:
                            depth_limited = True
                        continue
                    kind = classify_file(item.name)
                    if kind == "none":
                        continue
                    files.append(
                        MediaFileEntry(
                            full_path=item.path,
                            base_name=item.name,
                            size_bytes=int(item.size or 0),
                            kind=kind,
                            last_modified=item.last_modified,
                        )
                    )
                    if len(files) >= options.max_files:
                        if self._has_more_work(items[pos + 1:], listings[index + 1:], queue):
                            truncated_by = "max_files"
                        break
                if len(files) >= options.max_files:
                    break

            scanned += len(batch)
            yield ScanProgress(
                current_path=batch[-1][0],
                scanned_directories=scanned,
                total_directories=max(total_directories, scanned),
                found_files=len(files),
                percentage=ScanProgress.compute_percentage(scanned, max(total_directories, scanned)),
                pending_directories=tuple(path for path, _ in queue),
                completed_directories=tuple(completed),
            )
            if len(files) >= options.max_files:
                if truncated_by is None and queue:
                    truncated_by = "max_files"
                break

        if truncated_by is None and depth_limited:
            truncated_by = "max_depth"

        result = ScanResult.from_files(
            root,
            files,
            scan_duration_ms=self._elapsed_ms(started),
            truncated_by=truncated_by,
            failed_directories=failed,
        )
        logger.debug(
            "Walk of %s finished: %s files (%s images, %s videos), %s/%s dirs, failed=%s, truncated_by=%s",
            root,
            result.total_files,
            result.image_count,
            result.video_count,
            scanned,
            total_directories,
            failed,
            truncated_by,
        )
        yield result

    @staticmethod
    def _has_more_work(
        rest_items: list[WebDavItem],
        rest_listings: list[Optional[list[WebDavItem]]],
        queue: deque,
    ) -> bool:
        if queue:
            return True
        if any(item.is_dir or classify_file(item.name) != "none" for item in rest_items):
            return True
        for items in rest_listings:
            if any(item.is_dir or classify_file(item.name) != "none" for item in items or ()):
                return True
        return False

    async def scan(
        self,
        root_path: str,
        options: WalkOptions,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ScanResult:
        """Consume `iter_scan`, forwarding each progress snapshot to `on_progress`."""
        result: Optional[ScanResult] = None
        async for event in self.iter_scan(root_path, options):
            if isinstance(event, ScanResult):
                result = event
            elif on_progress is not None:
                maybe = on_progress(event)
                if asyncio.iscoroutine(maybe):
                    await maybe
        if result is None:
            raise RuntimeError(f"Walk of {root_path} ended without a result")
        return result


async def scan_directory(
    client: DirectoryLister,
    root_path: str,
    settings: ScanSettings,
    on_progress: Optional[ProgressCallback] = None,
) -> ScanResult:
    """Convenience wrapper: one-shot walk with `settings` as budgets."""
    walker = DirectoryWalker(client)
    return await walker.scan(root_path, WalkOptions.from_settings(settings), on_progress)
