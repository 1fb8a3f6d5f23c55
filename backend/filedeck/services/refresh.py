"""Cache refresh strategies (fast / smart / full) with live scan progress.

Smart refresh relies on a directory's mtime changing when a direct child
is added, removed or renamed. That holds on common POSIX filesystems
(ext4, xfs, btrfs, APFS) but not on every network or FAT-style mount; on
those, use ``full``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable

from filedeck.errors import FileServiceError, NotFound, ScanBusy, StorageIOError
from filedeck.services.entries import utcnow
from filedeck.services.event_logger import LogCategory, LogLevel
from filedeck.utils.paths import PathResolver

if TYPE_CHECKING:
    from filedeck.services.entries import CacheEntry
    from filedeck.services.event_logger import EventLogger
    from filedeck.services.identity import Identity
    from filedeck.services.metadata_cache import MetadataCache

logger = logging.getLogger(__name__)


class RefreshStrategy(str, Enum):
    FAST = "fast"
    SMART = "smart"
    FULL = "full"


class ScanStage(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    SCANNING = "scanning"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class ScanProgress:
    is_scanning: bool = False
    strategy: RefreshStrategy | None = None
    target: str = ""
    total_items: int = 0
    directories: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None
    stage: ScanStage = ScanStage.IDLE
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["strategy"] = self.strategy.value if self.strategy else None
        data["stage"] = self.stage.value
        data["started_at"] = self.started_at.isoformat() if self.started_at else None
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data


class RefreshController:
    """Runs at most one refresh per process and exposes its progress."""

    def __init__(self, cache: MetadataCache, events: EventLogger | None = None):
        self._cache = cache
        self._events = events
        self._progress = ScanProgress()
        self._task: asyncio.Task | None = None

    def progress(self) -> ScanProgress:
        """Snapshot of the current (or last) refresh."""
        return replace(self._progress)

    @property
    def is_running(self) -> bool:
        return self._progress.is_scanning

    async def refresh(
        self,
        strategy: RefreshStrategy | str,
        target: str = "",
        identity: Identity | None = None,
        strict: bool = False,
        timeout: float | None = None,
    ) -> ScanProgress:
        """Run a refresh to completion and return its final progress.

        If a refresh is already running, returns its snapshot immediately
        (or raises ``ScanBusy`` in strict mode for a different strategy).
        """
        strategy = RefreshStrategy(strategy)
        busy = self._check_busy(strategy, strict)
        if busy is not None:
            return busy
        rel = self._begin(strategy, target)
        await self._run(strategy, rel, identity, timeout)
        return self.progress()

    def start(
        self,
        strategy: RefreshStrategy | str,
        target: str = "",
        identity: Identity | None = None,
        strict: bool = False,
        timeout: float | None = None,
    ) -> ScanProgress:
        """Launch a refresh in the background and return the live snapshot."""
        strategy = RefreshStrategy(strategy)
        busy = self._check_busy(strategy, strict)
        if busy is not None:
            return busy
        rel = self._begin(strategy, target)
        self._task = asyncio.create_task(self._run_background(strategy, rel, identity, timeout))
        return self.progress()

    async def wait(self) -> ScanProgress:
        """Wait for a background refresh started with ``start`` to finish."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
        return self.progress()

    async def stop(self) -> None:
        """Cancel a background refresh started with ``start``."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        if self._progress.is_scanning:
            # Cancelled before the walk got to run
            self._progress.stage = ScanStage.ERROR
            self._progress.error = "cancelled"
            self._finish()

    # --- internals ---

    def _check_busy(self, strategy: RefreshStrategy, strict: bool) -> ScanProgress | None:
        if not self._progress.is_scanning:
            return None
        if strict and self._progress.strategy is not strategy:
            raise ScanBusy(
                f"A {self._progress.strategy.value} refresh is already running"
            )
        return self.progress()

    def _begin(self, strategy: RefreshStrategy, target: str) -> str:
        # Path errors surface before the in-flight flag is taken
        rel = self._cache.fs.resolver.relative(target)
        self._progress = ScanProgress(
            is_scanning=True,
            strategy=strategy,
            target=rel,
            started_at=utcnow(),
            stage=ScanStage.STARTING,
        )
        return rel

    async def _run_background(
        self, strategy: RefreshStrategy, rel: str, identity: Identity | None, timeout: float | None
    ) -> None:
        try:
            await self._run(strategy, rel, identity, timeout)
        except FileServiceError:
            pass  # Already recorded in progress and the event log

    async def _run(
        self, strategy: RefreshStrategy, rel: str, identity: Identity | None, timeout: float | None
    ) -> None:
        started = time.monotonic()
        deadline = started + timeout if timeout is not None else None
        self._event(LogLevel.INFO, f"Cache refresh started ({strategy.value})",
                    {"strategy": strategy.value, "filePath": rel}, identity)
        try:
            self._progress.stage = ScanStage.SCANNING
            if strategy is RefreshStrategy.FAST:
                await self._refresh_fast(rel, identity, deadline)
            elif strategy is RefreshStrategy.FULL:
                await self._refresh_full(rel, identity, deadline)
            else:
                await self._refresh_smart(rel, identity, deadline)
        except (FileServiceError, asyncio.CancelledError) as e:
            message = e.message if isinstance(e, FileServiceError) else "cancelled"
            self._progress.stage = ScanStage.ERROR
            self._progress.error = message
            self._finish()
            self._event(LogLevel.ERROR, f"Cache refresh failed ({strategy.value}): {message}",
                        {"strategy": strategy.value, "filePath": rel}, identity)
            raise

        self._progress.stage = ScanStage.COMPLETE
        self._finish()
        duration_ms = (time.monotonic() - started) * 1000
        self._event(LogLevel.INFO, f"Cache refresh complete ({strategy.value})",
                    {"strategy": strategy.value, "filePath": rel,
                     "totalItems": self._progress.total_items,
                     "directories": self._progress.directories}, identity)
        if self._events is not None:
            self._events.log_performance(f"cache refresh {strategy.value}", duration_ms,
                                         totalItems=self._progress.total_items)

    def _finish(self) -> None:
        self._progress.is_scanning = False
        self._progress.finished_at = utcnow()

    def _checkpoint(self, rel: str, deadline: float | None) -> None:
        """Directory boundary: abort the walk once the deadline has passed."""
        if deadline is not None and time.monotonic() >= deadline:
            raise StorageIOError("Refresh deadline exceeded", rel, cause="deadline")

    def _remaining(self, deadline: float | None) -> float | None:
        if deadline is None:
            return None
        return max(0.0, deadline - time.monotonic())

    async def _scan(
        self,
        rel: str,
        identity: Identity | None,
        deadline: float | None,
        previous: CacheEntry | None = None,
    ) -> list[str]:
        """Repopulate one directory; return its subdirectories.

        Subdirectories listed in ``previous`` but gone now lose their
        cached subtree.
        """
        self._checkpoint(rel, deadline)
        listing = await self._cache.populate(rel, identity=identity, timeout=self._remaining(deadline))
        self._progress.total_items += len(listing.entries)
        self._progress.directories += 1
        subdirs = [e.path for e in listing.entries if e.is_directory]
        if previous is not None:
            resolver = self._cache.fs.resolver
            vanished = {
                e.path for e in previous.entries
                if e.is_directory and resolver.within_depth(e.path)
            } - set(subdirs)
            for path in sorted(vanished):
                logger.debug("Dropping cached subtree of vanished directory '%s'", path)
                await self._cache.invalidate_tree(path, identity)
        return self._descendable(subdirs)

    def _descendable(self, paths: Iterable[str]) -> list[str]:
        resolver = self._cache.fs.resolver
        kept = []
        for path in paths:
            if resolver.within_depth(path):
                kept.append(path)
            else:
                logger.debug("Not descending into '%s': deeper than %d levels", path, resolver.max_depth)
        return kept

    async def _refresh_fast(self, rel: str, identity: Identity | None, deadline: float | None) -> None:
        previous = await self._cache.peek(rel, identity)
        await self._cache.invalidate(rel, identity)
        await self._scan(rel, identity, deadline, previous)

    async def _refresh_full(self, rel: str, identity: Identity | None, deadline: float | None) -> None:
        await self._cache.invalidate_tree(rel, identity)
        pending = deque([rel])
        while pending:
            pending.extend(await self._scan(pending.popleft(), identity, deadline))

    async def _refresh_smart(self, rel: str, identity: Identity | None, deadline: float | None) -> None:
        pending = deque([rel])
        while pending:
            current = pending.popleft()
            self._checkpoint(current, deadline)
            cached = await self._cache.peek(current, identity)
            try:
                info = await self._cache.fs.stat(current, timeout=self._remaining(deadline))
            except NotFound:
                if current == rel:
                    raise
                # Vanished since the parent was cached
                await self._cache.invalidate_tree(current, identity)
                await self._cache.invalidate(PathResolver.parent_of(current), identity)
                continue

            if cached is None or info.mtime > cached.last_scanned_at:
                pending.extend(await self._scan(current, identity, deadline, cached))
            else:
                self._progress.total_items += len(cached.entries)
                pending.extend(self._descendable(e.path for e in cached.entries if e.is_directory))

    def _event(
        self, level: LogLevel, message: str, details: dict[str, Any], identity: Identity | None
    ) -> None:
        if self._events is not None:
            self._events.log(level, LogCategory.SYSTEM, message, details, identity)
