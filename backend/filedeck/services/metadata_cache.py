"""Directory-indexed metadata cache in the key-value store.

Key schema::

    fs:dir:<root-relative-path>  ->  {"generation", "entries", "lastScannedAt"}
    fs:gen                       ->  monotonically increasing counter

The cache is best-effort: a listing may lag reality by up to ``ttl``. When
the store is unreachable every read falls through to the filesystem.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

from filedeck.errors import CacheUnavailable, StorageIOError
from filedeck.services.entries import CacheEntry, DirectoryListing, FileEntry, utcnow
from filedeck.services.event_logger import LogCategory, LogLevel
from filedeck.utils.paths import PathResolver

if TYPE_CHECKING:
    from filedeck.services.event_logger import EventLogger
    from filedeck.services.identity import Identity
    from filedeck.services.kv_store import KeyValueStore
    from filedeck.services.local_fs import LocalFileSystem

logger = logging.getLogger(__name__)

T = TypeVar("T")

DIR_PREFIX = "fs:dir:"
GEN_KEY = "fs:gen"
DEFAULT_TTL = 60.0
DEFAULT_STALE_GRACE = 300.0


def dir_key(rel: str) -> str:
    return f"{DIR_PREFIX}{rel}"


class SingleFlight:
    """At most one in-flight computation per key; late arrivals await it."""

    def __init__(self) -> None:
        self._calls: dict[str, asyncio.Task] = {}

    async def do(self, key: str, func: Callable[[], Awaitable[T]]) -> T:
        task = self._calls.get(key)
        if task is None:
            task = asyncio.ensure_future(func())
            self._calls[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        # A cancelled waiter must not cancel the shared computation
        return await asyncio.shield(task)

    def in_flight(self, key: str) -> bool:
        return key in self._calls

    def detach(self, key: str) -> None:
        """Let the next caller for ``key`` start a new computation.

        Callers already waiting on the current one still receive its result.
        """
        self._calls.pop(key, None)

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._calls.get(key) is task:
            del self._calls[key]
        if not task.cancelled():
            task.exception()  # Mark retrieved; waiters re-raise it themselves


class MetadataCache:
    """Cheap repeat listings, populated from the local filesystem on miss."""

    def __init__(
        self,
        store: KeyValueStore,
        fs: LocalFileSystem,
        events: EventLogger | None = None,
        ttl: float = DEFAULT_TTL,
        stale_grace: float = DEFAULT_STALE_GRACE,
    ):
        self._store = store
        self._fs = fs
        self._events = events
        self.ttl = ttl
        self.stale_grace = stale_grace
        self._flight = SingleFlight()
        # rel -> [running scans, invalidation version]; only while scans run
        self._scans: dict[str, list[int]] = {}

    @property
    def fs(self) -> LocalFileSystem:
        return self._fs

    async def get_listing(
        self,
        path: str,
        identity: Identity | None = None,
        timeout: float | None = None,
    ) -> DirectoryListing:
        """Cached listing if fresh, else a synchronous single-flight scan.

        On deadline a stale cached listing is returned when one exists.
        """
        rel = self._fs.resolver.relative(path)
        cached = await self.peek(rel, identity)
        if cached is not None and cached.is_fresh(self.ttl):
            return DirectoryListing.from_cache(rel, cached)

        logger.debug("Cache miss for '%s', scanning", rel)
        try:
            return await self._flight.do(rel, lambda: self._load_or_populate(rel, identity, timeout))
        except StorageIOError as e:
            if not e.is_deadline or cached is None:
                raise
            self._event(
                LogLevel.WARN, f"Serving stale listing for '{rel}' after deadline",
                {"filePath": rel, "generation": cached.generation}, identity,
            )
            return DirectoryListing.from_cache(rel, cached, stale=True)

    async def populate(
        self,
        path: str,
        identity: Identity | None = None,
        timeout: float | None = None,
    ) -> DirectoryListing:
        """Rescan a directory and store the result with a fresh generation."""
        rel = self._fs.resolver.relative(path)
        return await self._flight.do(rel, lambda: self._populate(rel, identity, timeout))

    async def _load_or_populate(
        self, rel: str, identity: Identity | None, timeout: float | None
    ) -> DirectoryListing:
        # A flight that finished between our miss and now already stored the entry
        cached = await self.peek(rel, identity)
        if cached is not None and cached.is_fresh(self.ttl):
            return DirectoryListing.from_cache(rel, cached)
        return await self._populate(rel, identity, timeout)

    async def _populate(
        self, rel: str, identity: Identity | None, timeout: float | None
    ) -> DirectoryListing:
        scan = self._scans.setdefault(rel, [0, 0])
        scan[0] += 1
        version = scan[1]
        try:
            entries = await self._fs.list(rel, timeout=timeout)
            scanned_at = utcnow()
            generation = 0
            try:
                generation = await self._store.incr(GEN_KEY)
                # No await between this check and the write queueing on the store lock
                if scan[1] != version:
                    logger.debug("Discarding scan of '%s' invalidated while in flight", rel)
                    return DirectoryListing(
                        path=rel, entries=entries, generation=generation,
                        scanned_at=scanned_at, stale=True,
                    )
                entry = CacheEntry(generation=generation, entries=entries, last_scanned_at=scanned_at)
                await self._store.set(dir_key(rel), entry.to_dict(), ttl=self.ttl + self.stale_grace)
            except CacheUnavailable as e:
                self._unavailable(e, identity)
            return DirectoryListing(path=rel, entries=entries, generation=generation, scanned_at=scanned_at)
        finally:
            scan[0] -= 1
            if scan[0] == 0 and self._scans.get(rel) is scan:
                del self._scans[rel]

    def _supersede(self, rel: str, tree: bool = False) -> None:
        """Detach running scans of ``rel`` (or its subtree) so they are not stored."""
        for key, scan in self._scans.items():
            if key == rel or (tree and PathResolver.is_within(key, rel)):
                scan[1] += 1
                self._flight.detach(key)

    async def peek(self, path: str, identity: Identity | None = None) -> CacheEntry | None:
        """Raw cached entry, fresh or not. None on miss or store failure."""
        rel = self._fs.resolver.relative(path)
        try:
            data = await self._store.get(dir_key(rel))
        except CacheUnavailable as e:
            self._unavailable(e, identity)
            return None
        if data is None:
            return None
        try:
            return CacheEntry.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding malformed cache entry for '%s': %s", rel, e)
            return None

    async def invalidate(self, path: str, identity: Identity | None = None) -> int | None:
        """Drop one directory's entry and bump the generation counter."""
        rel = self._fs.resolver.relative(path)
        self._supersede(rel)
        try:
            await self._store.delete(dir_key(rel))
            return await self._store.incr(GEN_KEY)
        except CacheUnavailable as e:
            self._unavailable(e, identity)
            return None

    async def invalidate_tree(self, path: str, identity: Identity | None = None) -> int:
        """Drop a directory's entry and every entry beneath it. Returns keys removed."""
        rel = self._fs.resolver.relative(path)
        prefix = dir_key(f"{rel}/") if rel else DIR_PREFIX
        self._supersede(rel, tree=True)
        try:
            keys = set(await self._store.keys(prefix))
            keys.add(dir_key(rel))
            removed = await self._store.delete(*sorted(keys))
            await self._store.incr(GEN_KEY)
        except CacheUnavailable as e:
            self._unavailable(e, identity)
            return 0
        return removed

    async def generation(self) -> int:
        value = await self._store.get(GEN_KEY)
        return int(value or 0)

    async def search(
        self,
        query: str,
        limit: int = 1000,
        base: str = "",
        identity: Identity | None = None,
    ) -> list[FileEntry]:
        """Case-insensitive name-substring match over cached directories under ``base``."""
        needle = query.strip().casefold()
        if not needle or limit <= 0:
            return []
        rel = self._fs.resolver.relative(base)
        prefix = dir_key(f"{rel}/") if rel else DIR_PREFIX

        try:
            keys = await self._store.keys(prefix)
            if rel:
                keys.insert(0, dir_key(rel))
            matches: list[FileEntry] = []
            now = utcnow()
            for key in keys:
                data = await self._store.get(key)
                if data is None:
                    continue
                entry = CacheEntry.from_dict(data)
                if not entry.is_fresh(self.ttl, now):
                    continue
                matches.extend(e for e in entry.entries if needle in e.name.casefold())
        except CacheUnavailable as e:
            self._unavailable(e, identity)
            return []

        matches.sort(key=lambda e: (not e.is_directory, e.name.casefold(), e.path))
        logger.debug("Search '%s' scanned %d directories, %d hits", query, len(keys), len(matches))
        return matches[:limit]

    async def stats(self) -> dict[str, Any]:
        keys = await self._store.keys(DIR_PREFIX)
        files = 0
        for key in keys:
            data = await self._store.get(key)
            if data is not None:
                files += len(data.get("entries", []))
        return {
            "directories": len(keys),
            "files": files,
            "generation": await self.generation(),
            "ttl_seconds": self.ttl,
        }

    def _unavailable(self, error: CacheUnavailable, identity: Identity | None) -> None:
        logger.warning("Metadata cache unavailable: %s", error)
        self._event(LogLevel.WARN, "Metadata cache unavailable, using filesystem", {"error": str(error)}, identity)

    def _event(
        self, level: LogLevel, message: str, details: dict[str, Any], identity: Identity | None
    ) -> None:
        if self._events is not None:
            self._events.log(level, LogCategory.SYSTEM, message, details, identity)
