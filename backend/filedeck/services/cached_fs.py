"""Cache-fronted filesystem: the adapter the REST layer talks to.

Reads go through the metadata cache; mutations go to the local adapter and
then invalidate the parent of every touched path (and the path's own
subtree when it is a directory). Every operation records a file event.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterable, AsyncIterator, Iterable

from filedeck.errors import FileServiceError
from filedeck.services.entries import DirectoryListing, FileEntry, ProgressCallback
from filedeck.services.local_fs import DEFAULT_CHUNK_SIZE
from filedeck.utils.paths import PathResolver

if TYPE_CHECKING:
    from filedeck.services.event_logger import EventLogger
    from filedeck.services.identity import Identity
    from filedeck.services.local_fs import LocalFileSystem
    from filedeck.services.metadata_cache import MetadataCache
    from filedeck.services.transfers import TransferTracker

logger = logging.getLogger(__name__)

PASTE_OPERATIONS = ("copy", "move")


class CachedFileSystem:
    """Same capability set as ``LocalFileSystem``, composed over it and the cache."""

    def __init__(
        self,
        local: LocalFileSystem,
        cache: MetadataCache,
        events: EventLogger,
        transfers: TransferTracker | None = None,
    ):
        self._local = local
        self._cache = cache
        self._events = events
        self._transfers = transfers

    @property
    def resolver(self) -> PathResolver:
        return self._local.resolver

    @property
    def cache(self) -> MetadataCache:
        return self._cache

    # --- reads ---

    async def listing(
        self, path: str, identity: Identity | None = None, timeout: float | None = None
    ) -> DirectoryListing:
        return await self._cache.get_listing(path, identity=identity, timeout=timeout)

    async def list(
        self, path: str, identity: Identity | None = None, timeout: float | None = None
    ) -> list[FileEntry]:
        listing = await self.listing(path, identity=identity, timeout=timeout)
        return listing.entries

    async def stat(
        self, path: str, identity: Identity | None = None, timeout: float | None = None
    ) -> FileEntry:
        return await self._local.stat(path, timeout=timeout)

    async def read_stream(
        self,
        path: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        identity: Identity | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[bytes]:
        async for chunk in self._local.read_stream(path, chunk_size=chunk_size, timeout=timeout):
            yield chunk

    async def search(
        self,
        query: str,
        limit: int = 1000,
        base: str = "",
        identity: Identity | None = None,
    ) -> list[FileEntry]:
        return await self._cache.search(query, limit=limit, base=base, identity=identity)

    # --- mutations ---

    async def write_stream(
        self,
        path: str,
        chunks: AsyncIterable[bytes],
        on_progress: ProgressCallback | None = None,
        identity: Identity | None = None,
        timeout: float | None = None,
    ) -> int:
        rel = self.resolver.relative(path)
        async with self._operation("write", rel, identity) as op:
            written = await self._local.write_stream(rel, chunks, on_progress=on_progress, timeout=timeout)
            op["fileSize"] = written
        await self._invalidate_parents(identity, rel)
        return written

    async def mkdir(
        self, path: str, identity: Identity | None = None, timeout: float | None = None
    ) -> FileEntry:
        rel = self.resolver.relative(path)
        async with self._operation("mkdir", rel, identity):
            # Missing parents are created too; the topmost one shows up in a listing
            created = await self._topmost_missing(rel, timeout)
            entry = await self._local.mkdir(rel, timeout=timeout)
        await self._invalidate_parents(identity, rel, created)
        return entry

    async def rename(
        self, old: str, new: str, identity: Identity | None = None, timeout: float | None = None
    ) -> FileEntry:
        src, dst = self.resolver.relative(old), self.resolver.relative(new)
        async with self._operation("rename", src, identity, targetPath=dst):
            entry = await self._local.rename(src, dst, timeout=timeout)
        await self._invalidate_parents(identity, src, dst)
        if entry.is_directory:
            await self._cache.invalidate_tree(src, identity)
        return entry

    async def remove(
        self,
        path: str,
        recursive: bool = False,
        identity: Identity | None = None,
        timeout: float | None = None,
    ) -> None:
        rel = self.resolver.relative(path)
        async with self._operation("delete", rel, identity, recursive=recursive):
            await self._local.remove(rel, recursive=recursive, timeout=timeout)
        await self._invalidate_parents(identity, rel)
        await self._cache.invalidate_tree(rel, identity)

    async def copy(
        self,
        src: str,
        dst: str,
        recursive: bool = False,
        identity: Identity | None = None,
        timeout: float | None = None,
    ) -> FileEntry:
        src_rel, dst_rel = self.resolver.relative(src), self.resolver.relative(dst)
        async with self._operation("copy", src_rel, identity, targetPath=dst_rel):
            entry = await self._local.copy(src_rel, dst_rel, recursive=recursive, timeout=timeout)
        await self._invalidate_parents(identity, dst_rel)
        return entry

    async def move(
        self, src: str, dst: str, identity: Identity | None = None, timeout: float | None = None
    ) -> FileEntry:
        src_rel, dst_rel = self.resolver.relative(src), self.resolver.relative(dst)
        async with self._operation("move", src_rel, identity, targetPath=dst_rel):
            entry = await self._local.move(src_rel, dst_rel, timeout=timeout)
        await self._invalidate_parents(identity, src_rel, dst_rel)
        if entry.is_directory:
            await self._cache.invalidate_tree(src_rel, identity)
        return entry

    async def paste(
        self,
        operation: str,
        sources: Iterable[str],
        target_dir: str,
        identity: Identity | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Copy or move each source into ``target_dir``. Per-item failures are collected."""
        if operation not in PASTE_OPERATIONS:
            raise ValueError(f"Unknown paste operation: {operation}")
        target = self.resolver.relative(target_dir)
        processed: list[str] = []
        errors: list[dict[str, Any]] = []
        for source in sources:
            src = self.resolver.relative(source)
            dst = PathResolver.join(target, src.rsplit("/", 1)[-1])
            try:
                if operation == "copy":
                    await self.copy(src, dst, recursive=True, identity=identity, timeout=timeout)
                else:
                    await self.move(src, dst, identity=identity, timeout=timeout)
                processed.append(dst)
            except FileServiceError as e:
                errors.append({"source": src, **e.to_dict()})
        return {"operation": operation, "processed": processed, "errors": errors}

    async def upload(
        self,
        path: str,
        chunks: AsyncIterable[bytes],
        total_size: int = 0,
        file_name: str | None = None,
        batch_id: str | None = None,
        identity: Identity | None = None,
        timeout: float | None = None,
    ) -> str:
        """Stream an upload to ``path`` while reporting progress to the tracker.

        Returns the transfer id. Cancellation leaves the transfer as it was.
        """
        if self._transfers is None:
            raise RuntimeError("Uploads require a transfer tracker")
        rel = self.resolver.relative(path)
        transfer_id = self._transfers.start(
            source=file_name, destination=rel, total_size=total_size,
            file_name=file_name, batch_id=batch_id,
        )

        def _progress(written: int) -> None:
            if total_size > 0:
                # Completion is reported explicitly once the file is in place
                written = min(written, total_size - 1)
            self._transfers.update_progress(transfer_id, written)

        try:
            written = await self.write_stream(rel, chunks, on_progress=_progress, identity=identity, timeout=timeout)
        except Exception as e:
            self._transfers.fail(transfer_id, e.message if isinstance(e, FileServiceError) else str(e))
            raise
        self._transfers.complete(transfer_id, {"result": "success", "bytesWritten": written})
        return transfer_id

    # --- helpers ---

    async def _topmost_missing(self, rel: str, timeout: float | None) -> str:
        top, parent = rel, PathResolver.parent_of(rel)
        while parent and not await self._local.exists(parent, timeout=timeout):
            top, parent = parent, PathResolver.parent_of(parent)
        return top

    async def _invalidate_parents(self, identity: Identity | None, *paths: str) -> None:
        parents = {PathResolver.parent_of(p) for p in paths}
        for parent in sorted(parents):
            await self._cache.invalidate(parent, identity)

    @asynccontextmanager
    async def _operation(
        self, operation: str, rel: str, identity: Identity | None, **extra: Any
    ) -> AsyncIterator[dict[str, Any]]:
        """Record a file event with timing and outcome around a mutation."""
        started = time.monotonic()
        details: dict[str, Any] = dict(extra)
        try:
            yield details
        except Exception as e:
            error = e.message if isinstance(e, FileServiceError) else str(e)
            self._record(operation, rel, identity, details, started, error)
            raise
        self._record(operation, rel, identity, details, started, None)

    def _record(
        self,
        operation: str,
        rel: str,
        identity: Identity | None,
        details: dict[str, Any],
        started: float,
        error: str | None,
    ) -> None:
        file_size = details.pop("fileSize", None)
        self._events.log_file_operation(
            operation,
            rel,
            success=error is None,
            identity=identity,
            file_size=file_size,
            error=error,
            duration=round((time.monotonic() - started) * 1000),
            **details,
        )
