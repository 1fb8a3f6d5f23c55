"""Direct OS filesystem adapter. Every path is resolved under the storage root."""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import shutil
import stat as stat_mod
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterable, AsyncIterator, Callable

from filedeck.errors import (
    AlreadyExists,
    FileServiceError,
    InvalidPath,
    IsADirectory,
    NotADirectory,
    NotFound,
    PermissionDenied,
    StorageIOError,
)
from filedeck.services.entries import FileEntry, ProgressCallback, infer_kind
from filedeck.utils.paths import PathResolver

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024  # 64 KB

_ERRNO_KINDS: dict[int, type[FileServiceError]] = {
    errno.ENOENT: NotFound,
    errno.EEXIST: AlreadyExists,
    errno.EACCES: PermissionDenied,
    errno.EPERM: PermissionDenied,
    errno.ENOTDIR: NotADirectory,
    errno.EISDIR: IsADirectory,
}


def translate_os_error(exc: OSError, path: str | None = None) -> FileServiceError:
    """Map an OSError onto the core's typed error kinds."""
    message = exc.strerror or str(exc)
    error_cls = _ERRNO_KINDS.get(exc.errno or -1)
    if error_cls is None:
        return StorageIOError(message, path)
    return error_cls(message, path)


def _entry_from_stat(name: str, rel: str, st: os.stat_result) -> FileEntry:
    is_dir = stat_mod.S_ISDIR(st.st_mode)
    return FileEntry(
        name=name,
        path=rel,
        is_directory=is_dir,
        size=0 if is_dir else st.st_size,
        mtime=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        kind=infer_kind(name, is_dir),
    )


def _remove_tree(target: Path) -> None:
    """Delete a directory tree bottom-up."""
    for dirpath, dirnames, filenames in os.walk(target, topdown=False):
        for name in filenames:
            os.unlink(os.path.join(dirpath, name))
        for name in dirnames:
            child = os.path.join(dirpath, name)
            if os.path.islink(child):
                os.unlink(child)
            else:
                os.rmdir(child)
    os.rmdir(target)


class LocalFileSystem:
    """Read/stat/create/rename/remove/copy on the OS filesystem.

    Blocking calls run in worker threads. Each coroutine takes an optional
    ``timeout``; on expiry it raises ``StorageIOError(cause="deadline")``.
    """

    def __init__(self, resolver: PathResolver):
        self._resolver = resolver

    @property
    def resolver(self) -> PathResolver:
        return self._resolver

    async def _run(
        self,
        func: Callable[..., Any],
        *args: Any,
        timeout: float | None = None,
        path: str | None = None,
    ) -> Any:
        try:
            if timeout is None:
                return await asyncio.to_thread(func, *args)
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout)
        except asyncio.TimeoutError:
            raise StorageIOError("Operation timed out", path, cause="deadline") from None
        except OSError as exc:
            raise translate_os_error(exc, path) from exc

    # --- reads ---

    async def list(self, path: str, timeout: float | None = None) -> list[FileEntry]:
        """Direct children of a directory. Symlinks and special files are skipped."""
        rel = self._resolver.relative(path)
        return await self._run(self._list_sync, rel, timeout=timeout, path=rel)

    def _list_sync(self, rel: str) -> list[FileEntry]:
        entries: list[FileEntry] = []
        with os.scandir(self._resolver.resolve(rel)) as it:
            for item in it:
                try:
                    st = item.stat(follow_symlinks=False)
                except FileNotFoundError:
                    continue  # Removed while scanning
                if not (stat_mod.S_ISDIR(st.st_mode) or stat_mod.S_ISREG(st.st_mode)):
                    continue
                entries.append(_entry_from_stat(item.name, PathResolver.join(rel, item.name), st))
        return entries

    async def stat(self, path: str, timeout: float | None = None) -> FileEntry:
        rel = self._resolver.relative(path)
        return await self._run(self._stat_sync, rel, timeout=timeout, path=rel)

    def _stat_sync(self, rel: str) -> FileEntry:
        st = os.stat(self._resolver.resolve(rel))
        return _entry_from_stat(rel.rsplit("/", 1)[-1], rel, st)

    async def exists(self, path: str, timeout: float | None = None) -> bool:
        try:
            await self.stat(path, timeout=timeout)
        except NotFound:
            return False
        return True

    async def read_stream(
        self,
        path: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        timeout: float | None = None,
    ) -> AsyncIterator[bytes]:
        """Yield the file's content in chunks. ``timeout`` applies per chunk."""
        rel = self._resolver.relative(path)
        handle = await self._run(open, self._resolver.resolve(rel), "rb", timeout=timeout, path=rel)
        try:
            while True:
                chunk = await self._run(handle.read, chunk_size, timeout=timeout, path=rel)
                if not chunk:
                    break
                yield chunk
        finally:
            handle.close()

    # --- mutations ---

    async def write_stream(
        self,
        path: str,
        chunks: AsyncIterable[bytes],
        on_progress: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> int:
        """Write chunks to a temporary sibling, then rename it into place.

        Returns the number of bytes written. The parent directory must exist.
        """
        rel = self._resolver.relative(path)
        if not rel:
            raise InvalidPath("Cannot write to the storage root", rel)
        target = self._resolver.resolve(rel)
        tmp = target.with_name(f".{target.name}.{uuid.uuid4().hex[:8]}.part")

        handle = await self._run(open, tmp, "xb", timeout=timeout, path=rel)
        written = 0
        try:
            async for chunk in chunks:
                await self._run(handle.write, chunk, timeout=timeout, path=rel)
                written += len(chunk)
                if on_progress is not None:
                    on_progress(written)
            await self._run(handle.close, timeout=timeout, path=rel)
            await self._run(os.replace, tmp, target, timeout=timeout, path=rel)
        except BaseException:
            handle.close()
            tmp.unlink(missing_ok=True)
            raise
        logger.debug("Wrote %d bytes to %s", written, rel)
        return written

    async def mkdir(self, path: str, timeout: float | None = None) -> FileEntry:
        """Create a directory (and missing parents). Fails if it exists."""
        rel = self._resolver.relative(path)
        if not rel:
            raise AlreadyExists("The storage root already exists", rel)
        return await self._run(self._mkdir_sync, rel, timeout=timeout, path=rel)

    def _mkdir_sync(self, rel: str) -> FileEntry:
        self._resolver.resolve(rel).mkdir(parents=True, exist_ok=False)
        return self._stat_sync(rel)

    async def rename(self, old: str, new: str, timeout: float | None = None) -> FileEntry:
        src, dst = self._pair(old, new)
        return await self._run(self._rename_sync, src, dst, timeout=timeout, path=src)

    def _rename_sync(self, src: str, dst: str) -> FileEntry:
        self._check_transfer(src, dst)
        os.rename(self._resolver.resolve(src), self._resolver.resolve(dst))
        return self._stat_sync(dst)

    async def remove(self, path: str, recursive: bool = False, timeout: float | None = None) -> None:
        rel = self._resolver.relative(path)
        if not rel:
            raise InvalidPath("Cannot remove the storage root", rel)
        await self._run(self._remove_sync, rel, recursive, timeout=timeout, path=rel)

    def _remove_sync(self, rel: str, recursive: bool) -> None:
        target = self._resolver.resolve(rel)
        st = os.lstat(target)
        if not stat_mod.S_ISDIR(st.st_mode):
            os.unlink(target)
        elif recursive:
            _remove_tree(target)
        else:
            try:
                os.rmdir(target)
            except OSError as exc:
                if exc.errno in (errno.ENOTEMPTY, errno.EEXIST):
                    raise StorageIOError("Directory not empty", rel) from exc
                raise

    async def copy(
        self, src: str, dst: str, recursive: bool = False, timeout: float | None = None
    ) -> FileEntry:
        """Copy a file or (with ``recursive``) a directory tree, preserving mtimes."""
        src_rel, dst_rel = self._pair(src, dst)
        return await self._run(self._copy_sync, src_rel, dst_rel, recursive, timeout=timeout, path=src_rel)

    def _copy_sync(self, src: str, dst: str, recursive: bool) -> FileEntry:
        self._check_transfer(src, dst)
        source = self._resolver.resolve(src)
        target = self._resolver.resolve(dst)
        if source.is_dir():
            if not recursive:
                raise IsADirectory("Copying a directory requires recursive=True", src)
            shutil.copytree(source, target, symlinks=True, copy_function=shutil.copy2)
        else:
            shutil.copy2(source, target)
        return self._stat_sync(dst)

    async def move(self, src: str, dst: str, timeout: float | None = None) -> FileEntry:
        """Atomic rename when possible; copy + remove across devices."""
        src_rel, dst_rel = self._pair(src, dst)
        return await self._run(self._move_sync, src_rel, dst_rel, timeout=timeout, path=src_rel)

    def _move_sync(self, src: str, dst: str) -> FileEntry:
        self._check_transfer(src, dst)
        source = self._resolver.resolve(src)
        target = self._resolver.resolve(dst)
        try:
            os.rename(source, target)
        except OSError as exc:
            if exc.errno != errno.EXDEV:
                raise
            logger.info("Cross-device move %s -> %s, falling back to copy", src, dst)
            self._copy_sync(src, dst, recursive=True)
            self._remove_sync(src, recursive=True)
        return self._stat_sync(dst)

    # --- helpers ---

    def _pair(self, src: str, dst: str) -> tuple[str, str]:
        src_rel = self._resolver.relative(src)
        dst_rel = self._resolver.relative(dst)
        if not src_rel or not dst_rel:
            raise InvalidPath("The storage root cannot be renamed, moved or copied")
        if PathResolver.is_within(dst_rel, src_rel):
            raise InvalidPath("Cannot move or copy a path into itself", dst_rel)
        return src_rel, dst_rel

    def _check_transfer(self, src: str, dst: str) -> None:
        if not os.path.lexists(self._resolver.resolve(src)):
            raise NotFound(f"Source path does not exist: {src}", src)
        if os.path.lexists(self._resolver.resolve(dst)):
            raise AlreadyExists(f"Destination already exists: {dst}", dst)
