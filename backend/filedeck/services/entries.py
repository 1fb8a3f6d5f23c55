"""File entries, listings and the filesystem capability set."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterable, AsyncIterator, Callable, Protocol


class FileKind(str, Enum):
    DIR = "dir"
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    ARCHIVE = "archive"
    PDF = "pdf"
    OTHER = "other"


_EXTENSION_KINDS: dict[str, FileKind] = {}
for _kind, _exts in {
    FileKind.TEXT: (
        ".txt", ".md", ".log", ".csv", ".json", ".xml", ".yml", ".yaml", ".ini",
        ".cfg", ".conf", ".html", ".htm", ".css", ".js", ".ts", ".py", ".sh",
        ".go", ".c", ".h", ".java", ".sql",
    ),
    FileKind.IMAGE: (".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp", ".svg", ".ico", ".tiff"),
    FileKind.VIDEO: (".mp4", ".mkv", ".avi", ".mov", ".webm", ".wmv", ".flv", ".m4v"),
    FileKind.AUDIO: (".mp3", ".wav", ".flac", ".ogg", ".aac", ".m4a", ".wma"),
    FileKind.ARCHIVE: (".zip", ".tar", ".gz", ".tgz", ".bz2", ".xz", ".7z", ".rar"),
    FileKind.PDF: (".pdf",),
}.items():
    for _ext in _exts:
        _EXTENSION_KINDS[_ext] = _kind


def infer_kind(name: str, is_directory: bool = False) -> FileKind:
    """Categorize a file by its extension."""
    if is_directory:
        return FileKind.DIR
    ext = posixpath.splitext(name)[1].lower()
    return _EXTENSION_KINDS.get(ext, FileKind.OTHER)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FileEntry:
    """One filesystem object visible to clients. ``path`` is root-relative."""

    name: str
    path: str
    is_directory: bool
    size: int
    mtime: datetime
    kind: FileKind

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "isDirectory": self.is_directory,
            "size": self.size,
            "mtime": self.mtime.isoformat(),
            "kind": self.kind.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileEntry:
        return cls(
            name=data["name"],
            path=data["path"],
            is_directory=bool(data["isDirectory"]),
            size=int(data.get("size", 0)),
            mtime=datetime.fromisoformat(data["mtime"]),
            kind=FileKind(data.get("kind", FileKind.OTHER.value)),
        )


@dataclass
class CacheEntry:
    """Stored form of one directory scan: ``fs:dir:<path>`` -> CacheEntry."""

    generation: int
    entries: list[FileEntry]
    last_scanned_at: datetime

    def is_fresh(self, ttl: float, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return (now - self.last_scanned_at).total_seconds() < ttl

    def to_dict(self) -> dict[str, Any]:
        return {
            "generation": self.generation,
            "entries": [e.to_dict() for e in self.entries],
            "lastScannedAt": self.last_scanned_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheEntry:
        return cls(
            generation=int(data["generation"]),
            entries=[FileEntry.from_dict(e) for e in data.get("entries", [])],
            last_scanned_at=datetime.fromisoformat(data["lastScannedAt"]),
        )


@dataclass
class DirectoryListing:
    """Entries of one directory, valid relative to ``generation``.

    Order is not guaranteed; use ``sorted_entries`` for display order.
    """

    path: str
    entries: list[FileEntry] = field(default_factory=list)
    generation: int = 0
    scanned_at: datetime = field(default_factory=utcnow)
    stale: bool = False

    @classmethod
    def from_cache(cls, path: str, entry: CacheEntry, stale: bool = False) -> DirectoryListing:
        return cls(
            path=path,
            entries=list(entry.entries),
            generation=entry.generation,
            scanned_at=entry.last_scanned_at,
            stale=stale,
        )

    def sorted_entries(self) -> list[FileEntry]:
        """Directories first, then case-insensitive by name."""
        return sorted(self.entries, key=lambda e: (not e.is_directory, e.name.lower()))


ProgressCallback = Callable[[int], None]


class FileSystem(Protocol):
    """Capability set shared by the direct and the cache-fronted adapters."""

    async def list(self, path: str, timeout: float | None = None) -> list[FileEntry]: ...

    async def stat(self, path: str, timeout: float | None = None) -> FileEntry: ...

    def read_stream(
        self, path: str, chunk_size: int = ..., timeout: float | None = None
    ) -> AsyncIterator[bytes]: ...

    async def write_stream(
        self,
        path: str,
        chunks: AsyncIterable[bytes],
        on_progress: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> int: ...

    async def mkdir(self, path: str, timeout: float | None = None) -> FileEntry: ...

    async def rename(self, old: str, new: str, timeout: float | None = None) -> FileEntry: ...

    async def remove(self, path: str, recursive: bool = False, timeout: float | None = None) -> None: ...

    async def copy(
        self, src: str, dst: str, recursive: bool = False, timeout: float | None = None
    ) -> FileEntry: ...

    async def move(self, src: str, dst: str, timeout: float | None = None) -> FileEntry: ...
