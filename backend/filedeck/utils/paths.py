"""Client path resolution: keeps every path inside the storage root.

Client paths use ``/`` or ``\\`` as separator. A single leading separator
marks the storage root, so ``"/docs/a.txt"`` and ``"docs/a.txt"`` name the
same file. Drive-qualified and UNC inputs are absolute and rejected.
"""

from __future__ import annotations

import posixpath
import re
from pathlib import Path

from filedeck.errors import InvalidPath

DEFAULT_MAX_DEPTH = 32

_DRIVE_RE = re.compile(r"^[A-Za-z]:")


class PathResolver:
    """Translate client-supplied paths into safe absolute paths under ``root``."""

    def __init__(self, root: str | Path, max_depth: int = DEFAULT_MAX_DEPTH):
        self.root = Path(root).resolve()
        self.max_depth = max_depth

    def relative(self, path: str | None) -> str:
        """Return the canonical root-relative POSIX path (``""`` for the root)."""
        raw = path or ""
        if "\x00" in raw:
            raise InvalidPath("Path contains a null byte", raw)

        normalized = raw.replace("\\", "/")
        if _DRIVE_RE.match(normalized) or normalized.startswith("//"):
            raise InvalidPath("Absolute paths are not allowed", raw)

        normalized = normalized.lstrip("/")
        if not normalized:
            return ""

        collapsed = posixpath.normpath(normalized)
        if collapsed == ".":
            return ""
        if collapsed == ".." or collapsed.startswith("../"):
            raise InvalidPath("Path escapes the storage root", raw)

        depth = len(collapsed.split("/"))
        if depth > self.max_depth:
            raise InvalidPath(
                f"Path is nested too deeply ({depth} > {self.max_depth})", raw
            )
        return collapsed

    def resolve(self, path: str | None) -> Path:
        """Return the absolute path for a client path. Performs no I/O."""
        rel = self.relative(path)
        return self.root / rel if rel else self.root

    def to_client(self, absolute: str | Path) -> str:
        """Inverse of ``resolve`` for paths known to be under the root."""
        rel = Path(absolute).relative_to(self.root).as_posix()
        return "" if rel == "." else rel

    @staticmethod
    def parent_of(rel: str) -> str:
        """Root-relative parent of a canonical relative path."""
        return posixpath.dirname(rel)

    @staticmethod
    def join(rel_dir: str, name: str) -> str:
        return f"{rel_dir}/{name}" if rel_dir else name

    def within_depth(self, rel: str) -> bool:
        """True if a canonical relative path is no deeper than ``max_depth``."""
        return not rel or rel.count("/") + 1 <= self.max_depth

    @staticmethod
    def is_within(rel: str, ancestor: str) -> bool:
        """True if ``rel`` equals ``ancestor`` or lies beneath it."""
        if not ancestor:
            return True
        return rel == ancestor or rel.startswith(ancestor + "/")
