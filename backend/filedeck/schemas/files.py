"""Request and response models for the file routes."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from filedeck.schemas.base import CamelModel
from filedeck.services.entries import FileEntry


class FileItem(CamelModel):
    """One entry of a directory listing."""
    name: str
    path: str
    is_directory: bool
    size: int
    mtime: datetime
    kind: str

    @classmethod
    def from_entry(cls, entry: FileEntry) -> FileItem:
        return cls(
            name=entry.name,
            path=entry.path,
            is_directory=entry.is_directory,
            size=entry.size,
            mtime=entry.mtime,
            kind=entry.kind.value,
        )


class ListingResponse(CamelModel):
    path: str
    generation: int
    scanned_at: datetime
    stale: bool = False  # Served from cache after a deadline
    entries: list[FileItem]


class FolderRequest(CamelModel):
    path: str


class RenameRequest(CamelModel):
    old_path: str
    new_path: str


class DeleteRequest(CamelModel):
    paths: list[str]
    recursive: bool = True


class OperationError(CamelModel):
    """Per-item failure inside a batch operation."""
    source: str
    kind: str
    message: str
    path: str | None = None


class DeleteResponse(CamelModel):
    deleted: list[str]
    errors: list[OperationError] = []


class PasteRequest(CamelModel):
    operation: Literal["copy", "move"]
    sources: list[str]
    target_dir: str = ""


class PasteResponse(CamelModel):
    operation: str
    processed: list[str]
    errors: list[OperationError] = []


class UploadedFile(CamelModel):
    transfer_id: str
    path: str
    size: int


class UploadResponse(CamelModel):
    batch_id: str | None = None
    files: list[UploadedFile]


class SearchResponse(CamelModel):
    query: str
    base: str
    count: int
    results: list[FileItem]


def operation_errors(errors: list[dict[str, Any]]) -> list[OperationError]:
    return [OperationError.model_validate(e) for e in errors]
