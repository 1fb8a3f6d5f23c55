"""File API routes: listing, mutations, uploads, downloads and search."""

from __future__ import annotations

import mimetypes
import posixpath
from typing import AsyncIterator
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import StreamingResponse

from filedeck.api.deps import get_fs, get_identity, get_services
from filedeck.errors import FileServiceError, InvalidPath, IsADirectory
from filedeck.schemas.files import (
    DeleteRequest,
    DeleteResponse,
    FileItem,
    FolderRequest,
    ListingResponse,
    PasteRequest,
    PasteResponse,
    RenameRequest,
    SearchResponse,
    UploadedFile,
    UploadResponse,
    operation_errors,
)
from filedeck.services import FileServices
from filedeck.services.cached_fs import CachedFileSystem
from filedeck.services.identity import Identity
from filedeck.utils.paths import PathResolver

router = APIRouter()


@router.get("/list", response_model=ListingResponse)
async def list_files(
    path: str = "",
    fs: CachedFileSystem = Depends(get_fs),
    identity: Identity = Depends(get_identity),
):
    """Directory listing from the metadata cache (directories first)."""
    listing = await fs.listing(path, identity=identity)
    return ListingResponse(
        path=listing.path,
        generation=listing.generation,
        scanned_at=listing.scanned_at,
        stale=listing.stale,
        entries=[FileItem.from_entry(e) for e in listing.sorted_entries()],
    )


@router.post("/folder", response_model=FileItem, status_code=status.HTTP_201_CREATED)
async def create_folder(
    body: FolderRequest,
    fs: CachedFileSystem = Depends(get_fs),
    identity: Identity = Depends(get_identity),
):
    entry = await fs.mkdir(body.path, identity=identity)
    return FileItem.from_entry(entry)


@router.post("/rename", response_model=FileItem)
async def rename_path(
    body: RenameRequest,
    fs: CachedFileSystem = Depends(get_fs),
    identity: Identity = Depends(get_identity),
):
    entry = await fs.rename(body.old_path, body.new_path, identity=identity)
    return FileItem.from_entry(entry)


@router.post("/delete", response_model=DeleteResponse)
async def delete_paths(
    body: DeleteRequest,
    fs: CachedFileSystem = Depends(get_fs),
    identity: Identity = Depends(get_identity),
):
    """Delete each path. Per-item failures are reported, not raised."""
    deleted: list[str] = []
    errors: list[dict] = []
    for path in body.paths:
        try:
            await fs.remove(path, recursive=body.recursive, identity=identity)
            deleted.append(fs.resolver.relative(path))
        except FileServiceError as e:
            errors.append({"source": path, **e.to_dict()})
    return DeleteResponse(deleted=deleted, errors=operation_errors(errors))


@router.post("/paste", response_model=PasteResponse)
async def paste_paths(
    body: PasteRequest,
    fs: CachedFileSystem = Depends(get_fs),
    identity: Identity = Depends(get_identity),
):
    """Copy or move clipboard items into ``targetDir``."""
    result = await fs.paste(body.operation, body.sources, body.target_dir, identity=identity)
    return PasteResponse(
        operation=result["operation"],
        processed=result["processed"],
        errors=operation_errors(result["errors"]),
    )


def _upload_name(filename: str | None) -> str:
    name = posixpath.basename((filename or "").replace("\\", "/"))
    if not name or name in (".", ".."):
        raise InvalidPath("Upload has no usable file name", filename)
    return name


async def _chunks(upload: UploadFile, chunk_size: int) -> AsyncIterator[bytes]:
    while True:
        chunk = await upload.read(chunk_size)
        if not chunk:
            break
        yield chunk


@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_files(
    files: list[UploadFile] = File(...),
    path: str = Form(""),
    batch_id: str | None = Form(None, alias="batchId"),
    services: FileServices = Depends(get_services),
    identity: Identity = Depends(get_identity),
):
    """Store uploaded files in ``path``; each file gets its own transfer."""
    target = services.resolver.relative(path)
    uploaded: list[UploadedFile] = []
    for upload in files:
        name = _upload_name(upload.filename)
        dest = PathResolver.join(target, name)
        transfer_id = await services.fs.upload(
            dest,
            _chunks(upload, services.settings.upload_chunk_size),
            total_size=upload.size or 0,
            file_name=name,
            batch_id=batch_id,
            identity=identity,
        )
        transfer = services.transfers.get(transfer_id)
        size = transfer.result.get("bytesWritten", 0) if transfer else 0
        uploaded.append(UploadedFile(transfer_id=transfer_id, path=dest, size=size))
    return UploadResponse(batch_id=batch_id, files=uploaded)


@router.get("/download")
async def download_file(
    path: str,
    services: FileServices = Depends(get_services),
    identity: Identity = Depends(get_identity),
):
    """Stream a file; progress is visible under ``/transfers``."""
    entry = await services.fs.stat(path, identity=identity)
    if entry.is_directory:
        raise IsADirectory("Directories cannot be downloaded", entry.path)

    transfers = services.transfers
    transfer_id = transfers.start(
        source=entry.path, total_size=entry.size, file_name=entry.name
    )
    services.events.log_file_operation(
        "download", entry.path, True, identity=identity, file_size=entry.size
    )

    async def _stream() -> AsyncIterator[bytes]:
        sent = 0
        try:
            async for chunk in services.fs.read_stream(
                entry.path, chunk_size=services.settings.upload_chunk_size, identity=identity
            ):
                sent += len(chunk)
                transfers.update_progress(transfer_id, sent)
                yield chunk
        except FileServiceError as e:
            transfers.fail(transfer_id, e.message)
            raise
        transfers.complete(transfer_id, {"result": "success"})

    media_type = mimetypes.guess_type(entry.name)[0] or "application/octet-stream"
    return StreamingResponse(
        _stream(),
        media_type=media_type,
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(entry.name)}",
            "Content-Length": str(entry.size),
            "X-Transfer-Id": transfer_id,
        },
    )


@router.get("/search", response_model=SearchResponse)
async def search_files(
    q: str = Query(..., min_length=1),
    path: str = "",
    limit: int | None = Query(None, ge=1),
    services: FileServices = Depends(get_services),
    identity: Identity = Depends(get_identity),
):
    """Name search over cached directories under ``path``."""
    max_results = services.settings.search_max_results
    limit = min(limit or max_results, max_results)
    base = services.resolver.relative(path)
    results = await services.fs.search(q, limit=limit, base=base, identity=identity)
    return SearchResponse(
        query=q,
        base=base,
        count=len(results),
        results=[FileItem.from_entry(e) for e in results],
    )
