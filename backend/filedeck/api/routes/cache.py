"""Metadata cache routes: refresh, scan progress, statistics."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from filedeck.api.deps import get_identity, get_services
from filedeck.schemas.cache import CacheStats, RefreshRequest, ScanProgressResponse
from filedeck.services import FileServices
from filedeck.services.identity import Identity

router = APIRouter()


@router.post("/refresh", response_model=ScanProgressResponse)
async def refresh_cache(
    body: RefreshRequest,
    services: FileServices = Depends(get_services),
    identity: Identity = Depends(get_identity),
):
    """Start a refresh; with ``wait`` the response carries the final progress."""
    if body.wait:
        progress = await services.refresh.refresh(
            body.strategy, body.path, identity=identity, strict=body.strict
        )
    else:
        progress = services.refresh.start(
            body.strategy, body.path, identity=identity, strict=body.strict
        )
    return ScanProgressResponse.from_progress(progress)


@router.get("/progress", response_model=ScanProgressResponse)
async def refresh_progress(services: FileServices = Depends(get_services)):
    return ScanProgressResponse.from_progress(services.refresh.progress())


@router.get("/stats", response_model=CacheStats)
async def cache_stats(services: FileServices = Depends(get_services)):
    """Cached directory and file counts plus the current generation."""
    return CacheStats.model_validate(await services.cache.stats())
