"""Metadata cache schemas: refresh requests, scan progress, statistics."""

from __future__ import annotations

from datetime import datetime

from filedeck.schemas.base import CamelModel
from filedeck.services.refresh import RefreshStrategy, ScanProgress


class RefreshRequest(CamelModel):
    strategy: RefreshStrategy = RefreshStrategy.SMART
    path: str = ""
    wait: bool = False  # Block until the walk has finished
    strict: bool = False  # 409 instead of joining a refresh of another strategy


class ScanProgressResponse(CamelModel):
    is_scanning: bool
    strategy: str | None = None
    target: str
    total_items: int
    directories: int
    started_at: datetime | None = None
    finished_at: datetime | None = None
    stage: str
    error: str | None = None

    @classmethod
    def from_progress(cls, progress: ScanProgress) -> ScanProgressResponse:
        return cls.model_validate(progress.to_dict())


class CacheStats(CamelModel):
    """Metadata cache statistics."""
    directories: int
    files: int
    generation: int
    ttl_seconds: float
