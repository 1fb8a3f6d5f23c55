"""Event log routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from filedeck.api.deps import get_services
from filedeck.schemas.system import LogRecordsResponse
from filedeck.services import FileServices
from filedeck.services.event_logger import LogCategory

router = APIRouter()


@router.get("/recent", response_model=LogRecordsResponse)
async def recent_logs(
    limit: int = Query(100, ge=1, le=1000),
    category: LogCategory | None = None,
    services: FileServices = Depends(get_services),
):
    """Most recent persisted records, oldest first."""
    records = services.events.read_recent(limit if category is None else 1000)
    if category is not None:
        records = [r for r in records if r.get("category") == category.value][-limit:]
    return LogRecordsResponse(count=len(records), records=records)
