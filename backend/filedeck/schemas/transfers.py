"""Transfer schemas."""

from pydantic import ConfigDict

from filedeck.schemas.base import CamelModel


class TransferItem(CamelModel):
    """Transfer record. Completion results appear as extra fields."""
    model_config = ConfigDict(extra="allow")

    id: str
    source: str | None = None
    destination: str | None = None
    file_name: str | None = None
    batch_id: str | None = None
    total_size: int
    transferred: int
    progress: int
    status: str
    start_time: int
    end_time: int | None = None
    duration: int | None = None
    error: str | None = None


class TransferStats(CamelModel):
    total: int
    pending: int
    in_progress: int
    completed: int
    failed: int


class BatchStats(CamelModel):
    batch_id: str
    total_files: int
    completed: int
    failed: int
    pending: int
    in_progress: int
    total_size: int
    transferred: int
    progress: int
