"""Health, feature toggle and event log schemas."""

from typing import Any

from filedeck.schemas.base import CamelModel


class HealthResponse(CamelModel):
    """Health check response."""
    status: str = "ok"
    version: str
    service: str = "filedeck"


class SettingsResponse(CamelModel):
    features: dict[str, bool]
    log_level: str
    detailed_logging: bool
    log_categories: dict[str, bool]


class SettingsUpdate(CamelModel):
    """Feature toggles to change. Omitted fields keep their value."""
    rate_limit: bool | None = None
    security_headers: bool | None = None
    input_validation: bool | None = None
    upload_security: bool | None = None
    request_logging: bool | None = None
    csp: bool | None = None


class LogRecordsResponse(CamelModel):
    count: int
    records: list[dict[str, Any]]
