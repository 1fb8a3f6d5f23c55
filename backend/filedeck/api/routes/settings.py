"""Runtime feature toggles."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from filedeck.api.deps import get_identity, get_services
from filedeck.schemas.system import SettingsResponse, SettingsUpdate
from filedeck.services import FileServices
from filedeck.services.identity import Identity

logger = logging.getLogger(__name__)
router = APIRouter()


def _current(services: FileServices) -> SettingsResponse:
    config = services.events.config
    return SettingsResponse(
        features=dict(services.toggles),
        log_level=config.level.value,
        detailed_logging=config.detailed,
        log_categories=dict(config.categories),
    )


@router.get("", response_model=SettingsResponse)
async def get_runtime_settings(services: FileServices = Depends(get_services)):
    return _current(services)


@router.put("", response_model=SettingsResponse)
async def update_runtime_settings(
    body: SettingsUpdate,
    services: FileServices = Depends(get_services),
    identity: Identity = Depends(get_identity),
):
    """Apply toggle changes. Turning ``request_logging`` off stops request records."""
    updates = body.model_dump(exclude_none=True)
    services.set_toggles(updates)
    logger.info("Feature toggles updated by %s: %s", identity.user, updates)
    services.events.log_security_event(
        "settings_changed", identity=identity, changes=updates
    )
    return _current(services)
