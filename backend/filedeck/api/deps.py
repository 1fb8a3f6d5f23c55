"""FastAPI dependency injection: service container & request identity."""

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, status

from filedeck.services import FileServices
from filedeck.services.cached_fs import CachedFileSystem
from filedeck.services.identity import Identity, extract_identity

logger = logging.getLogger(__name__)


def get_services(request: Request) -> FileServices:
    """The ``FileServices`` owned by this app (set up in the lifespan)."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="File services not initialized",
        )
    return services


def get_fs(services: FileServices = Depends(get_services)) -> CachedFileSystem:
    return services.fs


def get_identity(request: Request) -> Identity:
    """Caller identity. ``request.state.user`` is set by an upstream authenticator."""
    peer = request.client.host if request.client else None
    return extract_identity(
        request.headers,
        peer=peer,
        principal=getattr(request.state, "user", None),
    )
