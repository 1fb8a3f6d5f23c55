"""API route registration."""

from fastapi import APIRouter

from filedeck.api.routes import cache, files, health, logs, settings, transfers

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(files.router, prefix="/files", tags=["files"])
api_router.include_router(cache.router, prefix="/cache", tags=["cache"])
api_router.include_router(transfers.router, prefix="/transfers", tags=["transfers"])
api_router.include_router(settings.router, prefix="/settings", tags=["settings"])
api_router.include_router(logs.router, prefix="/logs", tags=["logs"])
