"""filedeck FastAPI application factory."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from filedeck import __version__
from filedeck.api.deps import get_identity
from filedeck.config import settings
from filedeck.database import async_session, engine, init_db
from filedeck.errors import FileServiceError
from filedeck.services import init_services, shutdown_services

logger = logging.getLogger(__name__)

# Error kind -> HTTP status
STATUS_BY_KIND: dict[str, int] = {
    "InvalidPath": 400,
    "NotFound": 404,
    "AlreadyExists": 409,
    "PermissionDenied": 403,
    "NotADirectory": 400,
    "IsADirectory": 400,
    "UnknownTransfer": 404,
    "ScanBusy": 409,
    "CacheUnavailable": 503,
    "IO": 500,
}


@asynccontextmanager
async def _lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    # === STARTUP ===
    _setup_logging()

    for d in (settings.data_dir, settings.log_dir, settings.root_dir):
        Path(d).mkdir(parents=True, exist_ok=True)

    await init_db(engine)
    app.state.services = await init_services(settings, async_session)
    logger.info("filedeck v%s started, serving %s on %s:%s",
                __version__, settings.root_dir, settings.host, settings.port)

    try:
        yield
    finally:
        # === SHUTDOWN ===
        await shutdown_services(app.state.services)
        await engine.dispose()
        logger.info("filedeck shutting down")


def _setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Raise noisy third-party loggers to WARNING
    for noisy in ("aiosqlite", "apscheduler", "multipart"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


async def _file_service_error(request: Request, exc: FileServiceError) -> JSONResponse:
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, **exc.to_dict()},
    )


async def _log_requests(request: Request, call_next):
    """One request record per API call, gated by the request-logging toggle."""
    started = time.monotonic()
    response = await call_next(request)
    services = getattr(request.app.state, "services", None)
    if services is not None and request.url.path.startswith(settings.api_prefix):
        services.events.log_request(
            request.method,
            request.url.path,
            response.status_code,
            (time.monotonic() - started) * 1000,
            identity=get_identity(request),
            headers=dict(request.headers),
            query=dict(request.query_params),
        )
    return response


def create_app() -> FastAPI:
    """Application factory."""
    from filedeck.api.routes import api_router

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        debug=settings.debug,
        lifespan=_lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(_log_requests)
    app.add_exception_handler(FileServiceError, _file_service_error)

    # Mount API routes
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()


def run(**kwargs: Any) -> None:
    import uvicorn

    uvicorn.run(
        "filedeck.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        **kwargs,
    )


if __name__ == "__main__":
    run()
