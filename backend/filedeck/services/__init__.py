"""Wiring of the file services owned by one application."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from filedeck.services.cached_fs import CachedFileSystem
from filedeck.services.event_logger import EventLogger, LoggingConfig
from filedeck.services.kv_store import KeyValueStore
from filedeck.services.local_fs import LocalFileSystem
from filedeck.services.metadata_cache import MetadataCache
from filedeck.services.refresh import RefreshController
from filedeck.services.scheduler import CacheRefreshScheduler
from filedeck.services.transfers import TransferTracker
from filedeck.utils.paths import PathResolver

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from filedeck.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class FileServices:
    """Everything a request handler needs, owned by the app (``app.state.services``)."""

    settings: Settings
    resolver: PathResolver
    local: LocalFileSystem
    store: KeyValueStore
    cache: MetadataCache
    fs: CachedFileSystem
    refresh: RefreshController
    transfers: TransferTracker
    events: EventLogger
    toggles: dict[str, bool] = field(default_factory=dict)
    scheduler: CacheRefreshScheduler | None = None

    def set_toggles(self, updates: dict[str, bool]) -> dict[str, bool]:
        """Apply feature-toggle updates. ``request_logging`` gates request events."""
        for key, value in updates.items():
            if key in self.toggles:
                self.toggles[key] = bool(value)
        self.events.config.categories["request"] = (
            self.toggles.get("request_logging", True) and self.settings.log_request
        )
        return dict(self.toggles)


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
) -> FileServices:
    """Construct the service graph without starting background jobs."""
    resolver = PathResolver(settings.root_dir, max_depth=settings.max_path_depth)
    events = EventLogger(settings.log_dir, LoggingConfig.from_settings(settings))
    local = LocalFileSystem(resolver)
    store = KeyValueStore(session_factory)
    cache = MetadataCache(
        store,
        local,
        events=events,
        ttl=settings.cache_ttl_seconds,
        stale_grace=settings.cache_stale_grace_seconds,
    )
    transfers = TransferTracker()
    services = FileServices(
        settings=settings,
        resolver=resolver,
        local=local,
        store=store,
        cache=cache,
        fs=CachedFileSystem(local, cache, events, transfers),
        refresh=RefreshController(cache, events),
        transfers=transfers,
        events=events,
        toggles=dict(settings.feature_toggles),
    )
    services.set_toggles({})
    return services


async def init_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
) -> FileServices:
    """Create the service graph and start background jobs."""
    services = build_services(settings, session_factory)
    services.resolver.root.mkdir(parents=True, exist_ok=True)

    if settings.refresh_interval_seconds > 0:
        services.scheduler = CacheRefreshScheduler(
            services.refresh, services.store, settings.refresh_interval_seconds
        )
        services.scheduler.start()
    else:
        logger.info("Scheduled cache refresh disabled (FILEDECK_REFRESH_INTERVAL_SECONDS=0)")

    services.events.log(
        "info", "system", "File services initialized",
        {"root": str(services.resolver.root), "cacheTtl": settings.cache_ttl_seconds},
    )
    return services


async def shutdown_services(services: FileServices) -> None:
    """Stop scheduler and any running refresh."""
    if services.scheduler is not None:
        await services.scheduler.stop()
        services.scheduler = None
    await services.refresh.stop()
    services.events.log("info", "system", "File services stopped")
