"""APScheduler-based background jobs for keeping the metadata cache warm."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from filedeck.errors import CacheUnavailable, FileServiceError
from filedeck.services.identity import SYSTEM_IDENTITY
from filedeck.services.refresh import RefreshStrategy

if TYPE_CHECKING:
    from filedeck.services.kv_store import KeyValueStore
    from filedeck.services.refresh import RefreshController

logger = logging.getLogger(__name__)

PURGE_INTERVAL_SECONDS = 600


class CacheRefreshScheduler:
    """Periodic smart refresh of the storage root plus expired-key cleanup."""

    def __init__(
        self,
        refresh: RefreshController,
        store: KeyValueStore,
        interval_seconds: int,
    ):
        self._refresh = refresh
        self._store = store
        self._interval = interval_seconds
        self._scheduler = AsyncIOScheduler(
            job_defaults={"coalesce": True, "max_instances": 1}
        )

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        """Register and start all cache jobs."""
        # Job 1: Smart refresh of the whole tree
        self._scheduler.add_job(
            self._smart_refresh,
            "interval",
            seconds=self._interval,
            id="smart_refresh",
            name="Smart cache refresh",
        )

        # Job 2: Drop expired key-value rows
        self._scheduler.add_job(
            self._purge_expired,
            "interval",
            seconds=PURGE_INTERVAL_SECONDS,
            id="purge_expired",
            name="Purge expired cache keys",
        )

        self._scheduler.start()
        logger.info("Cache scheduler started, smart refresh every %ds", self._interval)

    async def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Cache scheduler stopped")

    async def _smart_refresh(self) -> None:
        if self._refresh.is_running:
            logger.debug("Skipping scheduled refresh, one is already running")
            return
        try:
            progress = await self._refresh.refresh(
                RefreshStrategy.SMART, "", identity=SYSTEM_IDENTITY
            )
            logger.debug("Scheduled refresh: %d items", progress.total_items)
        except FileServiceError as e:
            logger.error("Scheduled refresh failed: %s", e)

    async def _purge_expired(self) -> None:
        try:
            await self._store.purge_expired()
        except CacheUnavailable as e:
            logger.error("Expired key purge failed: %s", e)
