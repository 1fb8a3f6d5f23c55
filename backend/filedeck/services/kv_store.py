"""Key-value store with per-key TTL and JSON values, backed by SQLite."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from filedeck.errors import CacheUnavailable
from filedeck.models.kv_entry import KvEntry

logger = logging.getLogger(__name__)


def _now() -> datetime:
    # SQLite stores naive datetimes; keep everything in naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class KeyValueStore:
    """Minimal Redis-like surface: get/set/delete/incr/keys.

    Expired rows read as absent and are purged on access. All writes go
    through one lock since SQLite admits a single writer anyway.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Any | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(KvEntry, key)
                if row is None:
                    return None
                if row.expires_at is not None and row.expires_at <= _now():
                    await self._purge(session, key)
                    return None
                return json.loads(row.value)
        except SQLAlchemyError as e:
            raise CacheUnavailable(f"Key-value store read failed: {e}") from e

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        expires_at = _now() + timedelta(seconds=ttl) if ttl else None
        payload = json.dumps(value, ensure_ascii=False)
        try:
            async with self._lock, self._session_factory() as session:
                row = await session.get(KvEntry, key)
                if row is None:
                    session.add(KvEntry(key=key, value=payload, expires_at=expires_at))
                else:
                    row.value = payload
                    row.expires_at = expires_at
                await session.commit()
        except SQLAlchemyError as e:
            raise CacheUnavailable(f"Key-value store write failed: {e}") from e

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            async with self._lock, self._session_factory() as session:
                result = await session.execute(delete(KvEntry).where(KvEntry.key.in_(keys)))
                await session.commit()
                return result.rowcount or 0
        except SQLAlchemyError as e:
            raise CacheUnavailable(f"Key-value store delete failed: {e}") from e

    async def incr(self, key: str) -> int:
        """Atomically increment an integer counter, starting from 0."""
        try:
            async with self._lock, self._session_factory() as session:
                row = await session.get(KvEntry, key)
                if row is None or (row.expires_at is not None and row.expires_at <= _now()):
                    value = 1
                    if row is None:
                        session.add(KvEntry(key=key, value="1", expires_at=None))
                    else:
                        row.value = "1"
                        row.expires_at = None
                else:
                    value = int(json.loads(row.value)) + 1
                    row.value = str(value)
                await session.commit()
                return value
        except SQLAlchemyError as e:
            raise CacheUnavailable(f"Key-value store increment failed: {e}") from e

    async def keys(self, prefix: str = "") -> list[str]:
        """Live keys starting with ``prefix``, sorted."""
        stmt = select(KvEntry.key).where(
            or_(KvEntry.expires_at.is_(None), KvEntry.expires_at > _now())
        )
        if prefix:
            stmt = stmt.where(KvEntry.key.like(_escape_like(prefix) + "%", escape="\\"))
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt.order_by(KvEntry.key))
                keys = result.scalars().all()
        except SQLAlchemyError as e:
            raise CacheUnavailable(f"Key-value store scan failed: {e}") from e
        # SQLite LIKE ignores ASCII case
        return [k for k in keys if k.startswith(prefix)]

    async def purge_expired(self) -> int:
        try:
            async with self._lock, self._session_factory() as session:
                result = await session.execute(
                    delete(KvEntry).where(KvEntry.expires_at.is_not(None), KvEntry.expires_at <= _now())
                )
                await session.commit()
                count = result.rowcount or 0
        except SQLAlchemyError as e:
            raise CacheUnavailable(f"Key-value store purge failed: {e}") from e
        if count:
            logger.debug("Purged %d expired cache keys", count)
        return count

    async def _purge(self, session: AsyncSession, key: str) -> None:
        async with self._lock:
            await session.execute(
                delete(KvEntry).where(KvEntry.key == key, KvEntry.expires_at <= _now())
            )
            await session.commit()
