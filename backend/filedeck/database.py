"""SQLAlchemy async engine & session for the SQLite key-value store (WAL mode)."""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from filedeck.config import settings
from filedeck.models.base import Base

logger = logging.getLogger(__name__)


def _configure_sqlite(dbapi_conn, _connection_record):
    """Apply SQLite PRAGMAs for a write-heavy cache workload."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def create_engine_for(database_path: str | Path, echo: bool = False) -> AsyncEngine:
    """Create an engine for a SQLite file, creating its directory if needed."""
    db_path = Path(database_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    new_engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", echo=echo)
    # Apply SQLite PRAGMAs on each new connection
    event.listen(new_engine.sync_engine, "connect", _configure_sqlite)
    return new_engine


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


async def init_db(bind: AsyncEngine) -> None:
    """Create the key-value table if missing."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Key-value tables created/verified at %s", bind.url.database)


engine = create_engine_for(
    settings.database_path,
    echo=settings.debug and settings.log_level == "DEBUG",
)

async_session = create_session_factory(engine)
