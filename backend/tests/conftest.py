"""Test fixtures: temp storage root, file-backed SQLite store, services and client."""

from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from filedeck.config import Settings
from filedeck.database import create_engine_for, create_session_factory, init_db
from filedeck.main import create_app
from filedeck.services import build_services, shutdown_services
from filedeck.services.event_logger import EventLogger
from filedeck.services.kv_store import KeyValueStore
from filedeck.services.local_fs import LocalFileSystem
from filedeck.utils.paths import PathResolver


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings pointing every path into ``tmp_path``."""
    return Settings(
        _env_file=None,
        root_dir=str(tmp_path / "storage"),
        data_dir=str(tmp_path / "data"),
        log_dir=str(tmp_path / "logs"),
        database_path=str(tmp_path / "data" / "kv.db"),
        refresh_interval_seconds=0,
    )


@pytest.fixture
def root(test_settings: Settings) -> Path:
    """Empty storage root."""
    path = Path(test_settings.root_dir)
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest_asyncio.fixture
async def session_factory(test_settings: Settings):
    engine = create_engine_for(test_settings.database_path)
    await init_db(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def store(session_factory) -> KeyValueStore:
    return KeyValueStore(session_factory)


@pytest.fixture
def local_fs(root: Path) -> LocalFileSystem:
    return LocalFileSystem(PathResolver(root))


@pytest.fixture
def events(test_settings: Settings) -> EventLogger:
    return EventLogger(test_settings.log_dir)


@pytest_asyncio.fixture
async def services(test_settings: Settings, root: Path, session_factory):
    """Fully wired services (no scheduler)."""
    svc = build_services(test_settings, session_factory)
    yield svc
    await shutdown_services(svc)


@pytest_asyncio.fixture
async def client(services):
    """Async test client bound to an app that owns ``services``."""
    app = create_app()
    app.state.services = services

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
