"""
Pytest configuration and shared fixtures for oneshot tests.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Generator

import pytest
from fastapi.testclient import TestClient

from oneshot.core.config import Settings
from oneshot.db import build_engine, build_session_factory, init_db
from oneshot.main import create_app
from oneshot.storage import (
    LifecycleEngine,
    LifecyclePolicy,
    LocalObjectStore,
    MetadataLedger,
    StorageReclaimer,
)


class FakeClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


async def byte_stream(data: bytes, chunk_size: int = 16) -> AsyncIterator[bytes]:
    """Async iterator over data in fixed-size chunks."""
    for start in range(0, len(data), chunk_size):
        yield data[start:start + chunk_size]


def admit(engine: LifecycleEngine, data: bytes, name: str = "notes.txt", **kwargs):
    """Run LifecycleEngine.admit to completion."""
    return asyncio.run(engine.admit(byte_stream(data), name, **kwargs))


def read_all(retrieval) -> bytes:
    return b"".join(retrieval.iter_chunks())


# ========================================
# Core component fixtures
# ========================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture
def db_engine(tmp_path):
    """File-backed SQLite database, so threads share one database."""
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def ledger(db_engine) -> MetadataLedger:
    return MetadataLedger(build_session_factory(db_engine))


@pytest.fixture
def store(tmp_path) -> LocalObjectStore:
    return LocalObjectStore(str(tmp_path / "blobs"), chunk_size=64)


@pytest.fixture
def policy() -> LifecyclePolicy:
    return LifecyclePolicy(max_upload_bytes=1024, max_downloads=1, ttl=timedelta(hours=1))


@pytest.fixture
def engine(store, ledger, policy, clock) -> LifecycleEngine:
    return LifecycleEngine(store, ledger, policy, clock=clock)


@pytest.fixture
def reclaimer(engine) -> StorageReclaimer:
    return StorageReclaimer(engine, batch_size=2, orphan_grace=timedelta(hours=1))


# ========================================
# Application fixtures
# ========================================

def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        DATABASE_URL=f"sqlite:///{tmp_path / 'app.db'}",
        STORAGE_BACKEND="local",
        UPLOAD_DIR=str(tmp_path / "uploads"),
        MAX_UPLOAD_SIZE="1KB",
        MAX_DOWNLOADS=1,
        FILE_EXPIRY="1h",
        API_KEY=None,
        PUBLIC_BASE_URL=None,
        RECLAIMER_ENABLED=False,
        REDIS_URL=None,
        LOG_LEVEL="INFO",
        LOG_FORMAT="text",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def client(settings) -> Generator[TestClient, None, None]:
    """Test client for an app without an API key."""
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def api_key() -> str:
    return "test-shared-secret"


@pytest.fixture
def authenticated_app_client(tmp_path, api_key) -> Generator[TestClient, None, None]:
    """Test client for an app that requires an API key."""
    app = create_app(make_settings(tmp_path, API_KEY=api_key))
    with TestClient(app) as test_client:
        yield test_client


# ========================================
# Helper fixtures
# ========================================

@pytest.fixture
def chunks():
    """byte_stream helper: chunks(data) -> async iterator of bytes."""
    return byte_stream


@pytest.fixture
def upload(engine):
    """upload(data, name="notes.txt", **kwargs) -> admitted FileRecord."""
    def _upload(data: bytes, name: str = "notes.txt", **kwargs):
        return admit(engine, data, name, **kwargs)
    return _upload


@pytest.fixture
def download():
    """download(retrieval) -> full body bytes."""
    return read_all


@pytest.fixture
def settings_factory(tmp_path):
    """settings_factory(**overrides) -> Settings rooted in tmp_path."""
    def _factory(**overrides) -> Settings:
        return make_settings(tmp_path, **overrides)
    return _factory
