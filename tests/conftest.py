"""
Pytest fixtures for SignalGate tests.
"""

import os
import tempfile

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Ensure test config is set before importing signalgate modules.
os.environ.setdefault("SIGNALGATE_ENV", "development")
os.environ.setdefault("SIGNALGATE_ALLOW_INSECURE_DEV", "true")
os.environ.setdefault("SIGNALGATE_CREDENTIAL_BCRYPT_ROUNDS", "4")
os.environ.setdefault("SIGNALGATE_RATE_LIMIT_ENABLED", "false")
os.environ.setdefault(
    "SIGNALGATE_DATABASE_URL",
    "sqlite+aiosqlite:///" + os.path.join(tempfile.gettempdir(), "signalgate_test.db"),
)

from signalgate.config import settings
from signalgate.db import base as db_base
from signalgate.db.base import Base
import signalgate.db.tables  # noqa: F401
import signalgate.auth.models  # noqa: F401
from signalgate.observability.metrics import metrics
from signalgate.relay import InMemorySignalRelay, set_relay

pytest_plugins = ("pytest_asyncio",)

ORG_ID = "org-test"
ASSET_ID = "asset-test"


def _ensure_test_database_url(database_url: str) -> None:
    if "test" not in database_url:
        raise RuntimeError(
            "Refusing to run SignalGate tests against a non-test database. "
            "Set SIGNALGATE_TEST_DATABASE_URL to a dedicated test database."
        )


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield


@pytest.fixture
async def engine(tmp_path):
    """Create a fresh test database and wire it into signalgate.db.base."""
    database_url = os.getenv(
        "SIGNALGATE_TEST_DATABASE_URL",
        f"sqlite+aiosqlite:///{tmp_path / 'signalgate_test.db'}",
    )
    _ensure_test_database_url(database_url)
    engine = create_async_engine(database_url, echo=settings.debug)

    # Override global engine/session factory for dependency injection.
    original_engine = db_base.engine
    original_factory = db_base.async_session_factory
    db_base.engine = engine
    db_base.async_session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    db_base.engine = original_engine
    db_base.async_session_factory = original_factory
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    """Provide a database session per test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def relay():
    """Fresh in-memory relay installed as the process-wide relay."""
    relay = InMemorySignalRelay(max_messages=100, message_ttl_ms=600_000)
    set_relay(relay)
    yield relay
    set_relay(None)


@pytest.fixture
async def client(engine, relay):
    """Async test client over the real app; each request gets its own session."""
    from signalgate.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def agent_credential(session_factory):
    """Enrolled agent for ORG_ID/ASSET_ID. Returns (credential, record)."""
    from signalgate.auth.credentials import issue_agent_credential

    async with session_factory() as session:
        full_key, record = await issue_agent_credential(
            session, org_id=ORG_ID, asset_id=ASSET_ID, agent_id="agent-1"
        )
        await session.commit()
    return full_key, record

