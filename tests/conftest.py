"""Shared test fixtures — async SQLite DB per test, Slack/Stripe doubles, test client."""

import os
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
from cryptography.fernet import Fernet

# Required settings must exist before anything imports sentinel.core.config
os.environ.setdefault("ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("INTERNAL_AUDIT_SECRET", "internal-test-secret")
os.environ.setdefault("SLACK_SIGNING_SECRET", "slack-test-secret")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("STRIPE_PRICE_STARTER", "price_starter")
os.environ.setdefault("STRIPE_PRICE_GROWTH", "price_growth")
os.environ.setdefault("STRIPE_PRICE_SCALE", "price_scale")

import httpx  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

# Import all models so metadata is populated
import sentinel.models  # noqa: F401, E402
from sentinel.api.deps import (  # noqa: E402
    get_audit_orchestrator,
    get_interaction_handler,
    get_payment_client,
    get_session_factory,
)
from sentinel.core.database import get_session  # noqa: E402
from sentinel.main import app  # noqa: E402
from sentinel.services.audit import AuditOrchestrator  # noqa: E402
from sentinel.services.scoring import GuestScorer  # noqa: E402
from sentinel.services.slack_actions import InteractionHandler  # noqa: E402
from tests.helpers import FakeDirectory  # noqa: E402


@pytest.fixture
async def engine(tmp_path):
    # File-backed so concurrent sessions get their own connections
    eng = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'sentinel.db'}",
        echo=False,
        connect_args={"timeout": 30},
    )

    @event.listens_for(eng.sync_engine, "connect")
    def _enable_wal(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def test_session_factory(engine):
    """Session factory bound to the test SQLite engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(test_session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as sess:
        yield sess
        await sess.rollback()


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def orchestrator(test_session_factory, directory) -> AuditOrchestrator:
    return AuditOrchestrator(
        test_session_factory,
        directory,  # type: ignore[arg-type]
        GuestScorer(directory),
        batch_size=2,
    )


@pytest.fixture
def payments() -> AsyncMock:
    """Stripe client double; ``retrieve_subscription`` is an AsyncMock."""
    client = AsyncMock()
    client.retrieve_subscription = AsyncMock()
    return client


@pytest.fixture
def slack_replies() -> list[httpx.Request]:
    return []


@pytest.fixture
async def interaction_handler(
    test_session_factory, slack_replies,
) -> AsyncGenerator[InteractionHandler, None]:
    def _record(request: httpx.Request) -> httpx.Response:
        slack_replies.append(request)
        return httpx.Response(200, json={"ok": True})

    async with httpx.AsyncClient(transport=httpx.MockTransport(_record)) as http:
        yield InteractionHandler(test_session_factory, http)


@pytest.fixture
async def client(
    test_session_factory, orchestrator, payments, interaction_handler,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client with DB and external client overrides."""

    async def _override_session():
        async with test_session_factory() as sess:
            yield sess

    app.dependency_overrides[get_session] = _override_session
    app.dependency_overrides[get_session_factory] = lambda: test_session_factory
    app.dependency_overrides[get_audit_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_payment_client] = lambda: payments
    app.dependency_overrides[get_interaction_handler] = lambda: interaction_handler

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
