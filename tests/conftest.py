"""Pytest fixtures for cost-tracking tests.

Every test gets its own in-memory SQLite database (aiosqlite + StaticPool,
so all sessions share one connection). HTTP tests run the FastAPI app
in-process through httpx's ASGITransport with get_db_session overridden.
"""

import datetime
import os

# Settings are read at import time; point them at SQLite before any
# cost_tracking module is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cost_tracking.auth.hashing import hash_api_key
from cost_tracking.core.database import Base, get_db_session
from cost_tracking.main import app
from cost_tracking.models.agent import Agent
from cost_tracking.models.api_key import ROLE_ADMIN, ROLE_USER, APIKey
from cost_tracking.models.conversation import Conversation  # noqa: F401  (registers the table)
from cost_tracking.models.transaction import Transaction

UTC = datetime.timezone.utc

# Fixed "now" for trailing-window assertions (a Saturday).
NOW = datetime.datetime(2026, 10, 17, 12, 0, tzinfo=UTC)

ADMIN_KEY = "ct_admin_test-admin-key"
USER_KEY = "ct_admin_test-user-key"
INACTIVE_KEY = "ct_admin_test-inactive-key"


def at(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime.datetime:
    """UTC timestamp shorthand."""
    return datetime.datetime(year, month, day, hour, minute, tzinfo=UTC)


def make_transaction(
    agent_id: str | None,
    cost: float | None,
    created_at: datetime.datetime,
    *,
    user: str = "user-1",
    conversation_id: str | None = None,
    model: str | None = "gpt-4o",
    provider: str | None = "openai",
    raw_amount: int | None = -100,
) -> Transaction:
    return Transaction(
        user=user,
        agent_id=agent_id,
        estimated_cost_usd=cost,
        created_at=created_at,
        conversation_id=conversation_id,
        model=model,
        provider=provider,
        raw_amount=raw_amount,
        token_type="prompt",
    )


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seeded(session):
    """
    A small billing history, all rows carrying an agent id.

      agent_support   1.50 on 2026-10-16, 2.50 on 2026-10-05
      ephemeral_X     3.00 on 2026-08-01
      agent_research  0.25 on 2026-10-12 (+ one zero-cost row)
      agent_support   one row with no cost at all
    """
    session.add_all(
        [
            Agent(
                id="agent_support",
                name="Support Bot",
                versions=[{"model": "gpt-4o-mini"}, {"model": "gpt-4o"}],
                created_at=at(2026, 1, 1),
            ),
            Agent(
                id="agent_research",
                name="Research Assistant",
                versions=[{"model": "claude-3-opus"}],
                created_at=at(2026, 1, 2),
            ),
            make_transaction(
                "agent_support", 1.5, at(2026, 10, 16, 10),
                user="user-1", conversation_id="c1",
                model="gpt-4o", provider="openai", raw_amount=-100,
            ),
            make_transaction(
                "agent_support", 2.5, at(2026, 10, 5, 9),
                user="user-2", conversation_id="c2",
                model="gpt-4o-mini", provider="openai", raw_amount=-200,
            ),
            make_transaction(
                "ephemeral_X", 3.0, at(2026, 8, 1, 8),
                user="user-1", model="claude-3-haiku",
                provider="anthropic", raw_amount=-50,
            ),
            make_transaction(
                "agent_research", 0.25, at(2026, 10, 12, 0, 30),
                user="user-3", conversation_id="c3",
                model="claude-3-opus", provider="anthropic", raw_amount=300,
            ),
            make_transaction(
                "agent_research", 0, at(2026, 10, 15),
                user="user-9", model="claude-3-opus",
            ),
            make_transaction(
                "agent_support", None, at(2026, 10, 15),
                user="user-9", model="gpt-4o",
            ),
        ]
    )
    await session.commit()
    return session


@pytest.fixture
async def api_keys(session):
    session.add_all(
        [
            APIKey(key_hash=hash_api_key(ADMIN_KEY), prefix=ADMIN_KEY[:12], label="admin", role=ROLE_ADMIN),
            APIKey(key_hash=hash_api_key(USER_KEY), prefix=USER_KEY[:12], label="user", role=ROLE_USER),
            APIKey(
                key_hash=hash_api_key(INACTIVE_KEY),
                prefix=INACTIVE_KEY[:12],
                label="revoked",
                role=ROLE_ADMIN,
                is_active=False,
            ),
        ]
    )
    await session.commit()


@pytest.fixture
def admin_headers(api_keys):
    return {"Authorization": f"Bearer {ADMIN_KEY}"}


@pytest.fixture
async def client(session_factory):
    async def _session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = _session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()

