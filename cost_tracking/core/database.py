"""
Store access for the cost reports: engine, session factory, ORM base.

The reports only read. Production runs on PostgreSQL through asyncpg;
tests and local runs use SQLite through aiosqlite, which is why the
period labels in services/periods.py are dialect-aware.

  • Report queries go through a request-scoped AsyncSession from
    get_db_session; the only statement issued on the bare engine is the
    startup connectivity check in main.py.
  • Name resolution wraps each lookup in a SAVEPOINT on that session,
    so the session must not be in autocommit mode.
  • All four tables hang off one Base so Alembic autogenerate sees them.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from cost_tracking.core.config import settings

# ── Engine ──────────────────────────────────────────────────
# pre-ping so a restarted Postgres surfaces as a fresh connect, not a
# dead pooled one mid-report
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

# ── Session factory ─────────────────────────────────────────
# Report rows are plain values; nothing is committed, so expiry never matters.
async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


# ── ORM Base ────────────────────────────────────────────────
class Base(DeclarativeBase):
    """Declarative base for transactions, agents, conversations and api_keys."""


# ── Dependency ──────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    One read-only session per request.

    Leaving the block rolls back whatever transaction the reports
    opened; nothing is ever committed here.
    """
    async with async_session_factory() as session:
        yield session
