"""
SQLAlchemy model for the `transactions` table.

Each row is one billing transaction written by the chat backend when an
LLM call is charged. This service only reads it.

Design notes:
  • estimated_cost_usd uses NUMERIC(18,10) — exact decimal, no float rounding.
    Rows with NULL or non-positive cost never reach a report.
  • agent_id is either a persisted agent id (prefixed) or an ephemeral
    id that encodes endpoint + model for a one-off session.
  • raw_amount is signed; reports sum its absolute value as input tokens.
"""

import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, DateTime, Index, Integer, Numeric, String
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from cost_tracking.core.database import Base


class Transaction(Base):
    """One charged LLM call."""

    __tablename__ = "transactions"

    # ── Primary key ─────────────────────────────────────────
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # ── Who / where ─────────────────────────────────────────
    user: Mapped[str] = mapped_column(String(255), nullable=False)
    conversation_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    agent_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # ── Backend ─────────────────────────────────────────────
    token_type: Mapped[str] = mapped_column(String(20), nullable=False, default="prompt")
    model: Mapped[str | None] = mapped_column(String(255), nullable=True)
    provider: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # ── Amounts ─────────────────────────────────────────────
    raw_amount: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    estimated_cost_usd: Mapped[Decimal | None] = mapped_column(
        Numeric(18, 10),
        nullable=True,
    )

    # ── Timestamp ───────────────────────────────────────────
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_transactions_created_at", "created_at"),
        Index("ix_transactions_agent_id", "agent_id"),
        Index("ix_transactions_conversation_id", "conversation_id"),
        Index("ix_transactions_user", "user"),
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction id={self.id} agent={self.agent_id} "
            f"cost=${self.estimated_cost_usd}>"
        )
