"""
Conversation model — only the columns the name resolver needs.

agent_id points at whichever agent the conversation was last saved
with; it can be a persisted or an ephemeral id and may lag behind the
agent ids recorded on later transactions.
"""

import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from cost_tracking.core.database import Base


class Conversation(Base):
    """One chat conversation."""

    __tablename__ = "conversations"

    conversation_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    user: Mapped[str | None] = mapped_column(String(255), nullable=True)
    agent_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Conversation id={self.conversation_id} agent={self.agent_id}>"
