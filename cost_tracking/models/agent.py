"""
Persisted agent model — a named bot configuration.

versions is an ordered JSON list of snapshots, each carrying at least a
`model` key. The last element is the agent's current version.
"""

import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String, Text
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from cost_tracking.core.database import Base


class Agent(Base):
    """A persisted agent with a durable id and profile."""

    __tablename__ = "agents"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    versions: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    @property
    def current_model(self) -> str | None:
        """Model of the latest version, or None when there are no versions."""
        if not self.versions:
            return None
        latest = self.versions[-1]
        if not isinstance(latest, dict):
            return None
        return latest.get("model")

    def __repr__(self) -> str:
        return f"<Agent id={self.id} name={self.name!r}>"
