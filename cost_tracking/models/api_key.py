"""
API key model — credential for calling the cost-tracking API.

Security notes:
  • Raw API keys are NEVER stored. Only a SHA-256 hash is persisted.
  • The `prefix` column stores the first 12 characters for identification
    in logs/UI without exposing the full key.
  • `is_active` allows key revocation without deletion (audit trail).
  • Only keys with role "admin" may read cost reports.
"""

import uuid
import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, String, Text, Uuid
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from cost_tracking.core.database import Base

ROLE_ADMIN = "admin"
ROLE_USER = "user"


class APIKey(Base):
    """Hashed API key with a role."""

    __tablename__ = "api_keys"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    key_hash: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        unique=True,
    )
    prefix: Mapped[str] = mapped_column(
        String(12),
        nullable=False,
    )
    label: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
    )
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ROLE_USER,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default="true",
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'user')", name="ck_api_keys_role_valid"),
    )

    def __repr__(self) -> str:
        return (
            f"<APIKey id={self.id!s:.8} prefix={self.prefix!r} "
            f"role={self.role} active={self.is_active}>"
        )
