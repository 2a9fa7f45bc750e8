"""
FastAPI dependencies for admin API key authentication.

Flow:
  1. Extract Bearer token from Authorization header
  2. Hash the token (SHA-256)
  3. Look up api_keys by hash
  4. Verify is_active = true
  5. Verify role = admin
  6. Return AuthContext

Security:
  • Generic 401 for missing, unknown and inactive keys
  • 403 for a valid key without the admin role
  • Raw keys are NEVER logged
  • Hash lookup means the DB never sees the raw key
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cost_tracking.auth.hashing import hash_api_key
from cost_tracking.core.database import get_db_session
from cost_tracking.models.api_key import ROLE_ADMIN, APIKey

logger = logging.getLogger(__name__)

# Generic 401 — same message for all auth failures to avoid leaking info
_AUTH_FAILED = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or missing API key.",
    headers={"WWW-Authenticate": "Bearer"},
)

_ADMIN_REQUIRED = HTTPException(
    status_code=status.HTTP_403_FORBIDDEN,
    detail="Admin access required.",
)


@dataclass(frozen=True, slots=True)
class AuthContext:
    """Authenticated caller.

    Attributes:
        api_key_id: The API key UUID used for this request.
        role:       Role attached to that key.
        label:      Human label of the key, for logs.
    """

    api_key_id: uuid.UUID
    role: str
    label: str


async def get_current_caller(
    authorization: str | None = Header(default=None, alias="Authorization"),
    session: AsyncSession = Depends(get_db_session),
) -> AuthContext:
    """
    FastAPI dependency — resolves a Bearer token to an AuthContext.

    Raises 401 for:
      - Missing Authorization header
      - Non-Bearer scheme
      - Unknown key hash
      - Inactive key
    """

    # ── 1. Extract token ────────────────────────────────────
    if not authorization:
        raise _AUTH_FAILED

    parts = authorization.split(" ", maxsplit=1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise _AUTH_FAILED

    raw_token = parts[1].strip()
    if not raw_token:
        raise _AUTH_FAILED

    # ── 2. Hash and look up ─────────────────────────────────
    stmt = select(APIKey).where(APIKey.key_hash == hash_api_key(raw_token))
    result = await session.execute(stmt)
    api_key = result.scalar_one_or_none()

    if api_key is None:
        raise _AUTH_FAILED

    # ── 3. Check active ─────────────────────────────────────
    if not api_key.is_active:
        logger.info("Rejected inactive API key %s", api_key.prefix)
        raise _AUTH_FAILED

    return AuthContext(api_key_id=api_key.id, role=api_key.role, label=api_key.label)


async def require_admin(
    caller: AuthContext = Depends(get_current_caller),
) -> AuthContext:
    """
    FastAPI dependency — only lets admin keys through.

    Usage in routers:
        Admin = Annotated[AuthContext, Depends(require_admin)]
    """
    if caller.role != ROLE_ADMIN:
        logger.info("API key %s (role=%s) denied admin route", caller.api_key_id, caller.role)
        raise _ADMIN_REQUIRED
    return caller
