"""
Dev bootstrap script — create an admin API key for the cost-tracking API.

Usage:
    python -m scripts.bootstrap_dev [label]

This will:
  1. Generate an API key with the admin role
  2. Store only its SHA-256 hash
  3. Print the raw key ONCE (it is never stored)

Run `alembic upgrade head` first so the api_keys table exists.
"""

import asyncio
import sys

from cost_tracking.auth.hashing import generate_api_key
from cost_tracking.core.database import async_session_factory, engine
from cost_tracking.models.api_key import ROLE_ADMIN, APIKey


async def main(label: str) -> None:
    raw_key, key_hash = generate_api_key()

    async with async_session_factory() as session:
        api_key = APIKey(
            key_hash=key_hash,
            prefix=raw_key[:12],
            label=label,
            role=ROLE_ADMIN,
        )
        session.add(api_key)
        await session.commit()

    # ── Print results ───────────────────────────────────────
    print()
    print("=" * 60)
    print("  Admin key created")
    print("=" * 60)
    print()
    print(f"  Label:      {label}")
    print(f"  Key ID:     {api_key.id}")
    print()
    print(f"  API Key:    {raw_key}")
    print()
    print("  ⚠  Copy this key now — it will NEVER be shown again.")
    print("=" * 60)
    print()

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "Dev Admin"))
