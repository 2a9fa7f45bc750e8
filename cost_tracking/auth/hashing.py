"""
API key hashing utilities.

Security notes:
  • SHA-256 is used for key hashing — acceptable for API keys because
    they are high-entropy random strings (not low-entropy passwords).
  • Raw keys use the ct_admin_ prefix (convention, not security).
  • generate_api_key() returns the raw key exactly once — the caller
    must display it to the user immediately. It is never stored.
"""

import hashlib
import secrets


_KEY_PREFIX = "ct_admin_"


def hash_api_key(raw_key: str) -> str:
    """Return the SHA-256 hex digest used for storage and lookup."""
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key(prefix: str = _KEY_PREFIX) -> tuple[str, str]:
    """
    Generate a new API key.

    Returns:
        (raw_key, key_hash) — raw_key is shown once, key_hash is stored.
    """
    raw_key = f"{prefix}{secrets.token_hex(32)}"
    return raw_key, hash_api_key(raw_key)
