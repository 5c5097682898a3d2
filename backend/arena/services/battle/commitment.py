"""Commit-reveal codec binding a player to a hidden action."""

import hashlib
import hmac
import secrets

SALT_BYTES = 16


def generate_salt(num_bytes: int = SALT_BYTES) -> str:
    """Fresh hex-encoded salt; clients normally generate their own."""
    return secrets.token_hex(num_bytes)


def commit(action: str, salt: str) -> str:
    """SHA-256 hex digest of ``action + salt``.

    The plain concatenation matches what browser clients compute, so a
    commitment made client-side verifies here unchanged.
    """
    return hashlib.sha256(f"{action}{salt}".encode("utf-8")).hexdigest()


def verify(action: str, salt: str, commit_hash: str) -> bool:
    if not commit_hash or salt is None:
        return False
    return hmac.compare_digest(commit(action, salt), commit_hash.lower())
