"""
lmeve_auth.auth.passwords

bcrypt helpers for manually provisioned (local) accounts.
"""

from __future__ import annotations

import bcrypt


def hash_password(password: str, *, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("ascii")


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        # SSO accounts have no local password.
        return False
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("ascii"))
