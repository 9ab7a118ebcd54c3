"""
lmeve_auth.sso.login_state

Pending SSO login requests (anti-forgery state + PKCE).

Responsibilities:
- Generate the `state` token and PKCE verifier/challenge (S256) for each login.
- Validate and consume the `state` returned on the callback exactly once.
- Expire requests that were not completed within the configured window.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from lmeve_auth.auth.errors import InvalidState, StateExpired


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def pkce_challenge(verifier: str) -> str:
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


@dataclass(frozen=True, slots=True)
class LoginRequest:
    state: str
    verifier: str = field(repr=False)
    challenge: str
    created_at: datetime
    corporation_id: int | None = None


class LoginStateStore:
    def __init__(
        self,
        *,
        ttl: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._ttl = ttl
        self._clock = clock
        self._pending: dict[str, LoginRequest] = {}

    def begin(self, *, corporation_id: int | None = None) -> LoginRequest:
        self._prune()
        verifier = _b64url(secrets.token_bytes(32))
        request = LoginRequest(
            state=_b64url(secrets.token_bytes(16)),
            verifier=verifier,
            challenge=pkce_challenge(verifier),
            created_at=self._clock(),
            corporation_id=corporation_id,
        )
        self._pending[request.state] = request
        return request

    def consume(self, state: str) -> LoginRequest:
        # Single use: a replayed state is rejected even if it was valid once.
        request = self._pending.pop(state, None)
        if request is None:
            raise InvalidState()
        if self._clock() - request.created_at > self._ttl:
            raise StateExpired()
        return request

    def __len__(self) -> int:
        return len(self._pending)

    def _prune(self) -> None:
        cutoff = self._clock() - self._ttl
        for key in [k for k, r in self._pending.items() if r.created_at < cutoff]:
            del self._pending[key]


# --- Module Notes -----------------------------------------------------------
# The verifier never leaves the server; only the challenge goes to the provider.
