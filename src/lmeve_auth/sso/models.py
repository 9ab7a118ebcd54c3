"""
lmeve_auth.sso.models

Value types exchanged with the EVE SSO collaborator.

Responsibilities:
- `TokenSet`: the token endpoint response.
- `VerifiedIdentity`: the verified character/corporation payload produced by a code exchange,
  including the long-lived refresh credential needed for corporation registration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any


@dataclass(frozen=True, slots=True)
class TokenSet:
    access_token: str = field(repr=False)
    refresh_token: str | None = field(repr=False)
    expires_at: datetime
    scopes: tuple[str, ...] = ()

    @classmethod
    def from_response(cls, data: dict[str, Any], *, now: datetime | None = None) -> TokenSet:
        issued = now or datetime.now(tz=UTC)
        scope = data.get("scope") or ""
        return cls(
            access_token=str(data["access_token"]),
            refresh_token=data.get("refresh_token"),
            expires_at=issued + timedelta(seconds=int(data.get("expires_in", 1200))),
            scopes=tuple(s for s in str(scope).split(" ") if s),
        )


@dataclass(frozen=True, slots=True)
class VerifiedIdentity:
    character_id: int
    character_name: str
    corporation_id: int
    corporation_name: str
    corporation_ticker: str | None = None
    alliance_id: int | None = None
    alliance_name: str | None = None
    member_count: int | None = None

    scopes: tuple[str, ...] = ()
    provider_roles: tuple[str, ...] = ()
    is_org_leader: bool = False
    is_org_officer: bool = False

    access_token: str | None = field(default=None, repr=False)
    refresh_token: str | None = field(default=None, repr=False)
    token_expires_at: datetime | None = None
