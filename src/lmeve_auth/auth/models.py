"""
lmeve_auth.auth.models

Auth domain models.

Responsibilities:
- Define the authenticated identity type (`Principal`) held by the session store and
  consulted by the role resolver.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime

from lmeve_auth.auth.permissions import PermissionSet, Role


class AuthMethod(enum.StrEnum):
    esi = "esi"
    local = "local"


@dataclass(frozen=True, slots=True)
class Principal:
    """
    Authenticated actor (an EVE character or a manually provisioned account).

    Immutable: role changes, re-logins and deactivation produce a new instance via
    `dataclasses.replace`. `permissions` stays `None` until the resolver attaches it.
    """

    id: str
    display_name: str
    auth_method: AuthMethod
    role: Role
    permissions: PermissionSet | None = None

    username: str | None = None
    character_id: int | None = None
    corporation_id: int | None = None
    corporation_name: str | None = None
    alliance_id: int | None = None
    alliance_name: str | None = None

    is_org_leader: bool = False
    is_org_officer: bool = False
    scopes: tuple[str, ...] = field(default_factory=tuple)

    last_login: datetime | None = None
    session_expires_at: datetime | None = None
    is_active: bool = True

    @property
    def is_resolved(self) -> bool:
        return self.permissions is not None

    def is_session_valid(self, now: datetime) -> bool:
        if not self.is_active:
            return False
        return self.session_expires_at is None or now < self.session_expires_at


# --- Module Notes -----------------------------------------------------------
# Keep this model free of tokens: the long-lived refresh credential belongs to the
# credential registry, not to the session.
