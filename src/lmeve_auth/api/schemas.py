"""
lmeve_auth.api.schemas

Response models shared by several routers.

Responsibilities:
- Public views of principals, corporations, users, audit events and callback outcomes
  (no tokens).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from lmeve_auth.auth.models import Principal
from lmeve_auth.auth.resolver import effective_permissions
from lmeve_auth.callback.state import CallbackOutcome
from lmeve_auth.db.models import AuditEvent, Corporation, User


class PrincipalOut(BaseModel):
    id: str
    display_name: str
    auth_method: str
    role: str
    username: str | None = None
    character_id: int | None = None
    corporation_id: int | None = None
    corporation_name: str | None = None
    alliance_id: int | None = None
    alliance_name: str | None = None
    is_org_leader: bool = False
    is_org_officer: bool = False
    scopes: list[str] = Field(default_factory=list)
    last_login: datetime | None = None
    session_expires_at: datetime | None = None
    permissions: dict[str, bool] = Field(default_factory=dict)

    @classmethod
    def from_principal(cls, p: Principal) -> PrincipalOut:
        return cls(
            id=p.id,
            display_name=p.display_name,
            auth_method=p.auth_method.value,
            role=p.role.value,
            username=p.username,
            character_id=p.character_id,
            corporation_id=p.corporation_id,
            corporation_name=p.corporation_name,
            alliance_id=p.alliance_id,
            alliance_name=p.alliance_name,
            is_org_leader=p.is_org_leader,
            is_org_officer=p.is_org_officer,
            scopes=list(p.scopes),
            last_login=p.last_login,
            session_expires_at=p.session_expires_at,
            permissions=effective_permissions(p).to_dict(),
        )


class SessionOut(BaseModel):
    principal: PrincipalOut
    session_token: str
    token_type: str = "bearer"


class RegistrationOut(BaseModel):
    ticket: str
    corporation_id: int
    corporation_name: str
    corporation_ticker: str | None = None
    character_id: int
    character_name: str
    can_register: bool


class CallbackOutcomeOut(BaseModel):
    status: str
    message: str | None = None
    error_kind: str | None = None
    principal: PrincipalOut | None = None
    registration: RegistrationOut | None = None
    session_token: str | None = None

    @classmethod
    def from_outcome(
        cls, outcome: CallbackOutcome, *, session_token: str | None = None
    ) -> CallbackOutcomeOut:
        reg = outcome.registration
        return cls(
            status=outcome.status.value,
            message=outcome.message,
            error_kind=outcome.error_kind,
            principal=PrincipalOut.from_principal(outcome.principal) if outcome.principal else None,
            registration=RegistrationOut(
                ticket=reg.ticket,
                corporation_id=reg.corporation_id,
                corporation_name=reg.corporation_name,
                corporation_ticker=reg.corporation_ticker,
                character_id=reg.character_id,
                character_name=reg.character_name,
                can_register=reg.can_register,
            )
            if reg
            else None,
            session_token=session_token,
        )


class CorporationOut(BaseModel):
    corporation_id: int
    name: str
    ticker: str | None = None
    scopes: list[str] = Field(default_factory=list)
    registered_by: int
    registered_at: datetime
    last_refresh_at: datetime | None = None
    is_active: bool
    is_configured: bool
    member_count: int | None = None

    @classmethod
    def from_row(cls, c: Corporation) -> CorporationOut:
        return cls(
            corporation_id=c.corporation_id,
            name=c.name,
            ticker=c.ticker,
            scopes=list(c.scopes or []),
            registered_by=c.registered_by,
            registered_at=c.registered_at,
            last_refresh_at=c.last_refresh_at,
            is_active=c.is_active,
            is_configured=c.is_configured,
            member_count=c.member_count,
        )


class UserOut(BaseModel):
    id: str
    display_name: str
    username: str | None = None
    auth_method: str
    role: str
    character_id: int | None = None
    corporation_id: int | None = None
    corporation_name: str | None = None
    is_active: bool
    last_login: datetime | None = None
    created_at: datetime

    @classmethod
    def from_row(cls, u: User) -> UserOut:
        return cls(
            id=u.id,
            display_name=u.display_name,
            username=u.username,
            auth_method=u.auth_method,
            role=u.role,
            character_id=u.character_id,
            corporation_id=u.corporation_id,
            corporation_name=u.corporation_name,
            is_active=u.is_active,
            last_login=u.last_login,
            created_at=u.created_at,
        )


class AuditEventOut(BaseModel):
    actor: str
    event_type: str
    subject: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_row(cls, e: AuditEvent) -> AuditEventOut:
        return cls(
            actor=e.actor,
            event_type=e.event_type,
            subject=e.subject,
            details=dict(e.details or {}),
            created_at=e.created_at,
        )
