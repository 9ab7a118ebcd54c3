"""
lmeve_auth.db.models

Persistence schema for the auth core.

Responsibilities:
- Define ORM models:
  - User: persisted principals (SSO characters and local accounts)
  - Corporation: per-corporation ESI credential records (the credential registry)
  - AuditEvent: append-only trail of auth decisions
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from lmeve_auth.db.base import Base


def utcnow() -> datetime:
    # Persist naive UTC timestamps; SQLite drops tzinfo anyway.
    return datetime.now(tz=UTC).replace(tzinfo=None)


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    username: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    display_name: Mapped[str] = mapped_column(String(256), nullable=False)

    character_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, unique=True)
    corporation_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    corporation_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    alliance_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    alliance_name: Mapped[str | None] = mapped_column(String(256), nullable=True)

    # Stored as plain strings; validated against the Role/AuthMethod enums on read.
    auth_method: Mapped[str] = mapped_column(String(16), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    is_org_leader: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_org_officer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    scopes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    password_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_login: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)
    updated_by: Mapped[str | None] = mapped_column(String(36), nullable=True)


class Corporation(Base):
    __tablename__ = "corporations"

    corporation_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    ticker: Mapped[str | None] = mapped_column(String(16), nullable=True)

    # Optional override of the global SSO client id.
    client_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=False)
    scopes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    registered_by: Mapped[int] = mapped_column(BigInteger, nullable=False)
    registered_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    last_refresh_at: Mapped[datetime | None] = mapped_column(nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    member_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    @property
    def is_configured(self) -> bool:
        return bool(self.is_active and self.scopes)


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    # user id, character id or "system"
    actor: Mapped[str] = mapped_column(String(256), nullable=False)
    event_type: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    subject: Mapped[str | None] = mapped_column(String(256), nullable=True, index=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, index=True)

    __table_args__ = (Index("ix_audit_subject_created", "subject", "created_at"),)


# --- Module Notes -----------------------------------------------------------
# `Corporation.refresh_token` is the long-lived ESI credential; it never leaves the service
# through the API and is redacted from logs.
