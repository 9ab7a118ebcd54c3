"""
lmeve_auth.callback.state

Typed state and result types for the SSO callback state machine.

Responsibilities:
- Define the contract between graph nodes (`CallbackState`).
- Define the terminal result handed to callers (`CallbackOutcome`) and the registration
  prompt shown when a corporation still has to be registered.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Annotated, Any, TypedDict

from lmeve_auth.auth.models import Principal
from lmeve_auth.callback.reducers import append_audit
from lmeve_auth.sso.models import VerifiedIdentity


class CallbackStatus(enum.StrEnum):
    processing = "processing"
    success = "success"
    error = "error"
    registration_required = "registration_required"


class CallbackState(TypedDict, total=False):
    # Redirect parameters
    code: str | None
    anti_forgery_state: str | None
    provider_error: str | None

    # Derived from the pending login request
    verifier: str

    # Exchange result
    identity: VerifiedIdentity
    prospective: Principal
    configured: bool

    # Outcome
    principal: Principal
    status: str
    error_kind: str | None
    error_message: str | None

    # Audit
    audit_log: Annotated[list[dict[str, Any]], append_audit]


@dataclass(frozen=True, slots=True)
class CallbackParams:
    """Query parameters of one provider redirect."""

    code: str | None = None
    state: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class RegistrationPrompt:
    ticket: str
    corporation_id: int
    corporation_name: str
    corporation_ticker: str | None
    character_id: int
    character_name: str
    can_register: bool


@dataclass(frozen=True, slots=True)
class CallbackOutcome:
    status: CallbackStatus
    message: str | None = None
    error_kind: str | None = None
    principal: Principal | None = None
    registration: RegistrationPrompt | None = None

    @classmethod
    def error(cls, kind: str, message: str) -> CallbackOutcome:
        return cls(status=CallbackStatus.error, error_kind=str(kind), message=message)


# --- Module Notes -----------------------------------------------------------
# `CallbackState` lives for one graph invocation only; the refresh token inside
# `identity` outlives it only through the service's pending-registration ticket.
