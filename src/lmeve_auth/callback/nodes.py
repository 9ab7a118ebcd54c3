"""
lmeve_auth.callback.nodes

Graph nodes and routing functions for the SSO callback.

Nodes return partial state updates. Failures are recorded as `error_kind`/`error_message`
and routed to `fail_node`; only unexpected (non-auth) exceptions propagate.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Literal

from lmeve_auth.auth.errors import (
    AuthError,
    ExchangeFailed,
    MissingParameters,
    OrganizationNotRegistered,
    ProviderDenied,
    ProviderError,
)
from lmeve_auth.auth.models import AuthMethod, Principal
from lmeve_auth.auth.permissions import role_from_provider_roles
from lmeve_auth.callback.state import CallbackState, CallbackStatus
from lmeve_auth.observability.logging import get_logger
from lmeve_auth.services.user_directory import sso_user_id
from lmeve_auth.sso.exchange import IdentityExchange
from lmeve_auth.sso.login_state import LoginStateStore
from lmeve_auth.sso.models import VerifiedIdentity

log = get_logger(__name__)

IsConfigured = Callable[[int], Awaitable[bool]]
CommitLogin = Callable[[VerifiedIdentity, Principal], Awaitable[Principal]]


def _audit(event: str, **details: Any) -> list[dict[str, Any]]:
    return [{"event": event, "details": details}]


def _failed(err: AuthError, *, event: str) -> CallbackState:
    return {
        "error_kind": err.kind.value,
        "error_message": err.message,
        "audit_log": _audit(event, error_kind=err.kind.value),
    }


def prospective_principal(identity: VerifiedIdentity) -> Principal:
    """
    Principal the character would become on login. Role comes from the provider's
    corporation roles; permissions are attached later by the session store.
    """

    return Principal(
        id=sso_user_id(identity.character_id),
        display_name=identity.character_name,
        auth_method=AuthMethod.esi,
        role=role_from_provider_roles(identity.provider_roles, is_ceo=identity.is_org_leader),
        character_id=identity.character_id,
        corporation_id=identity.corporation_id,
        corporation_name=identity.corporation_name,
        alliance_id=identity.alliance_id,
        alliance_name=identity.alliance_name,
        is_org_leader=identity.is_org_leader,
        is_org_officer=identity.is_org_officer,
        scopes=identity.scopes,
    )


async def validate_params_node(
    state: CallbackState, *, login_states: LoginStateStore
) -> CallbackState:
    provider_error = state.get("provider_error")
    try:
        if provider_error:
            if provider_error == "access_denied":
                raise ProviderDenied()
            raise ProviderError(provider_error)

        code = state.get("code")
        anti_forgery = state.get("anti_forgery_state")
        if not code or not anti_forgery:
            raise MissingParameters()

        request = login_states.consume(anti_forgery)
    except AuthError as e:
        return _failed(e, event="PARAMS_REJECTED")

    return {
        "verifier": request.verifier,
        "status": CallbackStatus.processing.value,
        "audit_log": _audit("PARAMS_VALIDATED"),
    }


async def exchange_node(
    state: CallbackState, *, exchange: IdentityExchange, timeout_seconds: float
) -> CallbackState:
    try:
        async with asyncio.timeout(timeout_seconds):
            identity = await exchange.exchange(code=str(state["code"]), verifier=state["verifier"])
    except TimeoutError:
        return _failed(ExchangeFailed("Token exchange timed out"), event="EXCHANGE_FAILED")
    except OrganizationNotRegistered as e:
        return {
            "identity": e.identity,
            "prospective": prospective_principal(e.identity),
            "configured": False,
            "audit_log": _audit(
                "EXCHANGE_COMPLETED",
                character_id=e.identity.character_id,
                corporation_id=e.identity.corporation_id,
                registered=False,
            ),
        }
    except AuthError as e:
        return _failed(e, event="EXCHANGE_FAILED")

    return {
        "identity": identity,
        "prospective": prospective_principal(identity),
        "audit_log": _audit(
            "EXCHANGE_COMPLETED",
            character_id=identity.character_id,
            corporation_id=identity.corporation_id,
        ),
    }


async def check_registration_node(
    state: CallbackState, *, is_configured: IsConfigured
) -> CallbackState:
    corporation_id = state["identity"].corporation_id
    configured = await is_configured(corporation_id)
    return {
        "configured": configured,
        "audit_log": _audit(
            "REGISTRATION_CHECKED", corporation_id=corporation_id, configured=configured
        ),
    }


async def finalize_node(state: CallbackState, *, commit_login: CommitLogin) -> CallbackState:
    try:
        principal = await commit_login(state["identity"], state["prospective"])
    except AuthError as e:
        return _failed(e, event="LOGIN_REJECTED")
    return {
        "principal": principal,
        "status": CallbackStatus.success.value,
        "error_kind": None,
        "error_message": None,
        "audit_log": _audit(
            "LOGIN_COMPLETED", principal_id=principal.id, role=principal.role.value
        ),
    }


async def registration_required_node(state: CallbackState) -> CallbackState:
    identity = state["identity"]
    return {
        "status": CallbackStatus.registration_required.value,
        "audit_log": _audit(
            "REGISTRATION_REQUIRED",
            corporation_id=identity.corporation_id,
            character_id=identity.character_id,
        ),
    }


async def fail_node(state: CallbackState) -> CallbackState:
    log.info(
        "callback_failed",
        error_kind=state.get("error_kind"),
        error_message=state.get("error_message"),
    )
    return {
        "status": CallbackStatus.error.value,
        "audit_log": _audit("CALLBACK_FAILED", error_kind=state.get("error_kind")),
    }


def _has_error(state: CallbackState) -> bool:
    return bool(state.get("error_kind"))


def route_after_validate(state: CallbackState) -> Literal["exchange", "fail"]:
    return "fail" if _has_error(state) else "exchange"


def route_after_exchange(
    state: CallbackState,
) -> Literal["check_registration", "registration_required", "fail"]:
    if _has_error(state):
        return "fail"
    # The exchange already reported the corporation as unregistered.
    if state.get("configured") is False:
        return "registration_required"
    return "check_registration"


def route_after_check(state: CallbackState) -> Literal["finalize", "registration_required"]:
    return "finalize" if state.get("configured") else "registration_required"


def route_after_finalize(state: CallbackState) -> Literal["fail", "done"]:
    return "fail" if _has_error(state) else "done"
