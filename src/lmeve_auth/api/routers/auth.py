"""
lmeve_auth.api.routers.auth

Authentication endpoints: SSO login/callback (and its cancellation), pending corporation
registrations, local credential login, logout and persisted-session reload.
"""

from __future__ import annotations

import dataclasses
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_401_UNAUTHORIZED

from lmeve_auth.api.deps import (
    callback_dep,
    db_session,
    login_states_dep,
    settings_dep,
    sso_client_dep,
)
from lmeve_auth.api.schemas import CallbackOutcomeOut, PrincipalOut, SessionOut
from lmeve_auth.auth.deps import get_principal, session_store_dep
from lmeve_auth.auth.jwt import (
    JwtConfig,
    JwtValidationError,
    decode_and_validate,
    issue_session_token,
)
from lmeve_auth.auth.models import Principal
from lmeve_auth.auth.session import SessionStore
from lmeve_auth.callback.state import CallbackOutcome, CallbackParams, CallbackStatus
from lmeve_auth.services.callback_service import CallbackStateMachine
from lmeve_auth.services.credential_registry import CredentialRegistry
from lmeve_auth.services.user_directory import UserDirectory, principal_from_user
from lmeve_auth.settings import Settings
from lmeve_auth.sso.client import EveSsoClient
from lmeve_auth.sso.login_state import LoginStateStore

router = APIRouter(prefix="/v1/auth", tags=["auth"])

_bearer = HTTPBearer(auto_error=False)


class SsoLoginRequest(BaseModel):
    corporation_id: int | None = None
    scopes: list[str] | None = None


class SsoLoginResponse(BaseModel):
    authorize_url: str
    state: str


class RegisterRequest(BaseModel):
    # Defaults to the scopes granted during the SSO login.
    scopes: list[str] | None = None


class LocalLoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=128)
    # bcrypt only considers the first 72 bytes.
    password: str = Field(min_length=1, max_length=72)


def _session_token(settings: Settings, principal: Principal) -> str:
    return issue_session_token(
        cfg=JwtConfig.from_settings(settings),
        subject=principal.id,
        role=principal.role.value,
        expires_at=principal.session_expires_at,
    )


def _outcome_out(settings: Settings, outcome: CallbackOutcome) -> CallbackOutcomeOut:
    token = None
    if outcome.status == CallbackStatus.success and outcome.principal is not None:
        token = _session_token(settings, outcome.principal)
    return CallbackOutcomeOut.from_outcome(outcome, session_token=token)


@router.post("/sso/login", response_model=SsoLoginResponse)
async def begin_sso_login(
    body: SsoLoginRequest | None = None,
    login_states: LoginStateStore = Depends(login_states_dep),
    client: EveSsoClient = Depends(sso_client_dep),
    session: AsyncSession = Depends(db_session),
) -> SsoLoginResponse:
    body = body or SsoLoginRequest()
    client_id = None
    if body.corporation_id is not None:
        corp = await CredentialRegistry(session=session).get(body.corporation_id)
        client_id = corp.client_id if corp is not None else None

    request = login_states.begin(corporation_id=body.corporation_id)
    url = client.authorize_url(
        state=request.state,
        challenge=request.challenge,
        scopes=body.scopes,
        client_id=client_id,
    )
    return SsoLoginResponse(authorize_url=url, state=request.state)


@router.get("/callback", response_model=CallbackOutcomeOut)
async def sso_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    machine: CallbackStateMachine = Depends(callback_dep),
    settings: Settings = Depends(settings_dep),
) -> CallbackOutcomeOut:
    outcome = await machine.handle(
        CallbackParams(code=code or None, state=state or None, error=error or None)
    )
    return _outcome_out(settings, outcome)


@router.delete("/callback")
async def cancel_callback(
    machine: CallbackStateMachine = Depends(callback_dep),
) -> dict[str, str | bool]:
    # The UI navigated away: whatever is in flight finishes as callback_cancelled.
    in_flight = machine.in_flight
    machine.cancel()
    return {"status": "cancelled", "in_flight": in_flight}


@router.post("/registrations/{ticket}", response_model=CallbackOutcomeOut)
async def register_corporation(
    ticket: str,
    body: RegisterRequest | None = None,
    machine: CallbackStateMachine = Depends(callback_dep),
    settings: Settings = Depends(settings_dep),
) -> CallbackOutcomeOut:
    scopes = body.scopes if body is not None else None
    outcome = await machine.register_and_finalize(ticket, scopes=scopes)
    return _outcome_out(settings, outcome)


@router.post("/registrations/{ticket}/finalize", response_model=CallbackOutcomeOut)
async def finalize_registration(
    ticket: str,
    machine: CallbackStateMachine = Depends(callback_dep),
    settings: Settings = Depends(settings_dep),
) -> CallbackOutcomeOut:
    return _outcome_out(settings, await machine.finalize(ticket))


@router.delete("/registrations/{ticket}", response_model=CallbackOutcomeOut)
async def abandon_registration(
    ticket: str,
    machine: CallbackStateMachine = Depends(callback_dep),
    settings: Settings = Depends(settings_dep),
) -> CallbackOutcomeOut:
    return _outcome_out(settings, machine.abandon(ticket))


@router.post("/login", response_model=SessionOut)
async def local_login(
    body: LocalLoginRequest,
    store: SessionStore = Depends(session_store_dep),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> SessionOut:
    directory = UserDirectory(session=session, bcrypt_rounds=settings.bcrypt_rounds)
    # InvalidCredentials / AccountDisabled are mapped by the app's error handler.
    user = await directory.authenticate_local(body.username, body.password)
    principal = store.login(principal_from_user(user))
    return SessionOut(
        principal=PrincipalOut.from_principal(principal),
        session_token=_session_token(settings, principal),
    )


@router.post("/logout")
async def logout(store: SessionStore = Depends(session_store_dep)) -> dict[str, str]:
    store.logout()
    return {"status": "logged_out"}


@router.get("/me", response_model=PrincipalOut)
async def me(principal: Principal = Depends(get_principal)) -> PrincipalOut:
    return PrincipalOut.from_principal(principal)


@router.post("/session/restore", response_model=SessionOut)
async def restore_session(
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
    store: SessionStore = Depends(session_store_dep),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> SessionOut:
    if creds is None or not creds.credentials:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    try:
        cfg = JwtConfig.from_settings(settings)
        payload = decode_and_validate(cfg=cfg, token=creds.credentials)
    except JwtValidationError as e:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {e}") from e

    user = await UserDirectory(session=session).get(str(payload["sub"]))
    if user is None:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Unknown session subject")

    # Role and permissions come from the directory, not from the token.
    expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=UTC)
    principal = store.restore(
        dataclasses.replace(principal_from_user(user), session_expires_at=expires_at)
    )
    if principal is None:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Session is no longer valid")
    return SessionOut(
        principal=PrincipalOut.from_principal(principal), session_token=creds.credentials
    )
