"""
lmeve_auth.api.errors

Map the auth error taxonomy onto HTTP responses.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
)

from lmeve_auth.auth.errors import AuthError, ErrorKind
from lmeve_auth.observability.logging import get_logger

log = get_logger(__name__)

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.missing_parameters: HTTP_400_BAD_REQUEST,
    ErrorKind.provider_denied: HTTP_400_BAD_REQUEST,
    ErrorKind.provider_error: HTTP_400_BAD_REQUEST,
    ErrorKind.invalid_state: HTTP_400_BAD_REQUEST,
    ErrorKind.state_expired: HTTP_400_BAD_REQUEST,
    ErrorKind.invalid_role: HTTP_400_BAD_REQUEST,
    ErrorKind.invalid_capability: HTTP_400_BAD_REQUEST,
    ErrorKind.scopes_empty: HTTP_400_BAD_REQUEST,
    ErrorKind.scopes_not_granted: HTTP_400_BAD_REQUEST,
    ErrorKind.missing_required_scopes: HTTP_400_BAD_REQUEST,
    ErrorKind.exchange_failed: HTTP_401_UNAUTHORIZED,
    ErrorKind.invalid_credentials: HTTP_401_UNAUTHORIZED,
    ErrorKind.organization_not_registered: HTTP_403_FORBIDDEN,
    ErrorKind.insufficient_privilege: HTTP_403_FORBIDDEN,
    ErrorKind.account_disabled: HTTP_403_FORBIDDEN,
    ErrorKind.deletion_not_allowed: HTTP_403_FORBIDDEN,
    ErrorKind.corporation_not_found: HTTP_404_NOT_FOUND,
    ErrorKind.registration_not_found: HTTP_404_NOT_FOUND,
    ErrorKind.user_not_found: HTTP_404_NOT_FOUND,
    ErrorKind.username_taken: HTTP_409_CONFLICT,
    ErrorKind.callback_in_flight: HTTP_409_CONFLICT,
    ErrorKind.callback_cancelled: HTTP_409_CONFLICT,
    ErrorKind.stale_session: HTTP_409_CONFLICT,
}


def status_for(kind: ErrorKind) -> int:
    return _STATUS_BY_KIND.get(kind, HTTP_400_BAD_REQUEST)


async def _auth_error_handler(_: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, AuthError)
    log.info("auth_error", error_kind=exc.kind.value, error_message=exc.message)
    return JSONResponse(
        status_code=status_for(exc.kind),
        content={"detail": exc.message, "error_kind": exc.kind.value},
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthError, _auth_error_handler)
