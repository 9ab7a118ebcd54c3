"""
lmeve_auth.auth.deps

FastAPI dependency functions for authentication and authorization.

Responsibilities:
- Expose the app-wide session store and its current principal.
- Enforce capabilities via reusable dependency factories.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from starlette.status import HTTP_401_UNAUTHORIZED

from lmeve_auth.auth.errors import InsufficientPrivilege
from lmeve_auth.auth.models import Principal
from lmeve_auth.auth.permissions import Capability
from lmeve_auth.auth.resolver import has_permission
from lmeve_auth.auth.session import SessionStore


def session_store_dep(request: Request) -> SessionStore:
    # Created in the app lifespan (`lmeve_auth.api.app.create_app`).
    return request.app.state.session_store  # type: ignore[attr-defined]


def current_principal(store: SessionStore = Depends(session_store_dep)) -> Principal | None:
    return store.current()


def get_principal(principal: Principal | None = Depends(current_principal)) -> Principal:
    # Authn: a live session is required.
    if principal is None:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return principal


def require_capability(*required: Capability | str):
    # Unknown capability names fail here, at route definition time.
    required_caps = tuple(Capability.parse(c) for c in required)

    def _dep(principal: Principal = Depends(get_principal)) -> Principal:
        # Authz: every listed capability must be granted.
        if not all(has_permission(principal, c) for c in required_caps):
            raise InsufficientPrivilege()
        return principal

    return _dep


# --- Module Notes -----------------------------------------------------------
# Session tokens are only read by `POST /v1/auth/session/restore`; every other route
# consults the session store.
