"""
lmeve_auth.api.routers.permissions

Permission queries for the UI: the current principal's capability set, single-capability
checks, the role matrix and tab gates.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from lmeve_auth.auth.deps import current_principal
from lmeve_auth.auth.models import Principal
from lmeve_auth.auth.permissions import ROLE_DEFINITIONS, Capability, Role
from lmeve_auth.auth.resolver import (
    can_access_settings_tab,
    can_access_tab,
    effective_permissions,
    has_permission,
    known_tabs,
)

router = APIRouter(prefix="/v1/permissions", tags=["permissions"])


@router.get("")
async def my_permissions(
    principal: Principal | None = Depends(current_principal),
) -> dict[str, Any]:
    perms = effective_permissions(principal)
    return {
        "authenticated": principal is not None,
        "role": principal.role.value if principal is not None else None,
        "permissions": perms.to_dict(),
        "tabs": [t for t in known_tabs() if can_access_tab(principal, t)],
    }


# Registered before "/{capability}" so the literal paths win.
@router.get("/matrix")
async def role_matrix() -> dict[str, Any]:
    return {
        "roles": [r.value for r in sorted(Role, key=lambda r: r.rank, reverse=True)],
        "capabilities": [c.value for c in Capability],
        "matrix": {role.value: perms.to_dict() for role, perms in ROLE_DEFINITIONS.items()},
    }


@router.get("/tabs/{tab}")
async def tab_access(
    tab: str,
    settings_tab: bool = False,
    principal: Principal | None = Depends(current_principal),
) -> dict[str, Any]:
    allowed = (
        can_access_settings_tab(principal, tab)
        if settings_tab
        else can_access_tab(principal, tab)
    )
    return {"tab": tab, "settings_tab": settings_tab, "allowed": allowed}


@router.get("/{capability}")
async def check_capability(
    capability: str,
    principal: Principal | None = Depends(current_principal),
) -> dict[str, Any]:
    # Unknown names raise InvalidCapability (HTTP 400 via the app error handler).
    cap = Capability.parse(capability)
    return {"capability": cap.value, "allowed": has_permission(principal, cap)}
