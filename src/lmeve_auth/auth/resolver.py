"""
lmeve_auth.auth.resolver

Role resolver: attach permission sets to principals and answer capability queries.

Responsibilities:
- Resolve a principal's role into its stored `PermissionSet` (login, role change, session
  reload only).
- Answer single-capability queries without ever raising for an absent principal.
- Gate dashboard tabs and settings tabs on capabilities.
"""

from __future__ import annotations

import dataclasses

from lmeve_auth.auth.models import Principal
from lmeve_auth.auth.permissions import Capability, PermissionSet, Role, parse_role, permissions_for


def resolve(principal: Principal) -> Principal:
    # Raises InvalidRole for a role outside the enumeration (programming error).
    role = parse_role(principal.role)
    return dataclasses.replace(principal, role=role, permissions=permissions_for(role))


def has_permission(principal: Principal | None, capability: Capability | str) -> bool:
    if principal is None:
        return False
    cap = Capability.parse(capability)
    if not principal.is_active or principal.permissions is None:
        return False
    return principal.permissions.allows(cap)


def has_any_permission(principal: Principal | None, *capabilities: Capability | str) -> bool:
    return any(has_permission(principal, c) for c in capabilities)


def effective_permissions(principal: Principal | None) -> PermissionSet:
    if principal is None or not principal.is_active or principal.permissions is None:
        return PermissionSet.none()
    return principal.permissions


def meets_role(principal: Principal | None, minimum: Role) -> bool:
    if principal is None or not principal.is_active:
        return False
    return parse_role(principal.role).rank >= minimum.rank


_TAB_RULES: dict[str, tuple[Capability, ...]] = {
    "members": (Capability.view_all_members,),
    "assets": (Capability.manage_assets,),
    "manufacturing": (Capability.manage_manufacturing,),
    "mining": (Capability.manage_mining,),
    "logistics": (Capability.manage_assets,),
    "killmails": (Capability.view_killmails,),
    "market": (Capability.manage_market,),
    "income": (Capability.manage_income, Capability.view_financials),
    "notifications": (Capability.manage_corp, Capability.manage_system),
    "corporations": (Capability.manage_system, Capability.configure_esi),
    "debug": (Capability.manage_system,),
    "settings": (Capability.manage_corp, Capability.manage_system),
}

_SETTINGS_TAB_RULES: dict[str, tuple[Capability, ...]] = {
    "general": (Capability.manage_corp, Capability.manage_system),
    "database": (Capability.manage_database,),
    "sde": (Capability.manage_system, Capability.manage_database),
    "esi": (Capability.configure_esi,),
    "sync": (Capability.manage_corp, Capability.manage_system),
    "notifications": (Capability.manage_corp,),
    "users": (Capability.manage_users,),
    "debug": (Capability.manage_system,),
}


def can_access_tab(principal: Principal | None, tab: str) -> bool:
    if principal is None or not principal.is_active:
        # Only the dashboard is visible without authentication.
        return tab == "dashboard"
    if tab == "dashboard":
        return True
    rule = _TAB_RULES.get(tab)
    return rule is not None and has_any_permission(principal, *rule)


def can_access_settings_tab(principal: Principal | None, tab: str) -> bool:
    rule = _SETTINGS_TAB_RULES.get(tab)
    return rule is not None and has_any_permission(principal, *rule)


def known_tabs() -> list[str]:
    return ["dashboard", *_TAB_RULES]


# --- Module Notes -----------------------------------------------------------
# Permission sets are read from the principal, never recomputed per query; re-resolution
# happens only through `resolve`.
