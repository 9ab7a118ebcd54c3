"""
lmeve_auth.auth.permissions

Permission catalog: the static role -> capability table.

Responsibilities:
- Define the closed `Role` and `Capability` enumerations.
- Define `PermissionSet` with one required flag per capability.
- Enumerate each role's permission set independently (no inheritance between roles).
- Map EVE corporation roles reported by the provider onto a `Role`.
"""

from __future__ import annotations

import dataclasses
import enum
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from lmeve_auth.auth.errors import InvalidCapability, InvalidRole


class Role(enum.StrEnum):
    super_admin = "super_admin"
    corp_admin = "corp_admin"
    corp_director = "corp_director"
    corp_manager = "corp_manager"
    corp_member = "corp_member"
    guest = "guest"

    @property
    def rank(self) -> int:
        # Breadth order only; permission sets are not derived from each other.
        return _ROLE_RANKS[self]


_ROLE_RANKS: dict[Role, int] = {
    Role.guest: 0,
    Role.corp_member: 1,
    Role.corp_manager: 2,
    Role.corp_director: 3,
    Role.corp_admin: 4,
    Role.super_admin: 5,
}


class Capability(enum.StrEnum):
    # Member names match `PermissionSet` fields; values are the wire keys used by the UI.
    manage_system = "canManageSystem"
    manage_multiple_corps = "canManageMultipleCorps"
    configure_esi = "canConfigureESI"
    manage_database = "canManageDatabase"
    manage_corp = "canManageCorp"
    manage_users = "canManageUsers"
    view_financials = "canViewFinancials"
    manage_manufacturing = "canManageManufacturing"
    manage_mining = "canManageMining"
    manage_assets = "canManageAssets"
    manage_market = "canManageMarket"
    view_killmails = "canViewKillmails"
    manage_income = "canManageIncome"
    view_all_members = "canViewAllMembers"
    edit_all_data = "canEditAllData"
    export_data = "canExportData"
    delete_data = "canDeleteData"

    @classmethod
    def parse(cls, value: Capability | str) -> Capability:
        """Accept an enum member, its wire key (`canManageUsers`) or its name (`manage_users`)."""

        if isinstance(value, Capability):
            return value
        try:
            return cls(value)
        except ValueError:
            pass
        try:
            return cls[value]
        except KeyError:
            raise InvalidCapability(value) from None


@dataclass(frozen=True, slots=True)
class PermissionSet:
    """
    One boolean per capability. No field has a default, so a role definition that
    forgets a capability fails when this module is imported.
    """

    # System
    manage_system: bool
    manage_multiple_corps: bool
    configure_esi: bool
    manage_database: bool

    # Corporation
    manage_corp: bool
    manage_users: bool
    view_financials: bool
    manage_manufacturing: bool
    manage_mining: bool
    manage_assets: bool
    manage_market: bool
    view_killmails: bool
    manage_income: bool

    # Data
    view_all_members: bool
    edit_all_data: bool
    export_data: bool
    delete_data: bool

    def allows(self, capability: Capability | str) -> bool:
        return bool(getattr(self, Capability.parse(capability).name))

    def granted(self) -> frozenset[Capability]:
        return frozenset(c for c in Capability if getattr(self, c.name))

    def to_dict(self) -> dict[str, bool]:
        return {c.value: bool(getattr(self, c.name)) for c in Capability}

    @classmethod
    def none(cls) -> PermissionSet:
        return cls(**{c.name: False for c in Capability})


ROLE_DEFINITIONS: dict[Role, PermissionSet] = {
    Role.super_admin: PermissionSet(
        manage_system=True,
        manage_multiple_corps=True,
        configure_esi=True,
        manage_database=True,
        manage_corp=True,
        manage_users=True,
        view_financials=True,
        manage_manufacturing=True,
        manage_mining=True,
        manage_assets=True,
        manage_market=True,
        view_killmails=True,
        manage_income=True,
        view_all_members=True,
        edit_all_data=True,
        export_data=True,
        delete_data=True,
    ),
    Role.corp_admin: PermissionSet(
        manage_system=False,
        manage_multiple_corps=False,
        configure_esi=True,
        manage_database=False,
        manage_corp=True,
        manage_users=True,
        view_financials=True,
        manage_manufacturing=True,
        manage_mining=True,
        manage_assets=True,
        manage_market=True,
        view_killmails=True,
        manage_income=True,
        view_all_members=True,
        edit_all_data=True,
        export_data=True,
        delete_data=False,
    ),
    Role.corp_director: PermissionSet(
        manage_system=False,
        manage_multiple_corps=False,
        configure_esi=False,
        manage_database=False,
        manage_corp=False,
        manage_users=False,
        view_financials=True,
        manage_manufacturing=True,
        manage_mining=True,
        manage_assets=True,
        manage_market=True,
        view_killmails=True,
        manage_income=True,
        view_all_members=True,
        edit_all_data=True,
        export_data=True,
        delete_data=False,
    ),
    Role.corp_manager: PermissionSet(
        manage_system=False,
        manage_multiple_corps=False,
        configure_esi=False,
        manage_database=False,
        manage_corp=False,
        manage_users=False,
        view_financials=False,
        manage_manufacturing=True,
        manage_mining=True,
        manage_assets=False,
        manage_market=True,
        view_killmails=True,
        manage_income=False,
        view_all_members=True,
        edit_all_data=False,
        export_data=False,
        delete_data=False,
    ),
    Role.corp_member: PermissionSet(
        manage_system=False,
        manage_multiple_corps=False,
        configure_esi=False,
        manage_database=False,
        manage_corp=False,
        manage_users=False,
        view_financials=False,
        manage_manufacturing=False,
        manage_mining=False,
        manage_assets=False,
        manage_market=False,
        view_killmails=True,
        manage_income=False,
        view_all_members=False,
        edit_all_data=False,
        export_data=False,
        delete_data=False,
    ),
    Role.guest: PermissionSet(
        manage_system=False,
        manage_multiple_corps=False,
        configure_esi=False,
        manage_database=False,
        manage_corp=False,
        manage_users=False,
        view_financials=False,
        manage_manufacturing=False,
        manage_mining=False,
        manage_assets=False,
        manage_market=False,
        view_killmails=False,
        manage_income=False,
        view_all_members=False,
        edit_all_data=False,
        export_data=False,
        delete_data=False,
    ),
}


def _check_catalog() -> None:
    missing_roles = [r for r in Role if r not in ROLE_DEFINITIONS]
    if missing_roles:
        raise RuntimeError(f"Permission catalog is missing roles: {missing_roles}")
    field_names = {f.name for f in dataclasses.fields(PermissionSet)}
    capability_names = {c.name for c in Capability}
    if field_names != capability_names:
        raise RuntimeError(
            "PermissionSet fields and Capability members diverged: "
            f"{sorted(field_names ^ capability_names)}"
        )


_check_catalog()


def parse_role(value: Any) -> Role:
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        raise InvalidRole(value) from None


def permissions_for(role: Role | str) -> PermissionSet:
    return ROLE_DEFINITIONS[parse_role(role)]


_DIRECTOR_ROLES = frozenset({"personnel_manager", "security_officer", "communications_officer"})
_MANAGER_ROLES = frozenset(
    {
        "factory_manager",
        "station_manager",
        "accountant",
        "junior_accountant",
        "trader",
        "config_equipment",
        "config_starbase_equipment",
        "container_can_take",
        *(f"hangar_can_take{i}" for i in range(1, 8)),
    }
)


def role_from_provider_roles(provider_roles: Iterable[str], *, is_ceo: bool = False) -> Role:
    """
    Highest dashboard role implied by the character's in-game corporation roles.

    The CEO is not a corporation role in ESI; callers pass `is_ceo` from the corporation's
    `ceo_id`.
    """

    normalized = {r.lower() for r in provider_roles}
    if is_ceo or "ceo" in normalized or "chief_executive_officer" in normalized:
        return Role.corp_admin
    if any("director" in r for r in normalized) or normalized & _DIRECTOR_ROLES:
        return Role.corp_director
    if normalized & _MANAGER_ROLES:
        return Role.corp_manager
    # Any authenticated corp member (query-only roles included).
    return Role.corp_member


# --- Module Notes -----------------------------------------------------------
# Gated UI code should query capabilities through `auth.resolver`, never compare role
# strings directly.
