"""
lmeve_auth.services.user_directory

Persisted principal directory.

Responsibilities:
- Upsert SSO characters on login; provision and authenticate local accounts (bcrypt).
- Role changes, deactivation (single user or a whole corporation) and hard delete of
  local accounts.
- Refuse administrative changes an actor may not make: their own account, or granting
  or touching super_admin without `canManageSystem`.
- Bootstrap the default administrator in dev/test.
- Convert `User` rows into `Principal` values for the session store.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from lmeve_auth.auth.errors import (
    AccountDisabled,
    DeletionNotAllowed,
    InsufficientPrivilege,
    InvalidCredentials,
    UserNotFound,
    UsernameTaken,
)
from lmeve_auth.auth.models import AuthMethod, Principal
from lmeve_auth.auth.passwords import hash_password, verify_password
from lmeve_auth.auth.permissions import Capability, Role, parse_role
from lmeve_auth.auth.resolver import has_permission
from lmeve_auth.db.models import User, utcnow
from lmeve_auth.db.repositories.audit import AuditRepo
from lmeve_auth.db.repositories.users import UserRepo
from lmeve_auth.observability.logging import get_logger
from lmeve_auth.sso.models import VerifiedIdentity

log = get_logger(__name__)


def sso_user_id(character_id: int) -> str:
    return f"esi_{character_id}"


def principal_from_user(user: User) -> Principal:
    # Unresolved: the session store attaches permissions on login/restore.
    return Principal(
        id=user.id,
        display_name=user.display_name,
        auth_method=AuthMethod(user.auth_method),
        role=parse_role(user.role),
        username=user.username,
        character_id=user.character_id,
        corporation_id=user.corporation_id,
        corporation_name=user.corporation_name,
        alliance_id=user.alliance_id,
        alliance_name=user.alliance_name,
        is_org_leader=user.is_org_leader,
        is_org_officer=user.is_org_officer,
        scopes=tuple(user.scopes or ()),
        last_login=user.last_login,
        is_active=user.is_active,
    )


def _actor_id(actor: Principal | None) -> str:
    return actor.id if actor is not None else "system"


def ensure_may_administer(
    actor: Principal | None, target: User | None = None, *, role: Role | None = None
) -> None:
    """
    Raise `InsufficientPrivilege` unless `actor` may apply this change.

    `target` is the existing account being changed (None when provisioning) and `role` the
    role being granted, if any. A None actor is the system itself (bootstrap, CLI) and is
    always allowed.
    """

    if actor is None:
        return
    if target is not None and target.id == actor.id:
        raise InsufficientPrivilege("You cannot change your own account")
    touches_super_admin = role is Role.super_admin or (
        target is not None and target.role == Role.super_admin.value
    )
    if touches_super_admin and not has_permission(actor, Capability.manage_system):
        raise InsufficientPrivilege("Only system administrators can manage super_admin accounts")


class UserDirectory:
    def __init__(self, *, session: AsyncSession, bcrypt_rounds: int = 12) -> None:
        self._session = session
        self._users = UserRepo(session)
        self._audit = AuditRepo(session)
        self._rounds = bcrypt_rounds

    async def upsert_sso_user(self, identity: VerifiedIdentity, role: Role) -> User:
        """
        Create or refresh the directory entry for an SSO character.

        `role` applies to first logins only; an existing user keeps the role an
        administrator assigned. Profile fields always follow the provider.
        """

        user = await self._users.get_by_character(identity.character_id)
        created = user is None
        if user is None:
            user = self._users.add(
                User(
                    id=sso_user_id(identity.character_id),
                    character_id=identity.character_id,
                    auth_method=AuthMethod.esi.value,
                    role=role.value,
                    is_active=True,
                    display_name=identity.character_name,
                )
            )

        user.display_name = identity.character_name
        user.corporation_id = identity.corporation_id
        user.corporation_name = identity.corporation_name
        user.alliance_id = identity.alliance_id
        user.alliance_name = identity.alliance_name
        user.is_org_leader = identity.is_org_leader
        user.is_org_officer = identity.is_org_officer
        user.scopes = list(identity.scopes)
        user.last_login = utcnow()

        await self._audit.add(
            actor=user.id,
            event_type="SSO_USER_CREATED" if created else "SSO_USER_UPDATED",
            subject=user.id,
            details={"corporation_id": identity.corporation_id, "role": user.role},
        )
        await self._session.commit()
        log.info("sso_user_upserted", user_id=user.id, created=created, role=user.role)
        return user

    async def provision_local(
        self,
        username: str,
        password: str,
        role: Role | str,
        *,
        display_name: str | None = None,
        created_by: Principal | None = None,
    ) -> User:
        role = parse_role(role)
        ensure_may_administer(created_by, role=role)
        username = username.strip()
        if await self._users.get_by_username(username) is not None:
            raise UsernameTaken()

        user = self._users.add(
            User(
                username=username,
                display_name=display_name or username,
                auth_method=AuthMethod.local.value,
                role=role.value,
                password_hash=hash_password(password, rounds=self._rounds),
                is_active=True,
                created_by=created_by.id if created_by is not None else None,
            )
        )
        await self._session.flush()
        await self._audit.add(
            actor=_actor_id(created_by),
            event_type="LOCAL_USER_PROVISIONED",
            subject=user.id,
            details={"username": username, "role": role.value},
        )
        await self._session.commit()
        log.info("local_user_provisioned", user_id=user.id, role=role.value)
        return user

    async def authenticate_local(self, username: str, password: str) -> User:
        user = await self._users.get_by_username(username.strip())
        if user is None or not verify_password(password, user.password_hash):
            log.info("local_login_rejected", username=username)
            raise InvalidCredentials()
        if not user.is_active:
            raise AccountDisabled()
        user.last_login = utcnow()
        await self._session.commit()
        return user

    async def get(self, user_id: str) -> User | None:
        return await self._users.get(user_id)

    async def list_users(self, *, include_inactive: bool = True) -> list[User]:
        return await self._users.list_all(include_inactive=include_inactive)

    async def set_role(
        self, user_id: str, role: Role | str, *, actor: Principal | None = None
    ) -> User:
        role = parse_role(role)
        user = await self._require(user_id)
        ensure_may_administer(actor, user, role=role)
        previous = user.role
        user.role = role.value
        user.updated_by = _actor_id(actor)
        await self._audit.add(
            actor=_actor_id(actor),
            event_type="USER_ROLE_CHANGED",
            subject=user.id,
            details={"from": previous, "to": role.value},
        )
        await self._session.commit()
        log.info("user_role_changed", user_id=user.id, role=role.value)
        return user

    async def deactivate(self, user_id: str, *, actor: Principal | None = None) -> User:
        user = await self._require(user_id)
        ensure_may_administer(actor, user)
        user.is_active = False
        user.updated_by = _actor_id(actor)
        await self._audit.add(
            actor=_actor_id(actor), event_type="USER_DEACTIVATED", subject=user.id
        )
        await self._session.commit()
        log.info("user_deactivated", user_id=user.id)
        return user

    async def deactivate_corporation(self, corporation_id: int, *, actor: str = "system") -> int:
        count = await self._users.deactivate_corporation(corporation_id)
        await self._audit.add(
            actor=actor,
            event_type="CORPORATION_USERS_DEACTIVATED",
            subject=str(corporation_id),
            details={"count": count},
        )
        await self._session.commit()
        log.info("corporation_users_deactivated", corporation_id=corporation_id, count=count)
        return count

    async def delete(self, user_id: str, *, actor: Principal | None = None) -> None:
        user = await self._require(user_id)
        if actor is not None and user.id == actor.id:
            raise DeletionNotAllowed("You cannot delete your own account")
        ensure_may_administer(actor, user)
        if user.auth_method != AuthMethod.local.value:
            raise DeletionNotAllowed()
        await self._users.delete(user)
        await self._audit.add(
            actor=_actor_id(actor),
            event_type="LOCAL_USER_DELETED",
            subject=user_id,
            details={"username": user.username},
        )
        await self._session.commit()
        log.info("local_user_deleted", user_id=user_id)

    async def ensure_default_admin(self, username: str, password: str) -> User:
        existing = await self._users.get_by_username(username)
        if existing is not None:
            return existing
        log.warning("default_admin_created", username=username)
        return await self.provision_local(
            username, password, Role.super_admin, display_name="Local Administrator"
        )

    async def _require(self, user_id: str) -> User:
        user = await self._users.get(user_id)
        if user is None:
            raise UserNotFound()
        return user


# --- Module Notes -----------------------------------------------------------
# SSO users are keyed `esi_<character_id>`; local accounts get a uuid4 id.
