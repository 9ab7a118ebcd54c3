"""
lmeve_auth.api.routers.users

User directory administration (capability `canManageUsers`).

Accounts holding super_admin, and the super_admin role itself, additionally need
`canManageSystem`; nobody edits their own account here.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from lmeve_auth.api.deps import db_session, settings_dep
from lmeve_auth.api.schemas import UserOut
from lmeve_auth.auth.deps import require_capability, session_store_dep
from lmeve_auth.auth.models import Principal
from lmeve_auth.auth.permissions import Capability, Role
from lmeve_auth.auth.session import SessionStore
from lmeve_auth.services.user_directory import UserDirectory, principal_from_user
from lmeve_auth.settings import Settings

router = APIRouter(prefix="/v1/users", tags=["users"])

_require_user_admin = require_capability(Capability.manage_users)


class ProvisionUserRequest(BaseModel):
    username: str = Field(min_length=1, max_length=128)
    password: str = Field(min_length=4, max_length=72)
    role: Role = Role.corp_member
    display_name: str | None = Field(default=None, max_length=256)


class SetRoleRequest(BaseModel):
    role: Role


def _directory(session: AsyncSession, settings: Settings) -> UserDirectory:
    return UserDirectory(session=session, bcrypt_rounds=settings.bcrypt_rounds)


@router.get("", response_model=list[UserOut], dependencies=[Depends(_require_user_admin)])
async def list_users(
    include_inactive: bool = True,
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> list[UserOut]:
    users = await _directory(session, settings).list_users(include_inactive=include_inactive)
    return [UserOut.from_row(u) for u in users]


@router.post("", response_model=UserOut, status_code=201)
async def provision_user(
    body: ProvisionUserRequest,
    principal: Principal = Depends(_require_user_admin),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> UserOut:
    user = await _directory(session, settings).provision_local(
        body.username,
        body.password,
        body.role,
        display_name=body.display_name,
        created_by=principal,
    )
    return UserOut.from_row(user)


@router.patch("/{user_id}/role", response_model=UserOut)
async def set_user_role(
    user_id: str,
    body: SetRoleRequest,
    principal: Principal = Depends(_require_user_admin),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
    store: SessionStore = Depends(session_store_dep),
) -> UserOut:
    user = await _directory(session, settings).set_role(user_id, body.role, actor=principal)
    # Re-resolves permissions when the changed user is the one signed in.
    store.update_role(user.id, body.role)
    return UserOut.from_row(user)


@router.post("/{user_id}/deactivate", response_model=UserOut)
async def deactivate_user(
    user_id: str,
    principal: Principal = Depends(_require_user_admin),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
    store: SessionStore = Depends(session_store_dep),
) -> UserOut:
    user = await _directory(session, settings).deactivate(user_id, actor=principal)
    store.replace_if_current(principal_from_user(user))
    return UserOut.from_row(user)


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: str,
    principal: Principal = Depends(_require_user_admin),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> None:
    await _directory(session, settings).delete(user_id, actor=principal)
