"""
lmeve_auth.api.routers.corporations

Corporation credential registry administration.

Responsibilities:
- List and inspect registered corporations (never exposing refresh tokens).
- Activate/deactivate, refresh and remove corporation credentials.
- Show the audit trail recorded against a corporation.
- Removing a corporation revokes its token and deactivates its members.
"""

from __future__ import annotations

import httpx
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from lmeve_auth.api.deps import db_session, settings_dep, sso_client_dep
from lmeve_auth.api.schemas import AuditEventOut, CorporationOut
from lmeve_auth.auth.deps import require_capability, session_store_dep
from lmeve_auth.auth.errors import CorporationNotFound, ExchangeFailed
from lmeve_auth.auth.models import Principal
from lmeve_auth.auth.permissions import Capability
from lmeve_auth.auth.session import SessionStore
from lmeve_auth.db.repositories.audit import AuditRepo
from lmeve_auth.observability.logging import get_logger
from lmeve_auth.services.credential_registry import CredentialRegistry
from lmeve_auth.services.user_directory import UserDirectory
from lmeve_auth.settings import Settings
from lmeve_auth.sso.client import EveSsoClient

log = get_logger(__name__)

router = APIRouter(prefix="/v1/corporations", tags=["corporations"])

_require_esi_admin = require_capability(Capability.configure_esi)


class SetActiveRequest(BaseModel):
    is_active: bool


@router.get("", response_model=list[CorporationOut], dependencies=[Depends(_require_esi_admin)])
async def list_corporations(
    active_only: bool = False,
    session: AsyncSession = Depends(db_session),
) -> list[CorporationOut]:
    registry = CredentialRegistry(session=session)
    corps = await (registry.list_active() if active_only else registry.list_all())
    return [CorporationOut.from_row(c) for c in corps]


@router.get(
    "/{corporation_id}",
    response_model=CorporationOut,
    dependencies=[Depends(_require_esi_admin)],
)
async def get_corporation(
    corporation_id: int,
    session: AsyncSession = Depends(db_session),
) -> CorporationOut:
    corp = await CredentialRegistry(session=session).get(corporation_id)
    if corp is None:
        raise CorporationNotFound()
    return CorporationOut.from_row(corp)


@router.get(
    "/{corporation_id}/audit",
    response_model=list[AuditEventOut],
    dependencies=[Depends(_require_esi_admin)],
)
async def corporation_audit(
    corporation_id: int,
    limit: int = Query(default=100, ge=1, le=500),
    session: AsyncSession = Depends(db_session),
) -> list[AuditEventOut]:
    # Newest first; the trail outlives the corporation record.
    events = await AuditRepo(session).list_for_subject(str(corporation_id), limit=limit)
    return [AuditEventOut.from_row(e) for e in events]


@router.patch("/{corporation_id}", response_model=CorporationOut)
async def set_corporation_active(
    corporation_id: int,
    body: SetActiveRequest,
    principal: Principal = Depends(_require_esi_admin),
    session: AsyncSession = Depends(db_session),
) -> CorporationOut:
    corp = await CredentialRegistry(session=session).set_active(
        corporation_id, body.is_active, actor=principal.id
    )
    return CorporationOut.from_row(corp)


@router.post("/{corporation_id}/refresh", response_model=CorporationOut)
async def refresh_corporation_token(
    corporation_id: int,
    principal: Principal = Depends(_require_esi_admin),
    session: AsyncSession = Depends(db_session),
    client: EveSsoClient = Depends(sso_client_dep),
) -> CorporationOut:
    registry = CredentialRegistry(session=session)
    corp = await registry.get(corporation_id)
    if corp is None:
        raise CorporationNotFound()
    try:
        tokens = await client.refresh(refresh_token=corp.refresh_token)
    except httpx.HTTPError as e:
        raise ExchangeFailed(f"Token refresh failed: {e}") from e
    corp = await registry.record_refresh(corporation_id, credential=tokens.refresh_token)
    log.info("corporation_refresh_requested", corporation_id=corporation_id, actor=principal.id)
    return CorporationOut.from_row(corp)


@router.delete("/{corporation_id}")
async def remove_corporation(
    corporation_id: int,
    principal: Principal = Depends(_require_esi_admin),
    session: AsyncSession = Depends(db_session),
    client: EveSsoClient = Depends(sso_client_dep),
    store: SessionStore = Depends(session_store_dep),
    settings: Settings = Depends(settings_dep),
) -> dict[str, int | bool]:
    registry = CredentialRegistry(session=session)
    corp = await registry.get(corporation_id)
    if corp is None:
        raise CorporationNotFound()

    try:
        await client.revoke(token=corp.refresh_token)
    except httpx.HTTPError as e:
        # The record is removed regardless; the provider expires unused tokens on its own.
        log.warning("token_revoke_failed", corporation_id=corporation_id, error=str(e))

    removed = await registry.remove(corporation_id, actor=principal.id)
    directory = UserDirectory(session=session, bcrypt_rounds=settings.bcrypt_rounds)
    deactivated = await directory.deactivate_corporation(corporation_id, actor=principal.id)

    if principal.corporation_id == corporation_id:
        store.logout()
    return {"removed": removed, "users_deactivated": deactivated}
