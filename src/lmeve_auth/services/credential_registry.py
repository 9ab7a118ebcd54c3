"""
lmeve_auth.services.credential_registry

Corporation credential registry (multi-tenant ESI credentials keyed by corporation).

Responsibilities:
- Register, look up, activate/deactivate and remove corporation credential records.
- Answer "is this corporation configured?" for the callback state machine.
- Stamp refreshes and rotate refresh tokens.
- Commit each mutation and record it in the audit trail.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from lmeve_auth.auth.errors import CorporationNotFound, ScopesEmpty
from lmeve_auth.db.models import Corporation, utcnow
from lmeve_auth.db.repositories.audit import AuditRepo
from lmeve_auth.db.repositories.corporations import CorporationRepo
from lmeve_auth.observability.logging import get_logger

log = get_logger(__name__)


def normalize_scopes(scopes: Iterable[str]) -> list[str]:
    # Order-preserving de-duplication; blank entries are dropped.
    seen: dict[str, None] = {}
    for scope in scopes:
        s = str(scope).strip()
        if s:
            seen.setdefault(s, None)
    return list(seen)


class CredentialRegistry:
    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session
        self._corps = CorporationRepo(session)
        self._audit = AuditRepo(session)

    async def register(
        self,
        corporation_id: int,
        name: str,
        credential: str,
        scopes: Iterable[str],
        registered_by: int,
        *,
        ticker: str | None = None,
        client_id: str | None = None,
        member_count: int | None = None,
    ) -> Corporation:
        """
        Create or overwrite the record for `corporation_id`.

        Raises `ScopesEmpty` (without touching storage) when no usable scope is given.
        """

        granted = normalize_scopes(scopes)
        if not granted:
            raise ScopesEmpty()

        corp = await self._corps.upsert(
            corporation_id=corporation_id,
            name=name,
            refresh_token=credential,
            scopes=granted,
            registered_by=registered_by,
            ticker=ticker,
            client_id=client_id,
            member_count=member_count,
        )
        now = utcnow()
        corp.registered_at = now
        corp.last_refresh_at = now
        corp.is_active = True

        await self._audit.add(
            actor=str(registered_by),
            event_type="CORPORATION_REGISTERED",
            subject=str(corporation_id),
            details={"name": name, "scopes": granted},
        )
        await self._session.commit()
        log.info(
            "corporation_registered",
            corporation_id=corporation_id,
            registered_by=registered_by,
            scope_count=len(granted),
        )
        return corp

    async def get(self, corporation_id: int) -> Corporation | None:
        return await self._corps.get(corporation_id)

    async def list_active(self) -> list[Corporation]:
        return await self._corps.list_active()

    async def list_all(self) -> list[Corporation]:
        return await self._corps.list_all()

    async def set_active(
        self, corporation_id: int, active: bool, *, actor: str = "system"
    ) -> Corporation:
        corp = await self._corps.get(corporation_id)
        if corp is None:
            raise CorporationNotFound()
        corp.is_active = active
        await self._audit.add(
            actor=actor,
            event_type="CORPORATION_ACTIVATED" if active else "CORPORATION_DEACTIVATED",
            subject=str(corporation_id),
        )
        await self._session.commit()
        log.info("corporation_active_changed", corporation_id=corporation_id, active=active)
        return corp

    async def remove(self, corporation_id: int, *, actor: str = "system") -> bool:
        removed = await self._corps.delete(corporation_id)
        if removed:
            await self._audit.add(
                actor=actor, event_type="CORPORATION_REMOVED", subject=str(corporation_id)
            )
            await self._session.commit()
            log.info("corporation_removed", corporation_id=corporation_id)
        return removed

    async def is_configured(self, corporation_id: int) -> bool:
        corp = await self._corps.get(corporation_id)
        return corp is not None and corp.is_configured

    async def record_refresh(
        self, corporation_id: int, *, credential: str | None = None
    ) -> Corporation:
        corp = await self._corps.get(corporation_id)
        if corp is None:
            raise CorporationNotFound()
        corp.last_refresh_at = utcnow()
        if credential:
            # Refresh tokens may rotate on every use.
            corp.refresh_token = credential
        await self._session.commit()
        log.info("corporation_token_refreshed", corporation_id=corporation_id)
        return corp


# --- Module Notes -----------------------------------------------------------
# Records are never returned through the API with `refresh_token`; see
# `api/routers/corporations.py` for the public view.
