from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lmeve_auth.db.models import Corporation


class CorporationRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, corporation_id: int) -> Corporation | None:
        return await self._session.get(Corporation, corporation_id)

    async def upsert(
        self,
        *,
        corporation_id: int,
        name: str,
        refresh_token: str,
        scopes: list[str],
        registered_by: int,
        ticker: str | None = None,
        client_id: str | None = None,
        member_count: int | None = None,
    ) -> Corporation:
        corp = await self._session.get(Corporation, corporation_id)
        if corp is None:
            corp = Corporation(corporation_id=corporation_id)
            self._session.add(corp)
        corp.name = name
        corp.ticker = ticker
        corp.client_id = client_id
        corp.refresh_token = refresh_token
        corp.scopes = list(scopes)
        corp.registered_by = registered_by
        corp.member_count = member_count
        await self._session.flush()
        return corp

    async def list_all(self) -> list[Corporation]:
        stmt = select(Corporation).order_by(Corporation.name)
        return list((await self._session.execute(stmt)).scalars().all())

    async def list_active(self) -> list[Corporation]:
        # Empty scope lists are filtered in Python: JSON emptiness is not portable SQL.
        stmt = select(Corporation).where(Corporation.is_active.is_(True)).order_by(Corporation.name)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [c for c in rows if c.scopes]

    async def delete(self, corporation_id: int) -> bool:
        corp = await self._session.get(Corporation, corporation_id)
        if corp is None:
            return False
        await self._session.delete(corp)
        await self._session.flush()
        return True
