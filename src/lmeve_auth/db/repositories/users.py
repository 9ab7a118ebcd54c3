"""
lmeve_auth.db.repositories.users

Repository for `User` entities (the persisted principal directory).
"""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lmeve_auth.db.models import User


class UserRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    def add(self, user: User) -> User:
        self._session.add(user)
        return user

    async def get(self, user_id: str) -> User | None:
        return await self._session.get(User, user_id)

    async def get_by_username(self, username: str) -> User | None:
        stmt = select(User).where(User.username == username)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def get_by_character(self, character_id: int) -> User | None:
        stmt = select(User).where(User.character_id == character_id)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def list_all(self, *, include_inactive: bool = True) -> list[User]:
        stmt = select(User).order_by(User.display_name)
        if not include_inactive:
            stmt = stmt.where(User.is_active.is_(True))
        return list((await self._session.execute(stmt)).scalars().all())

    async def deactivate_corporation(self, corporation_id: int) -> int:
        stmt = (
            update(User)
            .where(User.corporation_id == corporation_id, User.is_active.is_(True))
            .values(is_active=False)
        )
        result = await self._session.execute(stmt)
        return int(result.rowcount or 0)

    async def delete(self, user: User) -> None:
        await self._session.delete(user)
        await self._session.flush()
