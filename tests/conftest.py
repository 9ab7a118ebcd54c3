"""
tests.conftest

Shared fixtures: test settings, an in-memory database, and a scriptable identity exchange.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import replace
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from lmeve_auth.db.init_db import init_db
from lmeve_auth.db.session import create_engine, create_sessionmaker
from lmeve_auth.settings import Settings
from lmeve_auth.sso.models import VerifiedIdentity

CORP_ID = 98000001
CEO_ID = 90000001
MEMBER_ID = 90000002
DIRECTOR_ID = 90000003


def make_identity(**overrides: Any) -> VerifiedIdentity:
    base = VerifiedIdentity(
        character_id=MEMBER_ID,
        character_name="Rank File",
        corporation_id=CORP_ID,
        corporation_name="Test Industries",
        corporation_ticker="TEST",
        scopes=(
            "esi-characters.read_corporation_roles.v1",
            "esi-corporations.read_corporation_membership.v1",
            "esi-assets.read_corporation_assets.v1",
            "esi-industry.read_corporation_jobs.v1",
        ),
        access_token="access-token",
        refresh_token="refresh-token",
    )
    return replace(base, **overrides)


def ceo_identity(**overrides: Any) -> VerifiedIdentity:
    return make_identity(
        character_id=CEO_ID, character_name="Big Boss", is_org_leader=True, **overrides
    )


class FakeExchange:
    """
    Scriptable `IdentityExchange`: returns `identity` or raises `error`, counting calls.
    When `gate` is set, each call waits for it so tests can overlap invocations.
    """

    def __init__(
        self,
        identity: VerifiedIdentity | None = None,
        *,
        error: Exception | None = None,
    ) -> None:
        self.identity = identity or make_identity()
        self.error = error
        self.calls = 0
        self.last_verifier: str | None = None
        self.gate: asyncio.Event | None = None
        self.entered = asyncio.Event()

    async def exchange(self, *, code: str, verifier: str) -> VerifiedIdentity:
        self.calls += 1
        self.last_verifier = verifier
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.identity


@pytest.fixture
def settings() -> Settings:
    return Settings(
        env="test",
        database_url="sqlite+aiosqlite:///:memory:",
        jwt_secret="test-secret",
        sso_client_id="test-client",
        sso_client_secret="",
        admin_username="admin",
        admin_password="admin-pass",
        bcrypt_rounds=4,
    )


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncIterator[AsyncEngine]:
    engine = create_engine(settings)
    await init_db(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def sessions(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_sessionmaker(engine)


@pytest_asyncio.fixture
async def db(sessions: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with sessions() as session:
        yield session
