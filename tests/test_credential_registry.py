"""
tests.test_credential_registry

Corporation credential registry against an in-memory database.
"""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lmeve_auth.auth.errors import CorporationNotFound, ScopesEmpty
from lmeve_auth.db.models import AuditEvent
from lmeve_auth.services.credential_registry import CredentialRegistry

from .conftest import CEO_ID, CORP_ID


@pytest.mark.asyncio
async def test_register_then_configured(db: AsyncSession) -> None:
    registry = CredentialRegistry(session=db)
    assert await registry.is_configured(CORP_ID) is False

    corp = await registry.register(
        CORP_ID, "Test Industries", "rt-1", ["a.v1", " ", "b.v1", "a.v1"], CEO_ID, ticker="TEST"
    )

    assert corp.scopes == ["a.v1", "b.v1"]
    assert corp.is_active is True
    assert corp.registered_at == corp.last_refresh_at
    assert await registry.is_configured(CORP_ID) is True
    assert [c.corporation_id for c in await registry.list_active()] == [CORP_ID]

    events = (await db.execute(select(AuditEvent))).scalars().all()
    assert [e.event_type for e in events] == ["CORPORATION_REGISTERED"]


@pytest.mark.asyncio
async def test_empty_scopes_rejected_without_mutation(db: AsyncSession) -> None:
    registry = CredentialRegistry(session=db)

    with pytest.raises(ScopesEmpty):
        await registry.register(CORP_ID, "Test Industries", "rt-1", ["", "  "], CEO_ID)

    assert await registry.get(CORP_ID) is None
    assert await registry.list_all() == []


@pytest.mark.asyncio
async def test_register_overwrites_existing_record(db: AsyncSession) -> None:
    registry = CredentialRegistry(session=db)
    await registry.register(CORP_ID, "Old Name", "rt-1", ["a.v1"], CEO_ID)
    await registry.set_active(CORP_ID, False)

    corp = await registry.register(CORP_ID, "New Name", "rt-2", ["b.v1"], CEO_ID)

    assert corp.name == "New Name"
    assert corp.refresh_token == "rt-2"
    assert corp.is_active is True
    assert len(await registry.list_all()) == 1


@pytest.mark.asyncio
async def test_deactivate_makes_unconfigured(db: AsyncSession) -> None:
    registry = CredentialRegistry(session=db)
    await registry.register(CORP_ID, "Test Industries", "rt-1", ["a.v1"], CEO_ID)

    await registry.set_active(CORP_ID, False)

    assert await registry.is_configured(CORP_ID) is False
    assert await registry.list_active() == []
    assert len(await registry.list_all()) == 1


@pytest.mark.asyncio
async def test_set_active_unknown_corporation(db: AsyncSession) -> None:
    with pytest.raises(CorporationNotFound):
        await CredentialRegistry(session=db).set_active(1234, True)


@pytest.mark.asyncio
async def test_remove(db: AsyncSession) -> None:
    registry = CredentialRegistry(session=db)
    await registry.register(CORP_ID, "Test Industries", "rt-1", ["a.v1"], CEO_ID)

    assert await registry.remove(CORP_ID) is True
    assert await registry.remove(CORP_ID) is False
    assert await registry.is_configured(CORP_ID) is False


@pytest.mark.asyncio
async def test_record_refresh_rotates_token(db: AsyncSession) -> None:
    registry = CredentialRegistry(session=db)
    corp = await registry.register(CORP_ID, "Test Industries", "rt-1", ["a.v1"], CEO_ID)
    first_refresh = corp.last_refresh_at

    corp = await registry.record_refresh(CORP_ID, credential="rt-2")
    assert corp.refresh_token == "rt-2"
    assert corp.last_refresh_at >= first_refresh

    corp = await registry.record_refresh(CORP_ID)
    assert corp.refresh_token == "rt-2"

    with pytest.raises(CorporationNotFound):
        await registry.record_refresh(4321)
