"""
lmeve_auth.api.routers.health

Health and readiness endpoints.

Responsibilities:
- Provide liveness probe (`/healthz`).
- Provide readiness probe (`/readyz`) with DB connectivity validation and a report of
  whether EVE SSO is configured (logins cannot start without a client id).
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from lmeve_auth.api.deps import db_session, settings_dep
from lmeve_auth.settings import Settings

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> dict[str, Any]:
    # The directory and registry both live in the database.
    await session.execute(text("SELECT 1"))
    return {"status": "ready", "sso_configured": bool(settings.sso_client_id)}
