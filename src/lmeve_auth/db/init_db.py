"""
lmeve_auth.db.init_db

DB initialization helpers (dev/test convenience).

Responsibilities:
- Create the registry, directory and audit tables for local development and tests.
- Seed the bootstrap administrator so a fresh install can sign in without SSO.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from lmeve_auth.db import models  # noqa: F401  # register models on Base.metadata
from lmeve_auth.db.base import Base
from lmeve_auth.observability.logging import get_logger
from lmeve_auth.services.user_directory import UserDirectory
from lmeve_auth.settings import Settings

log = get_logger(__name__)


async def init_db(engine: AsyncEngine) -> None:
    """
    Dev/test bootstrap: create tables if they don't exist.
    """

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def bootstrap(
    engine: AsyncEngine, sessions: async_sessionmaker[AsyncSession], settings: Settings
) -> None:
    """Create the schema and make sure the configured local administrator exists."""

    await init_db(engine)
    async with sessions() as session:
        admin = await UserDirectory(
            session=session, bcrypt_rounds=settings.bcrypt_rounds
        ).ensure_default_admin(settings.admin_username, settings.admin_password)
    log.info("db_bootstrapped", admin_user_id=admin.id)


# --- Module Notes -----------------------------------------------------------
# Production schemas are provisioned by the deployment, not by this service.
