"""
lmeve_auth.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Provide dependency functions for settings, DB sessions and the app-wide collaborators.
- Encapsulate app.state access patterns.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lmeve_auth.services.callback_service import CallbackStateMachine
from lmeve_auth.settings import Settings
from lmeve_auth.sso.client import EveSsoClient
from lmeve_auth.sso.login_state import LoginStateStore


def settings_dep(request: Request) -> Settings:
    return request.app.state.settings  # type: ignore[attr-defined]


def sessionmaker_from_app(request: Request) -> async_sessionmaker[AsyncSession]:
    # The sessionmaker is created in the lifespan of `lmeve_auth.api.app.create_app`.
    return request.app.state.sessionmaker  # type: ignore[attr-defined]


async def db_session(
    session_factory: async_sessionmaker[AsyncSession] = Depends(sessionmaker_from_app),
) -> AsyncIterator[AsyncSession]:
    # Request-scoped DB session. Commit/rollback is managed explicitly by the service layer.
    async with session_factory() as session:
        yield session


def callback_dep(request: Request) -> CallbackStateMachine:
    return request.app.state.callback  # type: ignore[attr-defined]


def login_states_dep(request: Request) -> LoginStateStore:
    return request.app.state.login_states  # type: ignore[attr-defined]


def sso_client_dep(request: Request) -> EveSsoClient:
    return request.app.state.sso_client  # type: ignore[attr-defined]
