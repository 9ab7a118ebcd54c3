"""
lmeve_auth.api.app

FastAPI app factory for the LMeve auth service.

Responsibilities:
- Build the FastAPI application and register routers/middleware/error handlers.
- Initialize and dispose shared infrastructure (DB engine, SSO HTTP client) and the
  app-wide auth state (session store, login states, callback state machine).
- Provide a single composition root where cross-cutting concerns live.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

import httpx
from fastapi import FastAPI

from lmeve_auth import __version__
from lmeve_auth.api.errors import install_error_handlers
from lmeve_auth.api.routers.auth import router as auth_router
from lmeve_auth.api.routers.corporations import router as corporations_router
from lmeve_auth.api.routers.health import router as health_router
from lmeve_auth.api.routers.permissions import router as permissions_router
from lmeve_auth.api.routers.users import router as users_router
from lmeve_auth.auth.session import SessionStore
from lmeve_auth.db.init_db import bootstrap
from lmeve_auth.db.session import create_engine, create_sessionmaker
from lmeve_auth.observability.logging import configure_logging, get_logger
from lmeve_auth.observability.middleware import RequestContextMiddleware
from lmeve_auth.services.callback_service import CallbackStateMachine
from lmeve_auth.settings import Settings
from lmeve_auth.sso.client import EveSsoClient
from lmeve_auth.sso.exchange import EveSsoExchange, IdentityExchange
from lmeve_auth.sso.login_state import LoginStateStore

log = get_logger(__name__)


def create_app(
    *,
    settings: Settings,
    exchange: IdentityExchange | None = None,
    http: httpx.AsyncClient | None = None,
) -> FastAPI:
    """
    `exchange` and `http` are injection points for tests; by default the app talks to the
    real EVE SSO through its own `httpx.AsyncClient`.
    """

    # Configure structured logging once at process startup (before app serves requests).
    configure_logging(
        service_name=settings.service_name,
        level=settings.log_level,
        json_logs=settings.env != "dev",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("startup", env=settings.env)
        engine = create_engine(settings)
        sessions = create_sessionmaker(engine)
        if settings.env in ("dev", "test"):
            # Dev/test convenience: create tables and the bootstrap administrator.
            await bootstrap(engine, sessions, settings)

        owns_http = http is None
        client_http = http or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.sso_exchange_timeout_seconds)
        )
        sso_client = EveSsoClient(settings=settings, http=client_http)

        store = SessionStore(session_ttl=timedelta(hours=settings.session_ttl_hours))
        store.init()
        login_states = LoginStateStore(ttl=timedelta(seconds=settings.login_state_ttl_seconds))

        app.state.settings = settings
        app.state.engine = engine
        app.state.sessionmaker = sessions
        app.state.sso_client = sso_client
        app.state.session_store = store
        app.state.login_states = login_states
        app.state.callback = CallbackStateMachine(
            sessions=sessions,
            session_store=store,
            exchange=exchange or EveSsoExchange(sso_client),
            login_states=login_states,
            settings=settings,
        )
        try:
            yield
        finally:
            # In-flight callbacks must not log anyone in after teardown.
            app.state.callback.cancel()
            store.teardown()
            if owns_http:
                await client_http.aclose()
            await engine.dispose()
            log.info("shutdown")

    app = FastAPI(
        title="LMeve Auth",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(RequestContextMiddleware)
    install_error_handlers(app)
    app.include_router(health_router, tags=["health"])
    app.include_router(auth_router)
    app.include_router(permissions_router)
    app.include_router(corporations_router)
    app.include_router(users_router)

    return app


# --- Module Notes -----------------------------------------------------------
# App composition stays here; business logic stays in routers/services/callback layers.
