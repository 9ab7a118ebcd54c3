"""
tests.test_smoke

Minimal smoke tests to validate the service can boot and serve core endpoints.

Responsibilities:
- Ensure the FastAPI app starts, bootstraps its database and answers health probes.
"""

from __future__ import annotations

import httpx
import pytest

from lmeve_auth.api.__main__ import insecure_settings
from lmeve_auth.api.app import create_app
from lmeve_auth.settings import Settings


@pytest.mark.asyncio
async def test_health_endpoints() -> None:
    app = create_app(
        settings=Settings(env="test", database_url="sqlite+aiosqlite:///:memory:", bcrypt_rounds=4)
    )

    # httpx ASGITransport does not manage lifespan automatically; do it explicitly.
    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            r = await client.get("/healthz")
            assert r.status_code == 200
            assert r.json()["status"] == "ok"

            r = await client.get("/readyz", headers={"x-request-id": "smoke-1"})
            assert r.status_code == 200
            assert r.json()["status"] == "ready"
            assert r.headers["x-request-id"] == "smoke-1"
            assert r.json()["sso_configured"] is False

            assert (await client.get("/openapi.json")).json()["info"]["title"] == "LMeve Auth"


def test_prod_refuses_development_secrets() -> None:
    assert insecure_settings(Settings(env="prod")) == ["jwt_secret", "admin_password"]
    hardened = Settings(env="prod", jwt_secret="s3cret", admin_password="long-random")
    assert insecure_settings(hardened) == []
