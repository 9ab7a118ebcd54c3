"""
lmeve_auth.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for all layers.
- Hide secrets from repr/logging (SSO client secret, JWT secret, admin password).
- Offer a cached settings instance for dependency injection.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SSO_SCOPES: tuple[str, ...] = (
    "esi-characters.read_corporation_roles.v1",
    "esi-corporations.read_corporation_membership.v1",
    "esi-corporations.read_titles.v1",
    "esi-corporations.read_blueprints.v1",
    "esi-assets.read_corporation_assets.v1",
    "esi-industry.read_corporation_jobs.v1",
    "esi-markets.read_corporation_orders.v1",
    "esi-wallet.read_corporation_wallets.v1",
    "esi-killmails.read_corporation_killmails.v1",
    "esi-contracts.read_corporation_contracts.v1",
)

# A corporation credential without these cannot resolve member roles.
REQUIRED_REGISTRATION_SCOPES: tuple[str, ...] = (
    "esi-characters.read_corporation_roles.v1",
    "esi-corporations.read_corporation_membership.v1",
)


class Settings(BaseSettings):
    """
    Env-driven configuration:
    - Defaults safe for local dev
    - Single settings object injected across layers
    """

    model_config = SettingsConfigDict(env_prefix="LMEVE_", case_sensitive=False)

    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "lmeve-auth"
    log_level: str = "INFO"

    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Session tokens
    jwt_alg: str = "HS256"
    jwt_issuer: str = "lmeve-auth"
    jwt_audience: str = "lmeve-dashboard"
    jwt_secret: str = Field(default="dev-secret-change-me", repr=False)
    session_ttl_hours: int = 24

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./lmeve_auth.db"

    # EVE SSO / ESI
    sso_base_url: str = "https://login.eveonline.com"
    esi_base_url: str = "https://esi.evetech.net"
    sso_client_id: str = ""
    sso_client_secret: str = Field(default="", repr=False)
    sso_redirect_uri: str = "http://localhost:8080/v1/auth/callback"
    sso_scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SSO_SCOPES))
    sso_user_agent: str = "LMeve/1.0 (https://github.com/dstevens79/lmeve)"
    sso_exchange_timeout_seconds: float = 15.0

    # Callback lifecycle
    login_state_ttl_seconds: int = 300
    registration_ttl_seconds: int = 900
    registration_required_scopes: list[str] = Field(
        default_factory=lambda: list(REQUIRED_REGISTRATION_SCOPES)
    )

    # Local accounts
    admin_username: str = "admin"
    admin_password: str = Field(default="change-me", repr=False)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each request dependency.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# `sso_client_id` may be overridden per corporation in the credential registry
# (`Corporation.client_id`); this is the global default.
