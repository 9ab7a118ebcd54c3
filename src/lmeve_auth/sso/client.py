"""
lmeve_auth.sso.client

HTTP client boundary for the EVE Online SSO and ESI endpoints.

Responsibilities:
- Build the authorization URL (PKCE S256).
- Exchange authorization codes and refresh tokens at the token endpoint.
- Read the verified character, its corporation roles, corporation and alliance records.
- Revoke tokens on logout.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any
from urllib.parse import urlencode

import httpx

from lmeve_auth.observability.logging import get_logger
from lmeve_auth.settings import Settings
from lmeve_auth.sso.models import TokenSet

log = get_logger(__name__)


class EveSsoClient:
    """
    Thin async wrapper over the SSO/ESI HTTP API.

    Errors surface as `httpx.HTTPError` (including `HTTPStatusError` from
    `raise_for_status`); the exchange layer maps them to the auth taxonomy.
    """

    def __init__(self, *, settings: Settings, http: httpx.AsyncClient) -> None:
        self._settings = settings
        self._http = http
        self._sso = settings.sso_base_url.rstrip("/")
        self._esi = settings.esi_base_url.rstrip("/")

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        headers = {"User-Agent": self._settings.sso_user_agent}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def _client_auth(self) -> tuple[httpx.BasicAuth | None, dict[str, str]]:
        # Confidential clients authenticate with HTTP basic; public (PKCE-only) clients send
        # their client_id in the form body.
        if self._settings.sso_client_secret:
            auth = httpx.BasicAuth(self._settings.sso_client_id, self._settings.sso_client_secret)
            return auth, {}
        return None, {"client_id": self._settings.sso_client_id}

    def authorize_url(
        self,
        *,
        state: str,
        challenge: str,
        scopes: Sequence[str] | None = None,
        client_id: str | None = None,
    ) -> str:
        params = {
            "response_type": "code",
            "redirect_uri": self._settings.sso_redirect_uri,
            "client_id": client_id or self._settings.sso_client_id,
            "scope": " ".join(scopes if scopes is not None else self._settings.sso_scopes),
            "code_challenge": challenge,
            "code_challenge_method": "S256",
            "state": state,
        }
        return f"{self._sso}/v2/oauth/authorize?{urlencode(params)}"

    async def exchange_code(self, *, code: str, verifier: str) -> TokenSet:
        auth, extra = self._client_auth()
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._settings.sso_redirect_uri,
            "code_verifier": verifier,
            **extra,
        }
        kwargs: dict[str, Any] = {"data": data, "headers": self._headers()}
        if auth is not None:
            kwargs["auth"] = auth
        r = await self._http.post(f"{self._sso}/v2/oauth/token", **kwargs)
        r.raise_for_status()
        return TokenSet.from_response(r.json())

    async def refresh(self, *, refresh_token: str) -> TokenSet:
        auth, extra = self._client_auth()
        data = {"grant_type": "refresh_token", "refresh_token": refresh_token, **extra}
        kwargs: dict[str, Any] = {"data": data, "headers": self._headers()}
        if auth is not None:
            kwargs["auth"] = auth
        r = await self._http.post(f"{self._sso}/v2/oauth/token", **kwargs)
        r.raise_for_status()
        return TokenSet.from_response(r.json())

    async def verify(self, *, access_token: str) -> dict[str, Any]:
        # Returns CharacterID, CharacterName, Scopes (space separated), ExpiresOn, ...
        r = await self._http.get(f"{self._sso}/oauth/verify", headers=self._headers(access_token))
        r.raise_for_status()
        return r.json()

    async def character(self, *, character_id: int) -> dict[str, Any]:
        r = await self._http.get(
            f"{self._esi}/latest/characters/{character_id}/", headers=self._headers()
        )
        r.raise_for_status()
        return r.json()

    async def character_roles(self, *, character_id: int, access_token: str) -> list[str]:
        # Missing roles scope or an ESI hiccup limits the role, it does not fail the login.
        try:
            r = await self._http.get(
                f"{self._esi}/latest/characters/{character_id}/roles/",
                headers=self._headers(access_token),
            )
        except httpx.HTTPError as e:
            log.warning("character_roles_unavailable", character_id=character_id, error=str(e))
            return []
        if r.status_code != 200:
            log.warning(
                "character_roles_unavailable", character_id=character_id, status=r.status_code
            )
            return []
        return [str(role) for role in r.json().get("roles", [])]

    async def corporation(self, *, corporation_id: int) -> dict[str, Any]:
        r = await self._http.get(
            f"{self._esi}/latest/corporations/{corporation_id}/", headers=self._headers()
        )
        r.raise_for_status()
        return r.json()

    async def alliance_name(self, *, alliance_id: int) -> str | None:
        try:
            r = await self._http.get(
                f"{self._esi}/latest/alliances/{alliance_id}/", headers=self._headers()
            )
            r.raise_for_status()
        except httpx.HTTPError as e:
            log.warning("alliance_lookup_failed", alliance_id=alliance_id, error=str(e))
            return None
        return r.json().get("name")

    async def revoke(self, *, token: str, token_type_hint: str = "refresh_token") -> None:
        auth, extra = self._client_auth()
        kwargs: dict[str, Any] = {
            "data": {"token_type_hint": token_type_hint, "token": token, **extra},
            "headers": self._headers(),
        }
        if auth is not None:
            kwargs["auth"] = auth
        r = await self._http.post(f"{self._sso}/v2/oauth/revoke", **kwargs)
        r.raise_for_status()


# --- Module Notes -----------------------------------------------------------
# Timeouts are configured on the injected `httpx.AsyncClient`; the callback service also
# bounds the whole exchange with `sso_exchange_timeout_seconds`.
