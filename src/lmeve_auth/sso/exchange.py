"""
lmeve_auth.sso.exchange

Authorization-code exchange collaborator.

Responsibilities:
- Define the `IdentityExchange` contract consumed by the callback state machine.
- Compose the SSO/ESI client calls into one `VerifiedIdentity` (character, corporation,
  alliance, granted scopes, leadership flags, tokens).
- Map transport and provider failures to `ExchangeFailed`.
"""

from __future__ import annotations

from typing import Protocol

import httpx

from lmeve_auth.auth.errors import ExchangeFailed
from lmeve_auth.observability.logging import get_logger
from lmeve_auth.sso.client import EveSsoClient
from lmeve_auth.sso.models import VerifiedIdentity

log = get_logger(__name__)


class IdentityExchange(Protocol):
    async def exchange(self, *, code: str, verifier: str) -> VerifiedIdentity:
        """
        Return the verified identity for `code`, or raise `ExchangeFailed`.
        Implementations that know the registry may raise `OrganizationNotRegistered`.
        """
        ...


class EveSsoExchange:
    def __init__(self, client: EveSsoClient) -> None:
        self._client = client

    async def exchange(self, *, code: str, verifier: str) -> VerifiedIdentity:
        try:
            return await self._exchange(code=code, verifier=verifier)
        except httpx.HTTPStatusError as e:
            raise ExchangeFailed(
                f"Token exchange failed: {e.response.status_code} {e.response.text}".strip()
            ) from e
        except httpx.HTTPError as e:
            raise ExchangeFailed(f"Token exchange failed: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise ExchangeFailed(f"Unexpected identity payload from provider: {e}") from e

    async def _exchange(self, *, code: str, verifier: str) -> VerifiedIdentity:
        tokens = await self._client.exchange_code(code=code, verifier=verifier)
        verified = await self._client.verify(access_token=tokens.access_token)
        character_id = int(verified["CharacterID"])
        character_name = str(verified["CharacterName"])

        character = await self._client.character(character_id=character_id)
        corporation_id = int(character["corporation_id"])
        corporation = await self._client.corporation(corporation_id=corporation_id)

        roles = await self._client.character_roles(
            character_id=character_id, access_token=tokens.access_token
        )
        alliance_id = corporation.get("alliance_id") or character.get("alliance_id")
        alliance_name = (
            await self._client.alliance_name(alliance_id=int(alliance_id)) if alliance_id else None
        )

        scopes = tokens.scopes or tuple(
            s for s in str(verified.get("Scopes") or "").split(" ") if s
        )
        is_ceo = int(corporation.get("ceo_id") or 0) == character_id
        identity = VerifiedIdentity(
            character_id=character_id,
            character_name=character_name,
            corporation_id=corporation_id,
            corporation_name=str(corporation.get("name") or corporation_id),
            corporation_ticker=corporation.get("ticker"),
            alliance_id=int(alliance_id) if alliance_id else None,
            alliance_name=alliance_name,
            member_count=corporation.get("member_count"),
            scopes=scopes,
            provider_roles=tuple(roles),
            is_org_leader=is_ceo,
            is_org_officer=any(r.lower() == "director" for r in roles),
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_expires_at=tokens.expires_at,
        )
        log.info(
            "sso_identity_verified",
            character_id=character_id,
            corporation_id=corporation_id,
            is_org_leader=identity.is_org_leader,
            is_org_officer=identity.is_org_officer,
        )
        return identity
