"""
lmeve_auth.services.callback_service

SSO callback lifecycle service (transaction + session owner).

Responsibilities:
- Run the callback graph for one provider redirect at a time (reject, never queue).
- Discard results of cancelled or superseded invocations instead of applying them.
- Retain verified identities for corporations that still need registration, keyed by an
  opaque ticket, and finish those logins once the corporation is registered.
- Persist the audit trail produced by each invocation.
"""

from __future__ import annotations

import asyncio
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lmeve_auth.auth.errors import (
    AuthError,
    CallbackCancelled,
    CallbackInFlight,
    ExchangeFailed,
    InsufficientPrivilegeToRegister,
    MissingRequiredScopes,
    OrganizationNotRegistered,
    RegistrationNotFound,
    ScopesEmpty,
    ScopesNotGranted,
)
from lmeve_auth.auth.models import Principal
from lmeve_auth.auth.permissions import Role
from lmeve_auth.auth.resolver import meets_role
from lmeve_auth.auth.session import SessionStore
from lmeve_auth.callback.graph import build_callback_graph, build_resume_graph
from lmeve_auth.callback.nodes import prospective_principal
from lmeve_auth.callback.state import (
    CallbackOutcome,
    CallbackParams,
    CallbackState,
    CallbackStatus,
    RegistrationPrompt,
)
from lmeve_auth.db.repositories.audit import AuditRepo
from lmeve_auth.observability.logging import get_logger
from lmeve_auth.services.credential_registry import CredentialRegistry, normalize_scopes
from lmeve_auth.services.user_directory import UserDirectory, principal_from_user
from lmeve_auth.settings import Settings
from lmeve_auth.sso.exchange import IdentityExchange
from lmeve_auth.sso.login_state import LoginStateStore
from lmeve_auth.sso.models import VerifiedIdentity

log = get_logger(__name__)

# Minimum rank allowed to register a corporation's credentials (CEO maps to corp_admin).
REGISTRATION_MIN_ROLE = Role.corp_director


def _now() -> datetime:
    return datetime.now(tz=UTC)


def registration_scopes(
    identity: VerifiedIdentity, requested: list[str] | None, required: list[str]
) -> list[str]:
    """
    Scopes to record for a registration: the requested subset of what the provider granted.

    Defaults to everything granted. Raises `ScopesEmpty`, `ScopesNotGranted` or
    `MissingRequiredScopes`.
    """

    scopes = normalize_scopes(identity.scopes if requested is None else requested)
    if not scopes:
        raise ScopesEmpty()
    ungranted = [s for s in scopes if s not in identity.scopes]
    if ungranted:
        raise ScopesNotGranted(ungranted)
    missing = [s for s in required if s not in scopes]
    if missing:
        raise MissingRequiredScopes(missing)
    return scopes


@dataclass(frozen=True, slots=True)
class PendingRegistration:
    ticket: str
    identity: VerifiedIdentity
    prospective: Principal
    created_at: datetime


class CallbackStateMachine:
    """
    App-wide owner of callback processing.

    One instance lives on `app.state.callback`; DB sessions are opened per invocation.
    """

    def __init__(
        self,
        *,
        sessions: async_sessionmaker[AsyncSession],
        session_store: SessionStore,
        exchange: IdentityExchange,
        login_states: LoginStateStore,
        settings: Settings,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._sessions = sessions
        self._store = session_store
        self._exchange = exchange
        self._login_states = login_states
        self._settings = settings
        self._clock = clock
        self._registration_ttl = timedelta(seconds=settings.registration_ttl_seconds)

        self._lock = asyncio.Lock()
        self._epoch = 0
        self._pending: dict[str, PendingRegistration] = {}

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    def pending(self, ticket: str) -> PendingRegistration | None:
        self._prune()
        return self._pending.get(ticket)

    def cancel(self) -> None:
        # Results of invocations started before this call are discarded on arrival.
        self._epoch += 1
        log.info("callback_cancelled", epoch=self._epoch)

    async def handle(self, params: CallbackParams) -> CallbackOutcome:
        if self._lock.locked():
            return _rejected(CallbackInFlight())

        async with self._lock:
            epoch = self._epoch
            generation = self._store.generation
            initial: CallbackState = {
                "code": params.code,
                "anti_forgery_state": params.state,
                "provider_error": params.error,
                "status": CallbackStatus.processing.value,
                "error_kind": None,
                "error_message": None,
                "audit_log": [],
            }
            async with self._sessions() as session:
                graph = build_callback_graph(
                    login_states=self._login_states,
                    exchange=self._exchange,
                    timeout_seconds=self._settings.sso_exchange_timeout_seconds,
                    is_configured=CredentialRegistry(session=session).is_configured,
                    commit_login=self._login_committer(
                        session, epoch=epoch, generation=generation
                    ),
                )
                final = await self._run(graph, initial)
                outcome = self._outcome(final, epoch=epoch)
                await self._persist_audit(session, final)
            return outcome

    async def finalize(self, ticket: str) -> CallbackOutcome:
        """Re-check registration for a retained identity and log in when configured."""

        if self._lock.locked():
            return _rejected(CallbackInFlight())
        async with self._lock:
            pending = self.pending(ticket)
            if pending is None:
                return _rejected(RegistrationNotFound())
            return await self._resume(pending)

    async def register_and_finalize(
        self, ticket: str, *, scopes: list[str] | None = None
    ) -> CallbackOutcome:
        """
        Register the pending identity's corporation with its refresh token, then log in.

        Only principals of at least corp_director rank may register; otherwise the ticket is
        discarded and the attempt ends.
        """

        if self._lock.locked():
            return _rejected(CallbackInFlight())
        async with self._lock:
            pending = self.pending(ticket)
            if pending is None:
                return _rejected(RegistrationNotFound())

            identity = pending.identity
            if not meets_role(pending.prospective, REGISTRATION_MIN_ROLE):
                self._pending.pop(ticket, None)
                log.warning(
                    "registration_denied",
                    character_id=identity.character_id,
                    corporation_id=identity.corporation_id,
                    role=pending.prospective.role.value,
                )
                return _rejected(InsufficientPrivilegeToRegister())
            if not identity.refresh_token:
                self._pending.pop(ticket, None)
                return _rejected(ExchangeFailed("The provider did not issue a refresh token"))

            try:
                granted = registration_scopes(
                    identity, scopes, self._settings.registration_required_scopes
                )
            except AuthError as e:
                # Nothing was written; the ticket stays usable.
                log.info("registration_scopes_rejected", corporation_id=identity.corporation_id)
                return _rejected(e)

            async with self._sessions() as session:
                await CredentialRegistry(session=session).register(
                    identity.corporation_id,
                    identity.corporation_name,
                    identity.refresh_token,
                    granted,
                    identity.character_id,
                    ticker=identity.corporation_ticker,
                    member_count=identity.member_count,
                )
            return await self._resume(pending)

    def abandon(self, ticket: str) -> CallbackOutcome:
        pending = self._pending.pop(ticket, None)
        if pending is None:
            return _rejected(RegistrationNotFound())
        log.info("registration_abandoned", corporation_id=pending.identity.corporation_id)
        return CallbackOutcome(
            status=CallbackStatus.error,
            error_kind=OrganizationNotRegistered.kind.value,
            message="Registration abandoned",
        )

    async def _resume(self, pending: PendingRegistration) -> CallbackOutcome:
        epoch = self._epoch
        generation = self._store.generation
        initial: CallbackState = {
            "identity": pending.identity,
            "prospective": pending.prospective,
            "status": CallbackStatus.processing.value,
            "error_kind": None,
            "error_message": None,
            "audit_log": [],
        }
        async with self._sessions() as session:
            graph = build_resume_graph(
                is_configured=CredentialRegistry(session=session).is_configured,
                commit_login=self._login_committer(session, epoch=epoch, generation=generation),
            )
            final = await self._run(graph, initial)
            outcome = self._outcome(final, epoch=epoch, ticket=pending.ticket)
            await self._persist_audit(session, final)

        if outcome.status != CallbackStatus.registration_required:
            self._pending.pop(pending.ticket, None)
        return outcome

    async def _run(self, graph: Any, initial: CallbackState) -> CallbackState:
        try:
            return await graph.ainvoke(initial)
        except Exception:
            log.exception("callback_graph_crashed")
            raise

    def _login_committer(self, session: AsyncSession, *, epoch: int, generation: int):
        directory = UserDirectory(session=session, bcrypt_rounds=self._settings.bcrypt_rounds)

        async def _commit(identity: VerifiedIdentity, prospective: Principal) -> Principal:
            if epoch != self._epoch:
                raise CallbackCancelled()
            user = await directory.upsert_sso_user(identity, prospective.role)
            if epoch != self._epoch:
                raise CallbackCancelled()
            # StaleSession when another login/logout happened since the invocation began.
            return self._store.login(principal_from_user(user), expected_generation=generation)

        return _commit

    def _outcome(
        self, final: CallbackState, *, epoch: int, ticket: str | None = None
    ) -> CallbackOutcome:
        status = CallbackStatus(final.get("status", CallbackStatus.error.value))

        if epoch != self._epoch:
            if status == CallbackStatus.success:
                principal = final.get("principal")
                current = self._store.current()
                if principal is not None and current is not None and current.id == principal.id:
                    self._store.logout()
            if ticket is not None:
                self._pending.pop(ticket, None)
            return _rejected(CallbackCancelled())

        if status == CallbackStatus.success:
            principal = final["principal"]
            return CallbackOutcome(
                status=status,
                message=f"Welcome, {principal.display_name}",
                principal=principal,
            )

        if status == CallbackStatus.registration_required:
            identity = final["identity"]
            prospective = final.get("prospective") or prospective_principal(identity)
            prompt = self._retain(identity, prospective, ticket=ticket)
            return CallbackOutcome(
                status=status,
                message=OrganizationNotRegistered(identity).message,
                registration=prompt,
            )

        return CallbackOutcome.error(
            str(final.get("error_kind") or ExchangeFailed.kind.value),
            str(final.get("error_message") or ExchangeFailed.default_message),
        )

    def _retain(
        self, identity: VerifiedIdentity, prospective: Principal, *, ticket: str | None
    ) -> RegistrationPrompt:
        self._prune()
        pending = self._pending.get(ticket) if ticket else None
        if pending is None:
            pending = PendingRegistration(
                ticket=secrets.token_urlsafe(24),
                identity=identity,
                prospective=prospective,
                created_at=self._clock(),
            )
            self._pending[pending.ticket] = pending
        log.info(
            "registration_required",
            corporation_id=identity.corporation_id,
            character_id=identity.character_id,
        )
        return RegistrationPrompt(
            ticket=pending.ticket,
            corporation_id=identity.corporation_id,
            corporation_name=identity.corporation_name,
            corporation_ticker=identity.corporation_ticker,
            character_id=identity.character_id,
            character_name=identity.character_name,
            can_register=meets_role(prospective, REGISTRATION_MIN_ROLE),
        )

    def _prune(self) -> None:
        cutoff = self._clock() - self._registration_ttl
        for key in [k for k, p in self._pending.items() if p.created_at < cutoff]:
            del self._pending[key]

    async def _persist_audit(self, session: AsyncSession, state: CallbackState) -> None:
        entries = state.get("audit_log", [])
        if not entries:
            return
        identity = state.get("identity")
        actor = str(identity.character_id) if identity is not None else "anonymous"
        audit = AuditRepo(session)
        for entry in entries:
            await audit.add(
                actor=actor,
                event_type=str(entry.get("event", "UNKNOWN")),
                subject=str(identity.corporation_id) if identity is not None else None,
                details={**entry.get("details", {}), "step": entry.get("step")},
            )
        await session.commit()


def _rejected(err: AuthError) -> CallbackOutcome:
    log.info("callback_rejected", error_kind=err.kind.value)
    return CallbackOutcome.error(err.kind.value, err.message)


# --- Module Notes -----------------------------------------------------------
# Pending registrations are process-local; a restart drops them and the user signs in again.
