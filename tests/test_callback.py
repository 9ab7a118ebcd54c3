"""
tests.test_callback

SSO callback state machine: parameter validation, the success / error /
registration-required outcomes, pending registrations, cancellation, stale results and
re-entrancy.
"""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lmeve_auth.auth.errors import ExchangeFailed, OrganizationNotRegistered
from lmeve_auth.auth.models import AuthMethod, Principal
from lmeve_auth.auth.permissions import Role, permissions_for
from lmeve_auth.auth.session import SessionStore
from lmeve_auth.callback.reducers import append_audit
from lmeve_auth.callback.state import CallbackParams, CallbackStatus
from lmeve_auth.db.models import AuditEvent
from lmeve_auth.services.callback_service import CallbackStateMachine
from lmeve_auth.services.credential_registry import CredentialRegistry
from lmeve_auth.services.user_directory import UserDirectory
from lmeve_auth.settings import Settings
from lmeve_auth.sso.login_state import LoginStateStore

from .conftest import CEO_ID, CORP_ID, MEMBER_ID, FakeExchange, ceo_identity, make_identity


@pytest.fixture
def store() -> SessionStore:
    s = SessionStore()
    s.init()
    return s


@pytest.fixture
def login_states() -> LoginStateStore:
    return LoginStateStore()


def _machine(
    sessions: async_sessionmaker[AsyncSession],
    store: SessionStore,
    login_states: LoginStateStore,
    settings: Settings,
    exchange: FakeExchange,
) -> CallbackStateMachine:
    return CallbackStateMachine(
        sessions=sessions,
        session_store=store,
        exchange=exchange,
        login_states=login_states,
        settings=settings,
    )


def _redirect(login_states: LoginStateStore, code: str = "auth-code") -> CallbackParams:
    return CallbackParams(code=code, state=login_states.begin().state)


async def _register_corp(sessions: async_sessionmaker[AsyncSession]) -> None:
    async with sessions() as s:
        await CredentialRegistry(session=s).register(
            CORP_ID, "Test Industries", "corp-rt", ["esi-a.v1"], CEO_ID
        )


async def _is_configured(sessions: async_sessionmaker[AsyncSession]) -> bool:
    async with sessions() as s:
        return await CredentialRegistry(session=s).is_configured(CORP_ID)


@pytest.mark.asyncio
async def test_access_denied_is_reported_without_exchange(
    sessions, store, login_states, settings
) -> None:
    exchange = FakeExchange()
    machine = _machine(sessions, store, login_states, settings, exchange)

    outcome = await machine.handle(CallbackParams(error="access_denied", state="whatever"))

    assert outcome.status is CallbackStatus.error
    assert outcome.message == "Authentication was cancelled by user"
    assert outcome.error_kind == "provider_denied"
    assert exchange.calls == 0
    assert store.current() is None


@pytest.mark.asyncio
async def test_other_provider_error_carries_code(sessions, store, login_states, settings) -> None:
    exchange = FakeExchange()
    machine = _machine(sessions, store, login_states, settings, exchange)

    outcome = await machine.handle(CallbackParams(error="server_error"))

    assert outcome.message == "Authentication error: server_error"
    assert outcome.error_kind == "provider_error"
    assert exchange.calls == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "params",
    [
        CallbackParams(),
        CallbackParams(code="abc"),
        CallbackParams(state="xyz"),
        CallbackParams(code="", state=""),
    ],
)
async def test_missing_parameters_never_exchange(
    sessions, store, login_states, settings, params: CallbackParams
) -> None:
    exchange = FakeExchange()
    machine = _machine(sessions, store, login_states, settings, exchange)

    outcome = await machine.handle(params)

    assert outcome.status is CallbackStatus.error
    assert outcome.message == "Missing authentication parameters"
    assert outcome.error_kind == "missing_parameters"
    assert exchange.calls == 0


@pytest.mark.asyncio
async def test_forged_state_is_rejected(sessions, store, login_states, settings) -> None:
    exchange = FakeExchange()
    machine = _machine(sessions, store, login_states, settings, exchange)

    outcome = await machine.handle(CallbackParams(code="abc", state="forged"))

    assert outcome.error_kind == "invalid_state"
    assert exchange.calls == 0


@pytest.mark.asyncio
async def test_registered_member_logs_in(sessions, store, login_states, settings) -> None:
    await _register_corp(sessions)
    exchange = FakeExchange(make_identity(provider_roles=("Hangar_Query_1",)))
    machine = _machine(sessions, store, login_states, settings, exchange)
    request = login_states.begin()

    outcome = await machine.handle(CallbackParams(code="auth-code", state=request.state))

    assert outcome.status is CallbackStatus.success
    principal = outcome.principal
    assert principal is not None
    assert principal.role is Role.corp_member
    assert principal.permissions == permissions_for(Role.corp_member)
    assert principal.auth_method is AuthMethod.esi
    assert store.current() == principal
    assert exchange.last_verifier == request.verifier

    async with sessions() as s:
        user = await UserDirectory(session=s).get(principal.id)
        assert user is not None and user.character_id == MEMBER_ID
        events = (await s.execute(select(AuditEvent.event_type))).scalars().all()
    assert "LOGIN_COMPLETED" in events
    assert "PARAMS_VALIDATED" in events


@pytest.mark.asyncio
async def test_state_cannot_be_replayed(sessions, store, login_states, settings) -> None:
    await _register_corp(sessions)
    exchange = FakeExchange()
    machine = _machine(sessions, store, login_states, settings, exchange)
    params = _redirect(login_states)

    assert (await machine.handle(params)).status is CallbackStatus.success
    replay = await machine.handle(params)

    assert replay.error_kind == "invalid_state"
    assert exchange.calls == 1


@pytest.mark.asyncio
async def test_unregistered_corp_ceo_registers_and_logs_in(
    sessions, store, login_states, settings
) -> None:
    exchange = FakeExchange(ceo_identity())
    machine = _machine(sessions, store, login_states, settings, exchange)

    outcome = await machine.handle(_redirect(login_states))

    assert outcome.status is CallbackStatus.registration_required
    assert store.current() is None
    prompt = outcome.registration
    assert prompt is not None
    assert prompt.can_register is True
    assert prompt.corporation_id == CORP_ID

    done = await machine.register_and_finalize(prompt.ticket)

    assert done.status is CallbackStatus.success
    assert done.principal is not None
    assert done.principal.role is Role.corp_admin
    assert done.principal.permissions == permissions_for(Role.corp_admin)
    assert store.current() == done.principal
    assert await _is_configured(sessions) is True
    async with sessions() as s:
        corp = await CredentialRegistry(session=s).get(CORP_ID)
        assert corp is not None
        assert corp.refresh_token == "refresh-token"
        assert corp.registered_by == CEO_ID
        assert corp.scopes == list(ceo_identity().scopes)

    # The ticket is spent.
    again = await machine.finalize(prompt.ticket)
    assert again.error_kind == "registration_not_found"


@pytest.mark.asyncio
async def test_unregistered_corp_member_cannot_register(
    sessions, store, login_states, settings
) -> None:
    exchange = FakeExchange(make_identity())
    machine = _machine(sessions, store, login_states, settings, exchange)

    outcome = await machine.handle(_redirect(login_states))
    assert outcome.status is CallbackStatus.registration_required
    assert outcome.registration is not None
    assert outcome.registration.can_register is False

    denied = await machine.register_and_finalize(outcome.registration.ticket)

    assert denied.status is CallbackStatus.error
    assert denied.error_kind == "insufficient_privilege"
    assert "Contact your CEO or Directors" in (denied.message or "")
    assert store.current() is None
    assert await _is_configured(sessions) is False
    assert machine.pending(outcome.registration.ticket) is None


@pytest.mark.asyncio
async def test_director_may_register(sessions, store, login_states, settings) -> None:
    exchange = FakeExchange(
        make_identity(character_id=CEO_ID + 5, provider_roles=("Director",), is_org_officer=True)
    )
    machine = _machine(sessions, store, login_states, settings, exchange)

    outcome = await machine.handle(_redirect(login_states))
    assert outcome.registration is not None and outcome.registration.can_register

    done = await machine.register_and_finalize(outcome.registration.ticket)
    assert done.status is CallbackStatus.success
    assert done.principal is not None and done.principal.role is Role.corp_director


@pytest.mark.asyncio
async def test_exchange_reporting_unregistered_org_skips_registry_check(
    sessions, store, login_states, settings
) -> None:
    # Even a configured corporation follows the exchange's verdict.
    await _register_corp(sessions)
    exchange = FakeExchange(error=OrganizationNotRegistered(ceo_identity()))
    machine = _machine(sessions, store, login_states, settings, exchange)

    outcome = await machine.handle(_redirect(login_states))

    assert outcome.status is CallbackStatus.registration_required
    assert outcome.registration is not None
    assert outcome.registration.character_id == CEO_ID
    assert 'Corporation "Test Industries" is not registered' in (outcome.message or "")


@pytest.mark.asyncio
async def test_finalize_after_out_of_band_registration(
    sessions, store, login_states, settings
) -> None:
    machine = _machine(sessions, store, login_states, settings, FakeExchange(make_identity()))

    outcome = await machine.handle(_redirect(login_states))
    assert outcome.registration is not None
    ticket = outcome.registration.ticket

    # Still unregistered: same ticket comes back.
    still = await machine.finalize(ticket)
    assert still.status is CallbackStatus.registration_required
    assert still.registration is not None and still.registration.ticket == ticket

    await _register_corp(sessions)
    done = await machine.finalize(ticket)
    assert done.status is CallbackStatus.success
    assert store.current() == done.principal


@pytest.mark.asyncio
async def test_abandon_discards_ticket(sessions, store, login_states, settings) -> None:
    machine = _machine(sessions, store, login_states, settings, FakeExchange(ceo_identity()))
    outcome = await machine.handle(_redirect(login_states))
    assert outcome.registration is not None
    ticket = outcome.registration.ticket

    abandoned = machine.abandon(ticket)

    assert abandoned.status is CallbackStatus.error
    assert abandoned.message == "Registration abandoned"
    assert (await machine.register_and_finalize(ticket)).error_kind == "registration_not_found"
    assert store.current() is None


@pytest.mark.asyncio
async def test_empty_scopes_keep_ticket(sessions, store, login_states, settings) -> None:
    machine = _machine(sessions, store, login_states, settings, FakeExchange(ceo_identity()))
    outcome = await machine.handle(_redirect(login_states))
    assert outcome.registration is not None
    ticket = outcome.registration.ticket

    failed = await machine.register_and_finalize(ticket, scopes=[" "])

    assert failed.error_kind == "scopes_empty"
    assert await _is_configured(sessions) is False
    assert machine.pending(ticket) is not None
    assert (await machine.register_and_finalize(ticket)).status is CallbackStatus.success


@pytest.mark.asyncio
async def test_registration_records_only_granted_scopes(
    sessions, store, login_states, settings
) -> None:
    machine = _machine(sessions, store, login_states, settings, FakeExchange(ceo_identity()))
    outcome = await machine.handle(_redirect(login_states))
    assert outcome.registration is not None
    ticket = outcome.registration.ticket
    required = list(settings.registration_required_scopes)

    forged = await machine.register_and_finalize(
        ticket, scopes=[*required, "esi-wallet.read_corporation_wallets.v1"]
    )

    assert forged.error_kind == "scopes_not_granted"
    assert "esi-wallet.read_corporation_wallets.v1" in forged.message
    assert await _is_configured(sessions) is False
    assert machine.pending(ticket) is not None

    done = await machine.register_and_finalize(
        ticket, scopes=[*required, "esi-assets.read_corporation_assets.v1"]
    )
    assert done.status is CallbackStatus.success
    async with sessions() as s:
        corp = await CredentialRegistry(session=s).get(CORP_ID)
        assert corp is not None
        assert corp.scopes == [*required, "esi-assets.read_corporation_assets.v1"]


@pytest.mark.asyncio
async def test_registration_requires_roles_and_membership_scopes(
    sessions, store, login_states, settings
) -> None:
    identity = ceo_identity(scopes=("esi-assets.read_corporation_assets.v1",))
    machine = _machine(sessions, store, login_states, settings, FakeExchange(identity))
    outcome = await machine.handle(_redirect(login_states))
    assert outcome.registration is not None
    ticket = outcome.registration.ticket

    failed = await machine.register_and_finalize(ticket)

    assert failed.error_kind == "missing_required_scopes"
    for scope in settings.registration_required_scopes:
        assert scope in failed.message
    assert await _is_configured(sessions) is False
    assert store.current() is None

    # Narrowing a full grant below the required set fails the same way.
    machine = _machine(sessions, store, login_states, settings, FakeExchange(ceo_identity()))
    ticket = (await machine.handle(_redirect(login_states))).registration.ticket
    narrowed = await machine.register_and_finalize(
        ticket, scopes=["esi-assets.read_corporation_assets.v1"]
    )
    assert narrowed.error_kind == "missing_required_scopes"
    assert "esi-assets" not in narrowed.message


@pytest.mark.asyncio
async def test_exchange_failure_is_reported(sessions, store, login_states, settings) -> None:
    exchange = FakeExchange(error=ExchangeFailed("Token exchange failed: 400 invalid_grant"))
    machine = _machine(sessions, store, login_states, settings, exchange)

    outcome = await machine.handle(_redirect(login_states))

    assert outcome.status is CallbackStatus.error
    assert outcome.error_kind == "exchange_failed"
    assert outcome.message == "Token exchange failed: 400 invalid_grant"
    assert store.current() is None


@pytest.mark.asyncio
async def test_exchange_timeout(sessions, store, login_states, settings) -> None:
    exchange = FakeExchange()
    exchange.gate = asyncio.Event()  # never released
    quick = settings.model_copy(update={"sso_exchange_timeout_seconds": 0.05})
    machine = _machine(sessions, store, login_states, quick, exchange)

    outcome = await machine.handle(_redirect(login_states))

    assert outcome.error_kind == "exchange_failed"
    assert outcome.message == "Token exchange timed out"


@pytest.mark.asyncio
async def test_second_callback_while_in_flight_is_rejected(
    sessions, store, login_states, settings
) -> None:
    await _register_corp(sessions)
    exchange = FakeExchange()
    exchange.gate = asyncio.Event()
    machine = _machine(sessions, store, login_states, settings, exchange)

    first = asyncio.create_task(machine.handle(_redirect(login_states)))
    await exchange.entered.wait()
    assert machine.in_flight

    second = await machine.handle(_redirect(login_states))
    assert second.error_kind == "callback_in_flight"

    exchange.gate.set()
    assert (await first).status is CallbackStatus.success
    assert exchange.calls == 1


@pytest.mark.asyncio
async def test_cancelled_callback_does_not_log_in(sessions, store, login_states, settings) -> None:
    await _register_corp(sessions)
    exchange = FakeExchange()
    exchange.gate = asyncio.Event()
    machine = _machine(sessions, store, login_states, settings, exchange)

    task = asyncio.create_task(machine.handle(_redirect(login_states)))
    await exchange.entered.wait()
    machine.cancel()
    exchange.gate.set()

    outcome = await task
    assert outcome.error_kind == "callback_cancelled"
    assert store.current() is None


@pytest.mark.asyncio
async def test_late_result_does_not_clobber_newer_session(
    sessions, store, login_states, settings
) -> None:
    await _register_corp(sessions)
    exchange = FakeExchange()
    exchange.gate = asyncio.Event()
    machine = _machine(sessions, store, login_states, settings, exchange)

    task = asyncio.create_task(machine.handle(_redirect(login_states)))
    await exchange.entered.wait()
    newer = store.login(
        Principal(
            id="local-1",
            display_name="Admin",
            auth_method=AuthMethod.local,
            role=Role.super_admin,
        )
    )
    exchange.gate.set()

    outcome = await task
    assert outcome.error_kind == "stale_session"
    assert store.current() == newer


@pytest.mark.asyncio
async def test_disabled_user_cannot_log_in(sessions, store, login_states, settings) -> None:
    await _register_corp(sessions)
    async with sessions() as s:
        directory = UserDirectory(session=s, bcrypt_rounds=4)
        user = await directory.upsert_sso_user(make_identity(), Role.corp_member)
        await directory.deactivate(user.id)

    machine = _machine(sessions, store, login_states, settings, FakeExchange(make_identity()))
    outcome = await machine.handle(_redirect(login_states))

    assert outcome.error_kind == "account_disabled"
    assert store.current() is None


def test_audit_reducer_stamps_steps_in_order() -> None:
    merged = append_audit([], [{"event": "PARAMS_VALIDATED", "details": {}}])
    merged = append_audit(merged, [{"event": "EXCHANGE_COMPLETED", "details": {"x": 1}}])

    assert [e["event"] for e in merged] == ["PARAMS_VALIDATED", "EXCHANGE_COMPLETED"]
    assert [e["step"] for e in merged] == [0, 1]
    assert append_audit(None, None) == []


@pytest.mark.asyncio
async def test_persisted_audit_trail_keeps_node_order(
    sessions, store, login_states, settings
) -> None:
    await _register_corp(sessions)
    machine = _machine(sessions, store, login_states, settings, FakeExchange())
    await machine.handle(_redirect(login_states))

    async with sessions() as s:
        rows = (
            await s.execute(select(AuditEvent).where(AuditEvent.actor == str(MEMBER_ID)))
        ).scalars().all()
    ordered = [r.event_type for r in sorted(rows, key=lambda r: r.details["step"])]
    assert ordered == [
        "PARAMS_VALIDATED",
        "EXCHANGE_COMPLETED",
        "REGISTRATION_CHECKED",
        "LOGIN_COMPLETED",
    ]
    assert all(r.subject == str(CORP_ID) for r in rows)
