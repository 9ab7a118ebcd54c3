"""
tests.test_session_store

Session/identity store lifecycle, generation counter and listeners.
"""

from __future__ import annotations

import dataclasses
from datetime import UTC, datetime, timedelta

import pytest

from lmeve_auth.auth.errors import AccountDisabled, StaleSession
from lmeve_auth.auth.models import AuthMethod, Principal
from lmeve_auth.auth.permissions import Role, permissions_for
from lmeve_auth.auth.session import SessionStore


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now


def _principal(role: Role = Role.corp_member, **kw: object) -> Principal:
    return Principal(
        id="esi_1", display_name="Pilot", auth_method=AuthMethod.esi, role=role, **kw
    )


def test_login_attaches_permissions_and_expiry() -> None:
    clock = Clock()
    store = SessionStore(clock=clock)
    store.init()

    stored = store.login(_principal(Role.corp_manager))

    assert stored.permissions == permissions_for(Role.corp_manager)
    assert stored.last_login == clock.now
    assert stored.session_expires_at == clock.now + timedelta(hours=24)
    assert store.current() == stored


def test_expired_session_is_cleared() -> None:
    clock = Clock()
    store = SessionStore(session_ttl=timedelta(hours=1), clock=clock)
    store.login(_principal())

    clock.now += timedelta(hours=2)
    assert store.current() is None


def test_logout_is_idempotent() -> None:
    store = SessionStore()
    store.login(_principal())
    store.logout()
    generation = store.generation
    store.logout()
    assert store.current() is None
    assert store.generation == generation


def test_stale_generation_is_rejected() -> None:
    store = SessionStore()
    started = store.generation
    store.login(_principal(Role.super_admin))

    with pytest.raises(StaleSession):
        store.login(_principal(Role.corp_member), expected_generation=started)
    assert store.current().role is Role.super_admin  # type: ignore[union-attr]


def test_inactive_principal_cannot_log_in() -> None:
    store = SessionStore()
    with pytest.raises(AccountDisabled):
        store.login(_principal(is_active=False))
    assert store.current() is None


def test_update_role_re_resolves_only_matching_principal() -> None:
    store = SessionStore()
    store.login(_principal(Role.corp_member))

    assert store.update_role("someone-else", Role.corp_admin) is None
    updated = store.update_role("esi_1", Role.corp_admin)

    assert updated is not None
    assert updated.permissions == permissions_for(Role.corp_admin)
    assert store.current() == updated


def test_replace_if_current_logs_out_deactivated_principal() -> None:
    store = SessionStore()
    store.login(_principal())
    store.replace_if_current(dataclasses.replace(_principal(), is_active=False))
    assert store.current() is None


def test_restore_re_resolves_and_rejects_expired() -> None:
    clock = Clock()
    store = SessionStore(clock=clock)

    restored = store.restore(
        _principal(Role.corp_director, session_expires_at=clock.now + timedelta(hours=3))
    )
    assert restored is not None
    assert restored.permissions == permissions_for(Role.corp_director)

    store.logout()
    expired = _principal(session_expires_at=clock.now - timedelta(seconds=1))
    assert store.restore(expired) is None
    assert store.current() is None


def test_listeners_see_every_change_until_unsubscribed() -> None:
    store = SessionStore()
    seen: list[Principal | None] = []
    unsubscribe = store.subscribe(seen.append)

    store.login(_principal())
    store.logout()
    unsubscribe()
    store.login(_principal())

    assert len(seen) == 2
    assert seen[0] is not None and seen[1] is None


def test_teardown_clears_principal() -> None:
    store = SessionStore()
    store.init()
    store.login(_principal())
    store.teardown()
    assert store.current() is None
