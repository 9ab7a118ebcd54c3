"""
tests.test_login_state

PKCE login requests: single use, expiry, challenge derivation.
"""

from __future__ import annotations

import base64
import hashlib
from datetime import UTC, datetime, timedelta

import pytest

from lmeve_auth.auth.errors import InvalidState, StateExpired
from lmeve_auth.sso.login_state import LoginStateStore, pkce_challenge


def test_challenge_is_s256_of_verifier() -> None:
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    expected = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).rstrip(b"=")
    assert pkce_challenge(verifier) == expected.decode()


def test_state_is_consumed_once() -> None:
    store = LoginStateStore()
    request = store.begin(corporation_id=42)

    consumed = store.consume(request.state)
    assert consumed.verifier == request.verifier
    assert consumed.corporation_id == 42
    assert pkce_challenge(consumed.verifier) == request.challenge

    with pytest.raises(InvalidState):
        store.consume(request.state)


def test_unknown_state_is_rejected() -> None:
    with pytest.raises(InvalidState):
        LoginStateStore().consume("forged")


def test_expired_state_is_rejected() -> None:
    now = [datetime(2026, 1, 1, tzinfo=UTC)]
    store = LoginStateStore(ttl=timedelta(minutes=5), clock=lambda: now[0])
    request = store.begin()

    now[0] += timedelta(minutes=6)
    with pytest.raises(StateExpired):
        store.consume(request.state)


def test_begin_prunes_stale_requests() -> None:
    now = [datetime(2026, 1, 1, tzinfo=UTC)]
    store = LoginStateStore(ttl=timedelta(minutes=5), clock=lambda: now[0])
    store.begin()
    store.begin()
    assert len(store) == 2

    now[0] += timedelta(minutes=10)
    store.begin()
    assert len(store) == 1
