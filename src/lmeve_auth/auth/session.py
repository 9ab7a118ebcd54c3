"""
lmeve_auth.auth.session

Session/identity store: the single current principal.

Responsibilities:
- Hold the current principal with an explicit lifecycle (`init` / `teardown`).
- Attach permissions on login, role change and session reload.
- Bump a generation counter on every change so late callback results can be discarded.
- Notify subscribers (UI bindings) when the current principal changes.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from lmeve_auth.auth.errors import AccountDisabled, StaleSession
from lmeve_auth.auth.models import Principal
from lmeve_auth.auth.permissions import Role
from lmeve_auth.auth.resolver import resolve
from lmeve_auth.observability.logging import get_logger

log = get_logger(__name__)

Listener = Callable[[Principal | None], None]


def _now() -> datetime:
    return datetime.now(tz=UTC)


class SessionStore:
    """
    Injectable holder of the current principal.

    The store enforces shape, not authorization: callers check permissions before
    `update_role`. Every stored principal carries a resolved permission set.
    """

    def __init__(
        self,
        *,
        session_ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._session_ttl = session_ttl
        self._clock = clock
        self._principal: Principal | None = None
        self._generation = 0
        self._listeners: list[Listener] = []

    @property
    def generation(self) -> int:
        return self._generation

    def init(self) -> None:
        # Process start: no principal.
        self._principal = None
        self._generation = 0

    def teardown(self) -> None:
        self._set(None)
        self._listeners.clear()

    def current(self) -> Principal | None:
        principal = self._principal
        if principal is not None and not principal.is_session_valid(self._clock()):
            log.info("session_expired", principal_id=principal.id)
            self._set(None)
            return None
        return principal

    def login(self, principal: Principal, *, expected_generation: int | None = None) -> Principal:
        if expected_generation is not None and expected_generation != self._generation:
            raise StaleSession()
        if not principal.is_active:
            raise AccountDisabled()
        now = self._clock()
        stored = dataclasses.replace(
            resolve(principal),
            last_login=now,
            session_expires_at=now + self._session_ttl,
        )
        self._set(stored)
        log.info(
            "session_login",
            principal_id=stored.id,
            role=stored.role.value,
            auth_method=stored.auth_method.value,
        )
        return stored

    def restore(self, principal: Principal) -> Principal | None:
        """
        Reload a persisted session. Permissions are re-resolved from the role; the original
        expiry is kept when present. Expired or inactive sessions are not restored.
        """

        stored = resolve(principal)
        if stored.session_expires_at is None:
            stored = dataclasses.replace(
                stored, session_expires_at=self._clock() + self._session_ttl
            )
        if not stored.is_session_valid(self._clock()):
            log.info("session_restore_rejected", principal_id=stored.id)
            return None
        self._set(stored)
        log.info("session_restored", principal_id=stored.id)
        return stored

    def logout(self) -> None:
        if self._principal is None:
            return
        log.info("session_logout", principal_id=self._principal.id)
        self._set(None)

    def update_role(self, principal_id: str, role: Role) -> Principal | None:
        current = self._principal
        if current is None or current.id != principal_id:
            return None
        updated = resolve(dataclasses.replace(current, role=role))
        self._set(updated)
        log.info("session_role_updated", principal_id=principal_id, role=updated.role.value)
        return updated

    def replace_if_current(self, principal: Principal) -> Principal | None:
        """Refresh the stored principal's profile (e.g. after deactivation) if it is current."""

        current = self._principal
        if current is None or current.id != principal.id:
            return None
        if not principal.is_active:
            self._set(None)
            return None
        updated = resolve(
            dataclasses.replace(
                principal,
                last_login=current.last_login,
                session_expires_at=current.session_expires_at,
            )
        )
        self._set(updated)
        return updated

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _set(self, principal: Principal | None) -> None:
        self._principal = principal
        self._generation += 1
        for listener in list(self._listeners):
            listener(principal)


# --- Module Notes -----------------------------------------------------------
# The store lives on `app.state.session_store` and is handed to consumers explicitly;
# there is no module-level "current user".
