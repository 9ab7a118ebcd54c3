"""
lmeve_auth.auth.errors

Typed error taxonomy for the auth core.

Responsibilities:
- Give every failure a machine-checkable `kind` plus a human-readable message.
- Carry structured payloads where a caller needs more than prose (e.g. the verified
  identity behind `OrganizationNotRegistered`).
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lmeve_auth.sso.models import VerifiedIdentity


class ErrorKind(enum.StrEnum):
    # Values are part of the API contract (returned as `error_kind`).
    missing_parameters = "missing_parameters"
    provider_denied = "provider_denied"
    provider_error = "provider_error"
    invalid_state = "invalid_state"
    state_expired = "state_expired"
    exchange_failed = "exchange_failed"
    organization_not_registered = "organization_not_registered"
    insufficient_privilege = "insufficient_privilege"
    invalid_role = "invalid_role"
    invalid_capability = "invalid_capability"
    scopes_empty = "scopes_empty"
    scopes_not_granted = "scopes_not_granted"
    missing_required_scopes = "missing_required_scopes"
    corporation_not_found = "corporation_not_found"
    registration_not_found = "registration_not_found"
    callback_in_flight = "callback_in_flight"
    callback_cancelled = "callback_cancelled"
    stale_session = "stale_session"
    invalid_credentials = "invalid_credentials"
    account_disabled = "account_disabled"
    user_not_found = "user_not_found"
    username_taken = "username_taken"
    deletion_not_allowed = "deletion_not_allowed"


class AuthError(Exception):
    kind: ErrorKind = ErrorKind.exchange_failed
    default_message = "Authentication failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class MissingParameters(AuthError):
    kind = ErrorKind.missing_parameters
    default_message = "Missing authentication parameters"


class ProviderDenied(AuthError):
    kind = ErrorKind.provider_denied
    default_message = "Authentication was cancelled by user"


class ProviderError(AuthError):
    kind = ErrorKind.provider_error

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Authentication error: {code}")


class InvalidState(AuthError):
    kind = ErrorKind.invalid_state
    default_message = "Invalid state parameter - possible CSRF attack"


class StateExpired(AuthError):
    kind = ErrorKind.state_expired
    default_message = "Authentication state has expired"


class ExchangeFailed(AuthError):
    kind = ErrorKind.exchange_failed


class OrganizationNotRegistered(AuthError):
    """
    Raised by an exchange collaborator that already knows the corporation is unregistered.
    The verified identity travels with the error so registration can proceed without
    re-running the exchange.
    """

    kind = ErrorKind.organization_not_registered

    def __init__(self, identity: VerifiedIdentity, message: str | None = None) -> None:
        self.identity = identity
        super().__init__(
            message
            or f'Corporation "{identity.corporation_name}" is not registered with LMeve'
        )


class InsufficientPrivilegeToRegister(AuthError):
    kind = ErrorKind.insufficient_privilege
    default_message = (
        "Corporation is not registered. Contact your CEO or Directors to register "
        "corporation ESI access."
    )


class InsufficientPrivilege(AuthError):
    kind = ErrorKind.insufficient_privilege
    default_message = "Insufficient permissions"


class InvalidRole(AuthError, ValueError):
    kind = ErrorKind.invalid_role

    def __init__(self, role: object) -> None:
        self.role = role
        super().__init__(f"Invalid role: {role!r}")


class InvalidCapability(AuthError, ValueError):
    kind = ErrorKind.invalid_capability

    def __init__(self, capability: object) -> None:
        self.capability = capability
        super().__init__(f"Invalid capability: {capability!r}")


class ScopesEmpty(AuthError):
    kind = ErrorKind.scopes_empty
    default_message = "At least one granted scope is required to register a corporation"


class ScopesNotGranted(AuthError):
    kind = ErrorKind.scopes_not_granted

    def __init__(self, scopes: list[str]) -> None:
        self.scopes = scopes
        super().__init__(f"Scopes were not granted by the provider: {', '.join(scopes)}")


class MissingRequiredScopes(AuthError):
    kind = ErrorKind.missing_required_scopes

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required scopes: {', '.join(missing)}")


class CorporationNotFound(AuthError):
    kind = ErrorKind.corporation_not_found
    default_message = "Corporation not found"


class RegistrationNotFound(AuthError):
    kind = ErrorKind.registration_not_found
    default_message = "Registration request not found or expired"


class CallbackInFlight(AuthError):
    kind = ErrorKind.callback_in_flight
    default_message = "Another authentication callback is already being processed"


class CallbackCancelled(AuthError):
    kind = ErrorKind.callback_cancelled
    default_message = "Authentication callback was cancelled"


class StaleSession(AuthError):
    kind = ErrorKind.stale_session
    default_message = "Session changed while authentication was in progress"


class InvalidCredentials(AuthError):
    kind = ErrorKind.invalid_credentials
    default_message = "Invalid username or password"


class AccountDisabled(AuthError):
    kind = ErrorKind.account_disabled
    default_message = "User account is disabled"


class UserNotFound(AuthError):
    kind = ErrorKind.user_not_found
    default_message = "User not found"


class UsernameTaken(AuthError):
    kind = ErrorKind.username_taken
    default_message = "Username already exists"


class DeletionNotAllowed(AuthError):
    kind = ErrorKind.deletion_not_allowed
    default_message = "Only manually provisioned accounts can be deleted"


# --- Module Notes -----------------------------------------------------------
# `InvalidRole`/`InvalidCapability` are programming errors (they also subclass ValueError);
# the API never accepts a role string without validating it against `Role` first.
