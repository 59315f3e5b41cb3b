"""
Session types — auth state, tokens, errors, profile lookups.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from enum import Enum, auto
from typing import Any

from cartsync._types import UserId


# ═══════════════════════════════════════════════════════════════════════════════
# Auth State — Session Lifecycle
# ═══════════════════════════════════════════════════════════════════════════════


class AuthState(Enum):
    """
    State of the session manager.

    Lifecycle:
        UNAUTHENTICATED → AUTHENTICATING → AUTHENTICATED (credentials accepted)
                                         → UNAUTHENTICATED (rejected)
        AUTHENTICATED → REFRESHING → AUTHENTICATED (new tokens)
                                   → UNAUTHENTICATED (token revoked)
        AUTHENTICATED → UNAUTHENTICATED (explicit sign-out)
    """

    UNAUTHENTICATED = auto()
    AUTHENTICATING = auto()
    AUTHENTICATED = auto()
    REFRESHING = auto()


class AuthEvent(Enum):
    """Events emitted by the auth backend's state-change stream."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


class RestoreTrigger(Enum):
    """Why a restore was attempted."""

    STARTUP = auto()  # Fresh process start
    FOREGROUND = auto()  # Tab/app became visible again


# ═══════════════════════════════════════════════════════════════════════════════
# User / Grant / Session
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class User:
    id: UserId
    email: str
    email_confirmed: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Grant:
    """Token set issued by the auth endpoint."""

    user: User
    access_token: str
    refresh_token: str
    expires_at: float


@dataclass(frozen=True, slots=True)
class Session:
    """
    Live authenticated session.

    Note: Owned exclusively by SessionManager.
    remember_me decides whether a persisted snapshot may be restored
    on a fresh process start.
    """

    user: User
    access_token: str
    refresh_token: str
    expires_at: float
    remember_me: bool = True

    @property
    def user_id(self) -> UserId:
        return self.user.id

    @classmethod
    def from_grant(cls, grant: Grant, remember_me: bool) -> Session:
        return cls(
            user=grant.user,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            expires_at=grant.expires_at,
            remember_me=remember_me,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> Session | None:
        """Decode a persisted snapshot. Returns None if malformed."""
        try:
            user = data["user"]
            return cls(
                user=User(
                    id=str(user["id"]),
                    email=str(user.get("email", "")),
                    email_confirmed=bool(user.get("email_confirmed", False)),
                    metadata=dict(user.get("metadata") or {}),
                ),
                access_token=str(data["access_token"]),
                refresh_token=str(data["refresh_token"]),
                expires_at=float(data["expires_at"]),
                remember_me=bool(data.get("remember_me", False)),
            )
        except (KeyError, TypeError, ValueError, AttributeError):
            return None


# ═══════════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════════


class AuthErrorKind(Enum):
    INVALID_CREDENTIALS = auto()  # Wrong email/password, duplicate sign-up
    INVALID_TOKEN = auto()  # Expired or revoked refresh token
    NETWORK = auto()  # Endpoint unreachable, retry later
    MISCONFIGURED = auto()  # Backend not set up (bad URL/key)
    NO_SESSION = auto()  # Operation needs a signed-in user


@dataclass(frozen=True, slots=True)
class AuthError:
    """
    Auth operation error.

    Note: cause holds the exception raised by the endpoint (if any).
    """

    kind: AuthErrorKind
    message: str
    cause: Exception | None = None


class AuthApiError(Exception):
    """Raised by auth/profile endpoints when the backend rejects a call."""

    def __init__(self, message: str, *, status: int = 400, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class DuplicateRow(AuthApiError):
    """Uniqueness constraint violated by an insert."""

    def __init__(self, message: str = "duplicate key value") -> None:
        super().__init__(message, status=409, code="23505")


_TOKEN_CODES = frozenset({
    "invalid_grant",
    "refresh_token_not_found",
    "refresh_token_already_used",
    "session_expired",
    "session_not_found",
})


def classify(
    exc: Exception,
    default: AuthErrorKind = AuthErrorKind.INVALID_CREDENTIALS,
) -> AuthError:
    """Map an endpoint exception onto the auth error taxonomy."""
    match exc:
        case TimeoutError() | ConnectionError():
            return AuthError(AuthErrorKind.NETWORK, str(exc) or "Network error", exc)
        case AuthApiError(code=code) if code in _TOKEN_CODES:
            return AuthError(AuthErrorKind.INVALID_TOKEN, exc.message, exc)
        case AuthApiError(status=status) if status >= 500:
            return AuthError(AuthErrorKind.NETWORK, exc.message, exc)
        case AuthApiError():
            return AuthError(default, exc.message, exc)
        case _:
            return AuthError(AuthErrorKind.MISCONFIGURED, str(exc), exc)


# ═══════════════════════════════════════════════════════════════════════════════
# Profile
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ProfileDefaults:
    """Optional profile fields supplied at sign-up."""

    first_name: str | None = None
    last_name: str | None = None
    full_name: str | None = None
    phone: str | None = None
    avatar_url: str | None = None


@dataclass(frozen=True, slots=True)
class Profile:
    id: UserId
    email: str
    first_name: str | None = None
    last_name: str | None = None
    full_name: str | None = None
    phone: str | None = None
    avatar_url: str | None = None
    is_verified: bool = False

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Profile:
        return cls(
            id=str(row["id"]),
            email=str(row.get("email") or ""),
            first_name=row.get("first_name"),
            last_name=row.get("last_name"),
            full_name=row.get("full_name"),
            phone=row.get("phone"),
            avatar_url=row.get("avatar_url"),
            is_verified=bool(row.get("is_verified", False)),
        )


@dataclass(frozen=True, slots=True)
class Found:
    profile: Profile


@dataclass(frozen=True, slots=True)
class NotFound:
    user_id: UserId


@dataclass(frozen=True, slots=True)
class LookupFailed:
    cause: Exception


type ProfileLookup = Found | NotFound | LookupFailed
"""Profile lookup outcome. NotFound is a normal branch, not an error."""


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "AuthState",
    "AuthEvent",
    "RestoreTrigger",
    "User",
    "Grant",
    "Session",
    "AuthErrorKind",
    "AuthError",
    "AuthApiError",
    "DuplicateRow",
    "classify",
    "ProfileDefaults",
    "Profile",
    "Found",
    "NotFound",
    "LookupFailed",
    "ProfileLookup",
)
