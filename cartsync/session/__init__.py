"""
Session — authentication lifecycle.

    from cartsync import session as A

    sessions = A.SessionManager(auth, profiles, store, config)
    await sessions.restore_session(A.RestoreTrigger.STARTUP)

    match await sessions.sign_in("ada@example.com", "secret", remember_me=False):
        case Ok(s):
            ...
        case Error(e) if e.kind is A.AuthErrorKind.INVALID_CREDENTIALS:
            ...

State machine:

    UNAUTHENTICATED ──sign_in/sign_up──▶ AUTHENTICATING ──ok──▶ AUTHENTICATED
           ▲                                   │                  │     ▲
           │◀──────────rejected────────────────┘        timer/    │     │ new
           │                                            foreground▼     │ tokens
           │◀─────────token revoked───────────────────────── REFRESHING ┘
           │
           └◀─────────explicit sign-out (sets sticky flag)── AUTHENTICATED
"""

from cartsync.session._types import (
    AuthState,
    AuthEvent,
    RestoreTrigger,
    User,
    Grant,
    Session,
    AuthErrorKind,
    AuthError,
    AuthApiError,
    DuplicateRow,
    classify,
    ProfileDefaults,
    Profile,
    Found,
    NotFound,
    LookupFailed,
    ProfileLookup,
)
from cartsync.session._endpoint import AuthEndpoint, ProfileEndpoint
from cartsync.session._timer import refresh_delay, RefreshTimer
from cartsync.session._profile import profile_row, lookup_profile, ensure_profile
from cartsync.session._manager import SessionManager, normalize_email

__all__ = (
    # Types
    "AuthState",
    "AuthEvent",
    "RestoreTrigger",
    "User",
    "Grant",
    "Session",
    # Errors
    "AuthErrorKind",
    "AuthError",
    "AuthApiError",
    "DuplicateRow",
    "classify",
    # Profile
    "ProfileDefaults",
    "Profile",
    "Found",
    "NotFound",
    "LookupFailed",
    "ProfileLookup",
    "profile_row",
    "lookup_profile",
    "ensure_profile",
    # Endpoints
    "AuthEndpoint",
    "ProfileEndpoint",
    # Timer
    "refresh_delay",
    "RefreshTimer",
    # Manager
    "SessionManager",
    "normalize_email",
)
