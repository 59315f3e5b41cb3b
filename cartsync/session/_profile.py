"""
Profile helpers — lookup as a tagged outcome, idempotent ensure.
"""

from __future__ import annotations

from typing import Any

import structlog
from combinators import lift as L
from kungfu import Ok, Error

from cartsync._types import UserId
from cartsync.session._endpoint import ProfileEndpoint
from cartsync.session._types import (
    User,
    Profile,
    ProfileDefaults,
    ProfileLookup,
    Found,
    NotFound,
    LookupFailed,
    DuplicateRow,
)

log = structlog.get_logger("cartsync.session")


def _joined(first: Any, last: Any) -> str | None:
    if first and last:
        return f"{first} {last}"
    return None


def profile_row(user: User, defaults: ProfileDefaults) -> dict[str, Any]:
    """
    Build the insert row for a new profile.

    Each field prefers the auth user's metadata, then the sign-up defaults.
    """
    meta = user.metadata
    first_name = meta.get("first_name") or defaults.first_name
    last_name = meta.get("last_name") or defaults.last_name
    full_name = (
        meta.get("full_name")
        or _joined(meta.get("first_name"), meta.get("last_name"))
        or defaults.full_name
        or _joined(defaults.first_name, defaults.last_name)
    )
    return {
        "id": user.id,
        "email": user.email,
        "first_name": first_name,
        "last_name": last_name,
        "full_name": full_name,
        "phone": meta.get("phone") or defaults.phone,
        "avatar_url": meta.get("avatar_url") or defaults.avatar_url,
        "is_verified": user.email_confirmed,
    }


async def lookup_profile(profiles: ProfileEndpoint, user_id: UserId) -> ProfileLookup:
    result = await L.catching_async(lambda: profiles.fetch(user_id), on_error=lambda e: e)
    match result:
        case Ok(None):
            return NotFound(user_id)
        case Ok(row):
            return Found(Profile.from_row(row))
        case Error(cause):
            return LookupFailed(cause)


async def ensure_profile(
    profiles: ProfileEndpoint,
    user: User,
    defaults: ProfileDefaults = ProfileDefaults(),
) -> bool:
    """
    Create the profile row if it does not exist yet.

    Best-effort: never raises. A concurrent ensure that loses the insert
    race hits the unique constraint and counts as success.
    """
    match await lookup_profile(profiles, user.id):
        case Found(_):
            return True
        case LookupFailed(cause):
            log.warning("profile_lookup_failed", user_id=user.id, error=str(cause))
            return False
        case NotFound(_):
            pass

    row = profile_row(user, defaults)
    created = await L.catching_async(lambda: profiles.insert(row), on_error=lambda e: e)
    match created:
        case Ok(_):
            log.info("profile_created", user_id=user.id)
            return True
        case Error(DuplicateRow()):
            log.debug("profile_exists", user_id=user.id)
            return True
        case Error(cause):
            log.warning("profile_create_failed", user_id=user.id, error=str(cause))
            return False


__all__ = ("profile_row", "lookup_profile", "ensure_profile")
