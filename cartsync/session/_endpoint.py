"""
Auth and profile endpoint protocols.

Endpoints are thin async adapters over the hosted backend SDK.
They raise on failure (AuthApiError, ConnectionError, TimeoutError);
SessionManager lifts every call into a Result.
"""

from __future__ import annotations

from typing import Any, Protocol

from cartsync._types import UserId
from cartsync.session._types import Grant


class AuthEndpoint(Protocol):
    """
    Hosted auth backend.

    Example — wrapping an SDK client:

        class SupabaseAuth:
            def __init__(self, client) -> None:
                self.client = client

            async def sign_in_with_password(self, email: str, password: str) -> Grant:
                res = await self.client.auth.sign_in_with_password(
                    {"email": email, "password": password}
                )
                return to_grant(res)

            # ... other methods
    """

    async def sign_up(self, email: str, password: str) -> Grant: ...

    async def sign_in_with_password(self, email: str, password: str) -> Grant: ...

    async def refresh_session(self, refresh_token: str) -> Grant: ...

    async def set_session(self, access_token: str, refresh_token: str) -> Grant: ...

    async def sign_out(self, scope: str = "local") -> None: ...

    async def get_session(self) -> Grant | None:
        """Live session held by the SDK, if any."""
        ...


class ProfileEndpoint(Protocol):
    """User profile rows. Inserts must be protected by a unique id constraint."""

    async def fetch(self, user_id: UserId) -> dict[str, Any] | None:
        """Returns None when no row exists."""
        ...

    async def insert(self, row: dict[str, Any]) -> dict[str, Any]:
        """Raises DuplicateRow when the id already exists."""
        ...

    async def update(self, user_id: UserId, updates: dict[str, Any]) -> dict[str, Any]: ...


__all__ = ("AuthEndpoint", "ProfileEndpoint")
