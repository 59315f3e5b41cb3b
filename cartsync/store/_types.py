"""
Local store types — protocol, error, key layout.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from kungfu import Result

from cartsync._types import UserId


# ═══════════════════════════════════════════════════════════════════════════════
# Store Error
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class StoreError:
    """Local storage operation error (quota, corrupted backend, closed engine)."""

    message: str
    cause: Exception | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# LocalStore Protocol — Users Implement This
# ═══════════════════════════════════════════════════════════════════════════════


class LocalStore(Protocol):
    """
    Durable key/value map holding serialized strings.

    Pure storage — no knowledge of carts or sessions.
    All methods return Result for explicit error handling.

    Example — browser-like storage backed by a file:

        class FileStore:
            @property
            def name(self) -> str:
                return "file"

            async def get(self, key: str) -> Result[str | None, StoreError]:
                try:
                    return Ok(self._read().get(key))
                except OSError as e:
                    return Error(StoreError("Failed to read", e))

            # ... other methods
    """

    @property
    def name(self) -> str:
        """Backend name for debugging."""
        ...

    async def get(self, key: str) -> Result[str | None, StoreError]:
        """Get value. Returns Ok(None) if absent."""
        ...

    async def set(self, key: str, value: str) -> Result[None, StoreError]:
        """Set value, replacing any previous one."""
        ...

    async def delete(self, key: str) -> Result[bool, StoreError]:
        """Delete key. Returns Ok(True) if it existed."""
        ...

    async def delete_pattern(self, pattern: str) -> Result[int, StoreError]:
        """Delete keys matching a glob pattern. Returns count."""
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Keys — Namespaced Key Layout
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Keys:
    """
    Stable key names under one application namespace.

    Note: each key has one writer. Collections write `<kind>:*`,
    the session manager writes the rest.
    """

    namespace: str

    def guest(self, kind: str) -> str:
        return f"{self.namespace}:{kind}:guest"

    def merged(self, kind: str, user_id: UserId) -> str:
        """Ledger of guest item ids already merged for this user."""
        return f"{self.namespace}:{kind}:merged:{user_id}"

    @property
    def session(self) -> str:
        return f"{self.namespace}:session"

    @property
    def remember_me(self) -> str:
        return f"{self.namespace}:pref:remember_me"

    @property
    def signed_out(self) -> str:
        return f"{self.namespace}:flag:signed_out"

    def sign_out_patterns(self) -> tuple[str, ...]:
        """Globs cleared on explicit sign-out. Preference and flag survive."""
        return (
            f"{self.namespace}:cart:*",
            f"{self.namespace}:wishlist:*",
            f"{self.namespace}:session*",
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "StoreError",
    "LocalStore",
    "Keys",
)
