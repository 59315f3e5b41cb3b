"""
Core types for cartsync.

Re-exports from kungfu + shared aliases.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

# Re-export from kungfu
from kungfu import Result, Ok, Error, LazyCoroResult

# ═══════════════════════════════════════════════════════════════════════════════
# Lazy Computation Aliases
# ═══════════════════════════════════════════════════════════════════════════════

type Lazy[T, E] = LazyCoroResult[T, E]
"""Lazy async computation that may fail."""

# ═══════════════════════════════════════════════════════════════════════════════
# Identity
# ═══════════════════════════════════════════════════════════════════════════════

type UserId = str
"""Opaque user id assigned by the auth backend."""

type Clock = Callable[[], float]
"""Wall clock in epoch seconds."""

# ═══════════════════════════════════════════════════════════════════════════════
# Session Listener
# ═══════════════════════════════════════════════════════════════════════════════

type UserListener = Callable[[UserId | None, bool], Awaitable[None]]
"""
Called after the signed-in user changes.

Receives the new user id (None for guest) and whether the change was an
explicit sign-out.
"""

# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    # Re-exports from kungfu
    "Result",
    "Ok",
    "Error",
    "LazyCoroResult",
    # Aliases
    "Lazy",
    "UserId",
    "Clock",
    "UserListener",
)
