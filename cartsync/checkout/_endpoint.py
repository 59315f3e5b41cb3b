"""
Checkout collaborators — payment session endpoint and page navigation.
"""

from __future__ import annotations

from typing import Protocol

from cartsync.checkout._types import CheckoutLine, CheckoutSession


class CheckoutEndpoint(Protocol):
    """Creates a hosted payment session. Raises on failure."""

    async def create_checkout_session(
        self,
        lines: list[CheckoutLine],
        discount_code: str | None,
    ) -> CheckoutSession: ...


class Navigator(Protocol):
    """Full-page redirect to the payment page."""

    async def redirect(self, url: str) -> None: ...


__all__ = ("CheckoutEndpoint", "Navigator")
