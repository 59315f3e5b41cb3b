"""
Checkout dispatcher — cart snapshot to one checkout request.
"""

from __future__ import annotations

import structlog
from combinators import lift as L
from kungfu import Result, Ok, Error

from cartsync.checkout._endpoint import CheckoutEndpoint, Navigator
from cartsync.checkout._types import (
    CheckoutLine,
    CheckoutSession,
    CheckoutError,
    CheckoutErrorKind,
    classify,
)
from cartsync.collection import Reconciler
from cartsync.session import SessionManager

log = structlog.get_logger("cartsync.checkout")


def normalize_discount(code: str | None) -> str | None:
    if code is None:
        return None
    return code.strip().upper() or None


class CheckoutDispatcher:
    """
    Example:
        dispatcher = CheckoutDispatcher(sessions, cart, endpoint, navigator)

        match await dispatcher.create_checkout("welcome10"):
            case Ok(checkout):
                ...  # navigator already redirected to checkout.url
            case Error(e):
                show(e.user_message)

    Note: the cart is never mutated here, on success or failure.
    """

    def __init__(
        self,
        sessions: SessionManager,
        cart: Reconciler,
        endpoint: CheckoutEndpoint,
        navigator: Navigator,
    ) -> None:
        self._sessions = sessions
        self._cart = cart
        self._endpoint = endpoint
        self._navigator = navigator

    def lines(self) -> list[CheckoutLine]:
        return [
            CheckoutLine(i.product_id, i.variant_id, i.quantity)
            for i in self._cart.items
            if i.variant_id is not None
        ]

    async def create_checkout(
        self,
        discount_code: str | None = None,
    ) -> Result[CheckoutSession, CheckoutError]:
        # A sign-in merge in flight must land before the cart is read
        await self._cart.ready()
        if self._sessions.user_id is None:
            return Error(CheckoutError(CheckoutErrorKind.SIGN_IN_REQUIRED, "Not signed in"))

        items = self._cart.items
        if not items:
            return Error(CheckoutError(CheckoutErrorKind.CART_EMPTY, "Cart is empty"))

        missing = [i.id for i in items if not i.variant_id]
        if missing:
            return Error(
                CheckoutError(
                    CheckoutErrorKind.VALIDATION,
                    f"Items without a variant: {', '.join(missing)}",
                )
            )

        lines = self.lines()
        code = normalize_discount(discount_code)
        result = await L.catching_async(
            lambda: self._endpoint.create_checkout_session(lines, code),
            on_error=classify,
        )
        match result:
            case Ok(checkout):
                log.info(
                    "checkout_created",
                    user_id=self._sessions.user_id,
                    session_id=checkout.session_id,
                    lines=len(lines),
                    discount=code is not None,
                )
                await self._navigator.redirect(checkout.url)
                return Ok(checkout)
            case Error(err):
                log.warning("checkout_failed", kind=err.kind.name, error=err.message)
                return Error(err)


__all__ = ("CheckoutDispatcher", "normalize_discount")
