"""
Checkout — hand the cart to the payment endpoint.

    from cartsync import checkout as CO

    dispatcher = CO.CheckoutDispatcher(sessions, cart, endpoint, navigator)
    result = await dispatcher.create_checkout(discount_code="SAVE10")
"""

from cartsync.checkout._types import (
    CheckoutLine,
    CheckoutSession,
    CheckoutErrorKind,
    CheckoutError,
    classify,
)
from cartsync.checkout._endpoint import CheckoutEndpoint, Navigator
from cartsync.checkout._dispatcher import CheckoutDispatcher, normalize_discount

__all__ = (
    "CheckoutLine",
    "CheckoutSession",
    "CheckoutErrorKind",
    "CheckoutError",
    "classify",
    "CheckoutEndpoint",
    "Navigator",
    "CheckoutDispatcher",
    "normalize_discount",
)
