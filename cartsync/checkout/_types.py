"""
Checkout types — payload, response, classified errors.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any


@dataclass(frozen=True, slots=True)
class CheckoutLine:
    product_id: str
    variant_id: str
    quantity: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
        }


@dataclass(frozen=True, slots=True)
class CheckoutSession:
    url: str
    session_id: str


# ═══════════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════════


class CheckoutErrorKind(Enum):
    SIGN_IN_REQUIRED = auto()
    CART_EMPTY = auto()
    VALIDATION = auto()  # A line without a size/colour selection
    TIMEOUT = auto()
    UNAVAILABLE = auto()  # Endpoint unreachable
    FAILED = auto()  # Anything else


_MESSAGES = {
    CheckoutErrorKind.SIGN_IN_REQUIRED: "Please sign in to check out.",
    CheckoutErrorKind.CART_EMPTY: "Your cart is empty. Please add items before checkout.",
    CheckoutErrorKind.VALIDATION: "Please select a size and colour for every item.",
    CheckoutErrorKind.TIMEOUT: "Checkout is taking longer than expected. Please try again.",
    CheckoutErrorKind.UNAVAILABLE: "Payment service is unavailable. Please try again later.",
    CheckoutErrorKind.FAILED: "Checkout failed. Please try again.",
}


@dataclass(frozen=True, slots=True)
class CheckoutError:
    kind: CheckoutErrorKind
    message: str
    cause: Exception | None = None

    @property
    def user_message(self) -> str:
        return _MESSAGES[self.kind]


def classify(exc: Exception) -> CheckoutError:
    """Map an endpoint exception to timeout / unavailable / generic failure."""
    message = str(exc) or type(exc).__name__
    match exc:
        case TimeoutError():
            return CheckoutError(CheckoutErrorKind.TIMEOUT, message, exc)
        case ConnectionError() | OSError():
            return CheckoutError(CheckoutErrorKind.UNAVAILABLE, message, exc)
        case _:
            return CheckoutError(CheckoutErrorKind.FAILED, message, exc)


__all__ = (
    "CheckoutLine",
    "CheckoutSession",
    "CheckoutErrorKind",
    "CheckoutError",
    "classify",
)
