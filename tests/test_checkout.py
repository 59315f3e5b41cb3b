from __future__ import annotations

import pytest

from cartsync import Storefront
from cartsync.checkout import CheckoutErrorKind, CheckoutLine, classify, normalize_discount
from cartsync.collection import ItemInput
from cartsync.testing import MemoryCheckoutEndpoint, RecordingNavigator
from tests.conftest import EMAIL, PASSWORD
from tests.helpers import ok, err


async def test_checkout_requires_sign_in(
    shop: Storefront, payments: MemoryCheckoutEndpoint
) -> None:
    ok(await shop.cart.add("p1", "v1"))

    error = err(await shop.checkout.create_checkout())

    assert error.kind is CheckoutErrorKind.SIGN_IN_REQUIRED
    assert payments.calls == []


async def test_checkout_redirects_on_success(
    shop: Storefront, payments: MemoryCheckoutEndpoint, navigator: RecordingNavigator
) -> None:
    ok(await shop.sessions.sign_in(EMAIL, PASSWORD))
    ok(await shop.cart.add("p1", "v1", quantity=2))
    ok(await shop.cart.add("p2", "v2"))

    checkout = ok(await shop.checkout.create_checkout("  welcome10 "))

    lines, code = payments.requests[0]
    assert lines == [CheckoutLine("p1", "v1", 2), CheckoutLine("p2", "v2", 1)]
    assert code == "WELCOME10"
    assert navigator.urls == [checkout.url]
    assert shop.cart.item_count == 3


@pytest.mark.parametrize(
    ("exc", "kind"),
    [
        (TimeoutError("slow"), CheckoutErrorKind.TIMEOUT),
        (ConnectionError("refused"), CheckoutErrorKind.UNAVAILABLE),
        (ValueError("bad request"), CheckoutErrorKind.FAILED),
    ],
)
async def test_checkout_failures_are_classified(
    shop: Storefront,
    payments: MemoryCheckoutEndpoint,
    navigator: RecordingNavigator,
    exc: Exception,
    kind: CheckoutErrorKind,
) -> None:
    ok(await shop.sessions.sign_in(EMAIL, PASSWORD))
    ok(await shop.cart.add("p1", "v1"))
    payments.fail_next(exc)

    error = err(await shop.checkout.create_checkout())

    assert error.kind is kind
    assert error.user_message
    assert navigator.urls == []
    assert shop.cart.item_count == 1


def test_classify_timeout_before_os_error() -> None:
    assert classify(TimeoutError()).kind is CheckoutErrorKind.TIMEOUT
    assert classify(OSError("dns")).kind is CheckoutErrorKind.UNAVAILABLE


def test_normalize_discount() -> None:
    assert normalize_discount(None) is None
    assert normalize_discount("   ") is None
    assert normalize_discount(" save5 ") == "SAVE5"


async def test_lines_payload(shop: Storefront) -> None:
    ok(await shop.cart.add("p1", "v1", details=ItemInput("p1", price=9.5)))
    assert [line.to_dict() for line in shop.checkout.lines()] == [
        {"product_id": "p1", "variant_id": "v1", "quantity": 1}
    ]
