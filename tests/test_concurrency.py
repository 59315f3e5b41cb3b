from __future__ import annotations

import asyncio
import json

from cartsync import Config, Storefront
from cartsync.checkout import CheckoutLine
from cartsync.collection import CollectionKind, ItemInput, build_line_item
from cartsync.session import AuthState, RestoreTrigger, SessionManager
from cartsync.store import MemoryStore
from cartsync.testing import (
    ManualClock,
    MemoryAuthEndpoint,
    MemoryCheckoutEndpoint,
    MemoryCollectionEndpoint,
    MemoryProfileEndpoint,
)
from tests.conftest import EMAIL, PASSWORD
from tests.helpers import ok, until


# ═══════════════════════════════════════════════════════════════════════════════
# Reads during a sign-in merge
# ═══════════════════════════════════════════════════════════════════════════════


async def test_checkout_during_merge_sends_merged_cart(
    shop: Storefront,
    auth: MemoryAuthEndpoint,
    cart_api: MemoryCollectionEndpoint,
    payments: MemoryCheckoutEndpoint,
) -> None:
    bob = auth.add_user("bob@example.com", "pw")
    cart_api.seed(
        bob.id,
        build_line_item(ItemInput("p9", "v9"), CollectionKind.CART, owner_id=bob.id).to_dict(),
        build_line_item(ItemInput("p1", "v1", 2), CollectionKind.CART, owner_id=bob.id).to_dict(),
    )
    ok(await shop.cart.add("p1", "v1"))
    gate = cart_api.hold("upsert")

    sign_in = asyncio.create_task(shop.sessions.sign_in("bob@example.com", "pw"))
    await until(lambda: cart_api.called("upsert") == 1)
    checkout = asyncio.create_task(shop.checkout.create_checkout())
    await asyncio.sleep(0)
    assert payments.requests == []

    gate.set()
    ok(await sign_in)
    ok(await checkout)

    lines, _ = payments.requests[0]
    assert sorted(lines, key=lambda line: line.product_id) == [
        CheckoutLine("p1", "v1", 3),
        CheckoutLine("p9", "v9", 1),
    ]


async def test_add_and_refresh_wait_for_merge(
    shop: Storefront, cart_api: MemoryCollectionEndpoint
) -> None:
    ok(await shop.cart.add("p1", "v1"))
    gate = cart_api.hold("upsert")

    sign_in = asyncio.create_task(shop.sessions.sign_in(EMAIL, PASSWORD))
    await until(lambda: cart_api.called("upsert") == 1)
    add = asyncio.create_task(shop.cart.add("p2", "v2"))
    refresh = asyncio.create_task(shop.cart.refresh())
    await asyncio.sleep(0)
    assert not add.done()
    assert not refresh.done()
    assert cart_api.called("fetch_all") == 0

    gate.set()
    session = ok(await sign_in)
    added = ok(await add)
    ok(await refresh)

    assert added.owner_id == session.user_id
    assert cart_api.quantities(session.user_id) == {("p1", "v1"): 1, ("p2", "v2"): 1}
    assert shop.cart.contains("p1", "v1")
    assert shop.cart.contains("p2", "v2")


# ═══════════════════════════════════════════════════════════════════════════════
# Sign-out while a sign-in is still settling
# ═══════════════════════════════════════════════════════════════════════════════


async def test_sign_out_during_merge_keeps_guest_scope(
    shop: Storefront,
    store: MemoryStore,
    cart_api: MemoryCollectionEndpoint,
    wishlist_api: MemoryCollectionEndpoint,
    config: Config,
) -> None:
    ok(await shop.cart.add("p1", "v1"))
    gate = cart_api.hold("upsert")

    sign_in = asyncio.create_task(shop.sessions.sign_in(EMAIL, PASSWORD))
    await until(lambda: cart_api.called("upsert") == 1)
    user_id = shop.sessions.user_id
    ok(await shop.sessions.sign_out())
    ok(await shop.cart.add("p5", "v5"))

    gate.set()
    ok(await sign_in)

    assert shop.sessions.user_id is None
    assert shop.cart.user_id is None
    assert shop.wishlist.user_id is None
    assert wishlist_api.calls == []
    assert [i.product_id for i in shop.cart.items] == ["p5"]
    guest = json.loads(store.raw(config.keys.guest("cart")))
    assert [row["product_id"] for row in guest] == ["p5"]
    assert store.raw(config.keys.merged("cart", user_id)) is None


async def test_foreground_restore_aborts_after_sign_out(
    sessions: SessionManager,
    auth: MemoryAuthEndpoint,
    profiles: MemoryProfileEndpoint,
    store: MemoryStore,
    config: Config,
    clock: ManualClock,
) -> None:
    ok(await sessions.sign_in(EMAIL, PASSWORD, remember_me=False))
    sessions.close()
    auth.drop_live_session()
    reloaded = SessionManager(auth, profiles, store, config, clock, ManualClock(0.0))
    gate = auth.hold("set_session")

    restore = asyncio.create_task(reloaded.restore_session(RestoreTrigger.FOREGROUND))
    await until(lambda: auth.called("set_session") == 1)
    ok(await reloaded.sign_out())
    gate.set()

    assert await restore is False
    assert reloaded.state is AuthState.UNAUTHENTICATED
    assert reloaded.session is None
    assert store.raw(config.keys.session) is None
    reloaded.close()


# ═══════════════════════════════════════════════════════════════════════════════
# Remote results arriving after their scope is gone
# ═══════════════════════════════════════════════════════════════════════════════


async def test_add_resolving_after_close_is_discarded(
    shop: Storefront, cart_api: MemoryCollectionEndpoint
) -> None:
    ok(await shop.sessions.sign_in(EMAIL, PASSWORD))
    gate = cart_api.hold("upsert")

    add = asyncio.create_task(shop.cart.add("p1", "v1"))
    await until(lambda: cart_api.called("upsert") == 1)
    shop.cart.close()
    gate.set()
    ok(await add)

    assert shop.cart.items == ()


async def test_update_resolving_after_sign_out_is_discarded(
    shop: Storefront, cart_api: MemoryCollectionEndpoint
) -> None:
    ok(await shop.sessions.sign_in(EMAIL, PASSWORD))
    item = ok(await shop.cart.add("p1", "v1"))
    gate = cart_api.hold("update_quantity")

    update = asyncio.create_task(shop.cart.update_quantity(item.id, 4))
    await until(lambda: cart_api.called("update_quantity") == 1)
    ok(await shop.sessions.sign_out())
    gate.set()
    ok(await update)

    assert shop.cart.user_id is None
    assert shop.cart.items == ()


async def test_remove_resolving_after_sign_out_is_discarded(
    shop: Storefront, cart_api: MemoryCollectionEndpoint
) -> None:
    ok(await shop.sessions.sign_in(EMAIL, PASSWORD))
    item = ok(await shop.cart.add("p1", "v1"))
    gate = cart_api.hold("delete")

    remove = asyncio.create_task(shop.cart.remove(item.id))
    await until(lambda: cart_api.called("delete") == 1)
    ok(await shop.sessions.sign_out())
    guest = ok(await shop.cart.add("p5", "v5"))
    gate.set()
    ok(await remove)

    assert shop.cart.items == (guest,)


async def test_refresh_resolving_after_sign_out_is_discarded(
    shop: Storefront, cart_api: MemoryCollectionEndpoint
) -> None:
    ok(await shop.sessions.sign_in(EMAIL, PASSWORD))
    ok(await shop.cart.add("p1", "v1"))
    gate = cart_api.hold("fetch_all")

    refresh = asyncio.create_task(shop.cart.refresh())
    await until(lambda: cart_api.called("fetch_all") == 2)
    ok(await shop.sessions.sign_out())
    gate.set()
    ok(await refresh)

    assert shop.cart.user_id is None
    assert shop.cart.items == ()
