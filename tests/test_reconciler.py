from __future__ import annotations

import json
from collections.abc import AsyncIterator

import pytest

from cartsync import Config
from cartsync.collection import (
    CollectionErrorKind,
    CollectionKind,
    ItemInput,
    LineItem,
    ProductSnapshot,
    Reconciler,
    VariantSnapshot,
    build_line_item,
    merge_guest_items,
)
from cartsync.session import SessionManager
from cartsync.store import MemoryStore
from cartsync.testing import MemoryCollectionEndpoint
from tests.conftest import EMAIL, PASSWORD
from tests.helpers import ok, err


@pytest.fixture
async def cart(
    sessions: SessionManager,
    store: MemoryStore,
    cart_api: MemoryCollectionEndpoint,
    config: Config,
) -> AsyncIterator[Reconciler]:
    reconciler = Reconciler(CollectionKind.CART, sessions, store, cart_api, config)
    await reconciler.start()
    yield reconciler
    reconciler.close()


@pytest.fixture
async def wishlist(
    sessions: SessionManager,
    store: MemoryStore,
    wishlist_api: MemoryCollectionEndpoint,
    config: Config,
) -> AsyncIterator[Reconciler]:
    reconciler = Reconciler(CollectionKind.WISHLIST, sessions, store, wishlist_api, config)
    await reconciler.start()
    yield reconciler
    reconciler.close()


def guest_rows(store: MemoryStore, config: Config, kind: str = "cart") -> list[dict]:
    raw = store.raw(config.keys.guest(kind))
    return json.loads(raw) if raw else []


# ═══════════════════════════════════════════════════════════════════════════════
# Construction
# ═══════════════════════════════════════════════════════════════════════════════


def test_build_line_item_fills_defaults() -> None:
    item = build_line_item(
        ItemInput("p1", "v1", quantity=2),
        CollectionKind.CART,
        owner_id=None,
        now=lambda: "2024-01-01T00:00:00+00:00",
    )

    assert item.id.startswith("guest_")
    assert item.product == ProductSnapshot(id="p1", name="Product p1", base_price=0.0)
    assert item.variant == VariantSnapshot(id="v1", color="Default", size="M")
    assert item.price_at_add is None
    assert item.added_at == "2024-01-01T00:00:00+00:00"


def test_build_line_item_price_from_variant() -> None:
    item = build_line_item(
        ItemInput("p1", "v1", variant=VariantSnapshot(id="v1", price=42.0)),
        CollectionKind.CART,
        owner_id="u1",
    )
    assert item.price_at_add == 42.0
    assert item.id.startswith("pending_")


def test_wishlist_items_always_have_quantity_one() -> None:
    item = build_line_item(ItemInput("p1", quantity=5), CollectionKind.WISHLIST, owner_id=None)
    assert item.quantity == 1
    assert item.variant is None


def test_unit_price_fallback_chain() -> None:
    product = ProductSnapshot(id="p1", name="Tee", base_price=10.0)
    base = build_line_item(ItemInput("p1", "v1", product=product), CollectionKind.CART, owner_id=None)
    assert base.unit_price == 10.0

    variant = VariantSnapshot(id="v1", price=12.0)
    from_variant = build_line_item(
        ItemInput("p1", "v1", product=product, variant=variant),
        CollectionKind.CART,
        owner_id=None,
    )
    assert from_variant.unit_price == 12.0

    explicit = build_line_item(
        ItemInput("p1", "v1", quantity=3, price=15.0, product=product, variant=variant),
        CollectionKind.CART,
        owner_id=None,
    )
    assert explicit.line_total == 45.0


def test_from_dict_rejects_incomplete_rows() -> None:
    good = build_line_item(ItemInput("p1", "v1"), CollectionKind.CART, owner_id=None).to_dict()

    assert LineItem.from_dict(good, CollectionKind.CART) is not None
    for field in ("product_id", "variant_id", "product", "variant"):
        assert LineItem.from_dict({**good, field: None}, CollectionKind.CART) is None
    assert LineItem.from_dict({**good, "quantity": 0}, CollectionKind.CART) is None
    assert LineItem.from_dict({**good, "quantity": "2"}, CollectionKind.CART) is None
    assert LineItem.from_dict("nonsense", CollectionKind.CART) is None


# ═══════════════════════════════════════════════════════════════════════════════
# Guest path
# ═══════════════════════════════════════════════════════════════════════════════


async def test_guest_add_persists(cart: Reconciler, store: MemoryStore, config: Config) -> None:
    item = ok(await cart.add("p1", "v1", quantity=2))

    assert cart.items == (item,)
    assert cart.item_count == 2
    assert [r["id"] for r in guest_rows(store, config)] == [item.id]
    assert guest_rows(store, config)[0]["owner_id"] is None


async def test_cart_add_requires_selection(cart: Reconciler, store: MemoryStore) -> None:
    assert err(await cart.add("p1")).kind is CollectionErrorKind.VALIDATION
    assert err(await cart.add("p1", "v1", quantity=0)).kind is CollectionErrorKind.VALIDATION
    assert cart.items == ()
    assert store.keys() == []


async def test_guest_add_with_details(cart: Reconciler) -> None:
    details = ItemInput(
        "ignored",
        price=25.0,
        product=ProductSnapshot(id="p1", name="Hoodie", base_price=30.0),
    )
    item = ok(await cart.add("p1", "v1", quantity=2, details=details))

    assert item.product_id == "p1"
    assert item.product.name == "Hoodie"
    assert cart.subtotal == 50.0


async def test_guest_update_quantity(cart: Reconciler, store: MemoryStore, config: Config) -> None:
    item = ok(await cart.add("p1", "v1"))

    updated = ok(await cart.update_quantity(item.id, 4))

    assert updated.quantity == 4
    assert guest_rows(store, config)[0]["quantity"] == 4


async def test_update_unknown_item(cart: Reconciler) -> None:
    assert err(await cart.update_quantity("missing", 2)).kind is CollectionErrorKind.NOT_FOUND


async def test_guest_remove_is_idempotent(cart: Reconciler) -> None:
    item = ok(await cart.add("p1", "v1"))

    ok(await cart.remove(item.id))
    ok(await cart.remove(item.id))

    assert cart.items == ()


async def test_guest_clear(cart: Reconciler, store: MemoryStore, config: Config) -> None:
    ok(await cart.add("p1", "v1"))
    ok(await cart.add("p2", "v2"))

    ok(await cart.clear())

    assert not cart.has_items
    assert guest_rows(store, config) == []


async def test_guest_write_failure_keeps_memory(
    cart: Reconciler, store: MemoryStore, config: Config
) -> None:
    store.fail_next_writes(config.write_policy.times)

    item = ok(await cart.add("p1", "v1"))

    assert cart.items == (item,)
    assert guest_rows(store, config) == []


async def test_find_contains_snapshot(cart: Reconciler) -> None:
    item = ok(await cart.add("p1", "v1", details=ItemInput("p1", price=5.0)))
    ok(await cart.add("p2", "v2", quantity=3, details=ItemInput("p2", price=2.0)))

    assert cart.find(item.id) == item
    assert cart.contains("p1", "v1")
    assert not cart.contains("p1", "v2")

    snap = cart.snapshot()
    assert snap.subtotal == 11.0
    assert snap.item_count == 4
    assert snap.has_items


async def test_wishlist_add_is_idempotent(wishlist: Reconciler) -> None:
    first = ok(await wishlist.add("p1"))
    again = ok(await wishlist.add("p1", quantity=3))

    assert again.id == first.id
    assert wishlist.item_count == 1


async def test_wishlist_quantity_rules(wishlist: Reconciler) -> None:
    item = ok(await wishlist.add("p1"))

    assert err(await wishlist.update_quantity(item.id, 2)).kind is CollectionErrorKind.VALIDATION
    assert ok(await wishlist.update_quantity(item.id, 0)) is None
    assert wishlist.items == ()


# ═══════════════════════════════════════════════════════════════════════════════
# Load filtering
# ═══════════════════════════════════════════════════════════════════════════════


async def test_load_drops_invalid_and_owned_rows(
    sessions: SessionManager,
    store: MemoryStore,
    cart_api: MemoryCollectionEndpoint,
    config: Config,
) -> None:
    valid = build_line_item(ItemInput("p1", "v1"), CollectionKind.CART, owner_id=None)
    owned = build_line_item(ItemInput("p2", "v2"), CollectionKind.CART, owner_id="someone")
    broken = {**valid.to_dict(), "id": "x", "product": None}
    await store.set(
        config.keys.guest("cart"),
        json.dumps([valid.to_dict(), owned.to_dict(), broken]),
    )

    cart = Reconciler(CollectionKind.CART, sessions, store, cart_api, config)
    await cart.start()

    assert [i.id for i in cart.items] == [valid.id]
    assert [r["id"] for r in guest_rows(store, config)] == [valid.id]
    cart.close()


async def test_corrupt_guest_key_loads_empty(
    sessions: SessionManager,
    store: MemoryStore,
    cart_api: MemoryCollectionEndpoint,
    config: Config,
) -> None:
    await store.set(config.keys.guest("cart"), "{{{")

    cart = Reconciler(CollectionKind.CART, sessions, store, cart_api, config)
    await cart.start()

    assert cart.items == ()
    cart.close()


async def test_refresh_rereads_guest_key(
    cart: Reconciler, store: MemoryStore, config: Config
) -> None:
    ok(await cart.add("p1", "v1"))
    store.clear()

    snap = ok(await cart.refresh())

    assert snap.items == ()


# ═══════════════════════════════════════════════════════════════════════════════
# User path
# ═══════════════════════════════════════════════════════════════════════════════


async def test_remote_add_confirmed(
    cart: Reconciler, sessions: SessionManager, cart_api: MemoryCollectionEndpoint
) -> None:
    session = ok(await sessions.sign_in(EMAIL, PASSWORD))

    item = ok(await cart.add("p1", "v1", quantity=2))

    assert item.id.startswith("row-")
    assert item.owner_id == session.user_id
    assert cart.items == (item,)
    assert cart_api.quantities(session.user_id) == {("p1", "v1"): 2}


async def test_remote_add_accumulates(
    cart: Reconciler, sessions: SessionManager, cart_api: MemoryCollectionEndpoint
) -> None:
    ok(await sessions.sign_in(EMAIL, PASSWORD))

    ok(await cart.add("p1", "v1", quantity=2))
    item = ok(await cart.add("p1", "v1", quantity=3))

    assert item.quantity == 5
    assert len(cart.items) == 1


async def test_remote_failure_leaves_state(
    cart: Reconciler, sessions: SessionManager, cart_api: MemoryCollectionEndpoint
) -> None:
    ok(await sessions.sign_in(EMAIL, PASSWORD))
    item = ok(await cart.add("p1", "v1"))

    for op in (
        lambda: cart.add("p2", "v2"),
        lambda: cart.update_quantity(item.id, 5),
        lambda: cart.remove(item.id),
        lambda: cart.clear(),
    ):
        cart_api.fail_next(ConnectionError("offline"))
        assert err(await op()).kind is CollectionErrorKind.REMOTE
        assert cart.items == (item,)


async def test_remote_update_and_remove(
    cart: Reconciler, sessions: SessionManager, cart_api: MemoryCollectionEndpoint
) -> None:
    session = ok(await sessions.sign_in(EMAIL, PASSWORD))
    item = ok(await cart.add("p1", "v1"))

    assert ok(await cart.update_quantity(item.id, 3)).quantity == 3
    assert cart_api.quantities(session.user_id) == {("p1", "v1"): 3}

    assert ok(await cart.update_quantity(item.id, -1)) is None
    assert cart.items == ()
    assert cart_api.quantities(session.user_id) == {}


async def test_remote_remove_unknown(cart: Reconciler, sessions: SessionManager) -> None:
    ok(await sessions.sign_in(EMAIL, PASSWORD))
    assert err(await cart.remove("nope")).kind is CollectionErrorKind.NOT_FOUND


async def test_remote_rows_of_other_owners_are_dropped(
    cart: Reconciler,
    sessions: SessionManager,
    auth,
    cart_api: MemoryCollectionEndpoint,
) -> None:
    user = auth.add_user("bob@example.com", "pw")
    mine = build_line_item(ItemInput("p1", "v1"), CollectionKind.CART, owner_id=user.id)
    theirs = build_line_item(ItemInput("p2", "v2"), CollectionKind.CART, owner_id="other")
    cart_api.seed(user.id, mine.to_dict(), theirs.to_dict())

    ok(await sessions.sign_in("bob@example.com", "pw"))

    assert [i.product_id for i in cart.items] == ["p1"]


async def test_remote_fetch_failure_surfaces_as_error(
    cart: Reconciler, sessions: SessionManager, cart_api: MemoryCollectionEndpoint
) -> None:
    cart_api.fail_next(ConnectionError("offline"))

    ok(await sessions.sign_in(EMAIL, PASSWORD))

    assert cart.items == ()
    assert cart.error is not None
    assert cart.error.kind is CollectionErrorKind.REMOTE

    ok(await cart.refresh())
    assert cart.error is None


async def test_explicit_sign_out_empties_collection(
    cart: Reconciler, sessions: SessionManager
) -> None:
    ok(await sessions.sign_in(EMAIL, PASSWORD))
    ok(await cart.add("p1", "v1"))

    ok(await sessions.sign_out())

    assert cart.user_id is None
    assert cart.items == ()


async def test_session_expiry_falls_back_to_guest(
    cart: Reconciler, sessions: SessionManager, auth
) -> None:
    session = ok(await sessions.sign_in(EMAIL, PASSWORD))
    ok(await cart.add("p1", "v1"))
    auth.revoke(session.refresh_token)

    assert not await sessions.refresh()

    assert cart.user_id is None
    assert cart.items == ()
    ok(await cart.add("p9", "v9"))
    assert cart.find(cart.items[0].id).owner_id is None


# ═══════════════════════════════════════════════════════════════════════════════
# Merge
# ═══════════════════════════════════════════════════════════════════════════════


async def test_merge_runs_before_remote_fetch(
    cart: Reconciler, sessions: SessionManager, cart_api: MemoryCollectionEndpoint
) -> None:
    ok(await cart.add("p1", "v1"))
    ok(await cart.add("p2", "v2"))

    ok(await sessions.sign_in(EMAIL, PASSWORD))

    assert cart_api.calls == ["upsert", "upsert", "fetch_all"]


async def test_partial_merge_keeps_going(
    cart: Reconciler,
    sessions: SessionManager,
    store: MemoryStore,
    cart_api: MemoryCollectionEndpoint,
    config: Config,
) -> None:
    ok(await cart.add("p1", "v1"))
    ok(await cart.add("p2", "v2"))
    cart_api.fail_next(ConnectionError("flaky"))

    session = ok(await sessions.sign_in(EMAIL, PASSWORD))

    assert cart_api.quantities(session.user_id) == {("p2", "v2"): 1}
    assert [i.product_id for i in cart.items] == ["p2"]
    assert store.raw(config.keys.guest("cart")) is None


async def test_merge_report_and_ledger(
    store: MemoryStore, cart_api: MemoryCollectionEndpoint, config: Config
) -> None:
    items = [
        build_line_item(ItemInput("p1", "v1", quantity=2), CollectionKind.CART, owner_id=None),
        build_line_item(ItemInput("p2", "v2"), CollectionKind.CART, owner_id=None),
    ]

    first = await merge_guest_items(
        CollectionKind.CART, items, "u1", cart_api, store, config.keys, config.write_policy
    )
    second = await merge_guest_items(
        CollectionKind.CART, items, "u1", cart_api, store, config.keys, config.write_policy
    )

    assert (first.merged, first.skipped, first.failed) == (2, 0, 0)
    assert (second.merged, second.skipped, second.failed) == (0, 2, 0)
    assert cart_api.quantities("u1") == {("p1", "v1"): 2, ("p2", "v2"): 1}


async def test_merge_stops_once_superseded(
    store: MemoryStore, cart_api: MemoryCollectionEndpoint, config: Config
) -> None:
    items = [
        build_line_item(ItemInput("p1", "v1", quantity=2), CollectionKind.CART, owner_id=None),
        build_line_item(ItemInput("p2", "v2"), CollectionKind.CART, owner_id=None),
    ]

    report = await merge_guest_items(
        CollectionKind.CART,
        items,
        "u1",
        cart_api,
        store,
        config.keys,
        config.write_policy,
        is_current=lambda: not cart_api.calls,
    )

    assert (report.merged, report.skipped, report.failed) == (1, 0, 0)
    assert cart_api.quantities("u1") == {("p1", "v1"): 2}
    assert store.raw(config.keys.merged("cart", "u1")) is None


async def test_wishlist_merge_ignores_existing(
    wishlist: Reconciler,
    sessions: SessionManager,
    auth,
    wishlist_api: MemoryCollectionEndpoint,
) -> None:
    user = auth.add_user("bob@example.com", "pw")
    existing = build_line_item(ItemInput("p1"), CollectionKind.WISHLIST, owner_id=user.id)
    wishlist_api.seed(user.id, {**existing.to_dict(), "id": "row-seeded"})
    ok(await wishlist.add("p1"))
    ok(await wishlist.add("p2"))

    ok(await sessions.sign_in("bob@example.com", "pw"))

    assert wishlist_api.quantities(user.id) == {("p1", None): 1, ("p2", None): 1}
    assert {i.product_id for i in wishlist.items} == {"p1", "p2"}
