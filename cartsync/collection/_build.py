"""
Line item construction — explicit default-fill rules.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from cartsync._types import UserId
from cartsync.collection._types import (
    CollectionKind,
    ItemInput,
    LineItem,
    ProductSnapshot,
    VariantSnapshot,
)


# ═══════════════════════════════════════════════════════════════════════════════
# Default Rules
# ═══════════════════════════════════════════════════════════════════════════════


def guest_id() -> str:
    return f"guest_{uuid.uuid4().hex}"


def pending_id() -> str:
    """Placeholder id until the remote endpoint assigns one."""
    return f"pending_{uuid.uuid4().hex}"


def default_product(product_id: str) -> ProductSnapshot:
    return ProductSnapshot(id=product_id, name=f"Product {product_id}", base_price=0.0)


def default_variant(variant_id: str) -> VariantSnapshot:
    return VariantSnapshot(id=variant_id, price=None, color="Default", size="M")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ═══════════════════════════════════════════════════════════════════════════════
# build_line_item()
# ═══════════════════════════════════════════════════════════════════════════════


def build_line_item(
    inp: ItemInput,
    kind: CollectionKind,
    *,
    owner_id: UserId | None,
    now: Callable[[], str] = utc_now,
    id_factory: Callable[[], str] | None = None,
) -> LineItem:
    """
    Build a fully populated LineItem from partial input.

    Rules:
        id          ← id_factory, else guest_<hex> (guest) / pending_<hex> (user)
        quantity    ← input quantity (cart), always 1 (wishlist)
        product     ← input snapshot, else {id, "Product <id>", base_price 0}
        variant     ← input snapshot, else {id, color "Default", size "M"} when
                      a variant id is given
        price_at_add← input price, else variant snapshot price, else None
                      (read falls back to product base price)
        added_at    ← now()

    Example:
        item = build_line_item(
            ItemInput("p1", "v1", quantity=2, price=19.99),
            CollectionKind.CART,
            owner_id=None,
        )
    """
    if id_factory is None:
        id_factory = guest_id if owner_id is None else pending_id

    variant = inp.variant
    if variant is None and inp.variant_id:
        variant = default_variant(inp.variant_id)

    price = inp.price
    if price is None and inp.variant is not None:
        price = inp.variant.price

    return LineItem(
        id=id_factory(),
        owner_id=owner_id,
        product_id=inp.product_id,
        variant_id=inp.variant_id,
        quantity=inp.quantity if kind.tracks_quantity else 1,
        price_at_add=price,
        added_at=now(),
        product=inp.product or default_product(inp.product_id),
        variant=variant,
    )


def reown(item: LineItem, owner_id: UserId) -> LineItem:
    return replace(item, owner_id=owner_id)


def overlay_row(item: LineItem, row: dict[str, Any], kind: CollectionKind) -> LineItem:
    """
    Combine a remote row with the locally built item.

    Remote fields win; snapshots the endpoint did not return are kept
    from the local item.
    """
    merged = item.to_dict()
    merged.update({k: v for k, v in row.items() if v is not None})
    return LineItem.from_dict(merged, kind) or item


__all__ = (
    "guest_id",
    "pending_id",
    "default_product",
    "default_variant",
    "utc_now",
    "build_line_item",
    "reown",
    "overlay_row",
)
