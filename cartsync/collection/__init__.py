"""
Collection — cart and wishlist reconciliation.

    from cartsync import collection as C

    cart = C.Reconciler(C.CollectionKind.CART, sessions, store, endpoint)
    await cart.start()

    await cart.add("p1", "v1", quantity=2)
    await cart.update_quantity(cart.items[0].id, 0)   # removes

    snap = cart.snapshot()
    snap.subtotal, snap.item_count
"""

from cartsync.collection._types import (
    CollectionKind,
    ProductSnapshot,
    VariantSnapshot,
    LineItem,
    ItemInput,
    CollectionSnapshot,
    CollectionErrorKind,
    CollectionError,
    remote_error,
    validation_error,
)
from cartsync.collection._build import (
    guest_id,
    pending_id,
    default_product,
    default_variant,
    build_line_item,
    reown,
    overlay_row,
)
from cartsync.collection._endpoint import CollectionEndpoint
from cartsync.collection._merge import MergeReport, merge_guest_items
from cartsync.collection._reconciler import Reconciler, decode_items

__all__ = (
    # Types
    "CollectionKind",
    "ProductSnapshot",
    "VariantSnapshot",
    "LineItem",
    "ItemInput",
    "CollectionSnapshot",
    # Errors
    "CollectionErrorKind",
    "CollectionError",
    "remote_error",
    "validation_error",
    # Construction
    "guest_id",
    "pending_id",
    "default_product",
    "default_variant",
    "build_line_item",
    "reown",
    "overlay_row",
    # Endpoint
    "CollectionEndpoint",
    # Merge
    "MergeReport",
    "merge_guest_items",
    # Reconciler
    "Reconciler",
    "decode_items",
)
