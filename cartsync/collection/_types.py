"""
Collection types — line items, snapshots, errors.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import Enum, auto
from typing import Any

from cartsync._types import UserId


# ═══════════════════════════════════════════════════════════════════════════════
# Collection Kind
# ═══════════════════════════════════════════════════════════════════════════════


class CollectionKind(Enum):
    """
    Which collection a reconciler owns.

    CART tracks quantities and accumulates on re-add.
    WISHLIST holds each product/variant once; re-adding is a no-op.
    """

    CART = "cart"
    WISHLIST = "wishlist"

    @property
    def tracks_quantity(self) -> bool:
        return self is CollectionKind.CART

    @property
    def requires_variant(self) -> bool:
        """Cart lines need a size/colour selection; wishlist entries do not."""
        return self is CollectionKind.CART


# ═══════════════════════════════════════════════════════════════════════════════
# Denormalized Snapshots
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ProductSnapshot:
    id: str
    name: str
    base_price: float = 0.0
    image: str | None = None
    stock: int | None = None

    @classmethod
    def from_dict(cls, data: Any) -> ProductSnapshot | None:
        if not isinstance(data, dict) or not data.get("id"):
            return None
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or f"Product {data['id']}"),
            base_price=float(data.get("base_price") or 0),
            image=data.get("image"),
            stock=data.get("stock"),
        )


@dataclass(frozen=True, slots=True)
class VariantSnapshot:
    id: str
    price: float | None = None
    color: str | None = None
    size: str | None = None
    sku: str | None = None
    stock: int | None = None

    @classmethod
    def from_dict(cls, data: Any) -> VariantSnapshot | None:
        if not isinstance(data, dict) or not data.get("id"):
            return None
        price = data.get("price")
        return cls(
            id=str(data["id"]),
            price=float(price) if price is not None else None,
            color=data.get("color"),
            size=data.get("size"),
            sku=data.get("sku"),
            stock=data.get("stock"),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Line Item
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class LineItem:
    """
    One cart or wishlist entry.

    Note: (product_id, variant_id) is unique within one owner's collection.
    owner_id None means guest-owned.
    """

    id: str
    owner_id: UserId | None
    product_id: str
    variant_id: str | None
    quantity: int
    price_at_add: float | None
    added_at: str
    product: ProductSnapshot
    variant: VariantSnapshot | None

    @property
    def key(self) -> tuple[str, str | None]:
        return (self.product_id, self.variant_id)

    @property
    def unit_price(self) -> float:
        """Price at add, else variant price, else product base price."""
        if self.price_at_add is not None:
            return self.price_at_add
        if self.variant is not None and self.variant.price is not None:
            return self.variant.price
        return self.product.base_price

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any, kind: CollectionKind) -> LineItem | None:
        """
        Decode a stored or remote row.

        Returns None when a required field is missing or malformed.
        """
        if not isinstance(data, dict):
            return None

        product = ProductSnapshot.from_dict(data.get("product"))
        variant = VariantSnapshot.from_dict(data.get("variant"))
        product_id = data.get("product_id")
        variant_id = data.get("variant_id")
        if not data.get("id") or not product_id or product is None:
            return None
        if kind.requires_variant and (not variant_id or variant is None):
            return None

        quantity = data.get("quantity", 1 if not kind.tracks_quantity else None)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            return None

        price = data.get("price_at_add")
        try:
            return cls(
                id=str(data["id"]),
                owner_id=data.get("owner_id"),
                product_id=str(product_id),
                variant_id=str(variant_id) if variant_id else None,
                quantity=quantity if kind.tracks_quantity else 1,
                price_at_add=float(price) if price is not None else None,
                added_at=str(data.get("added_at") or ""),
                product=product,
                variant=variant,
            )
        except (TypeError, ValueError):
            return None


# ═══════════════════════════════════════════════════════════════════════════════
# Item Input — partial data for construction
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ItemInput:
    """
    Partial input for a new line item.

    Only product_id is mandatory; build_line_item() fills the rest.
    """

    product_id: str
    variant_id: str | None = None
    quantity: int = 1
    price: float | None = None
    product: ProductSnapshot | None = None
    variant: VariantSnapshot | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Snapshot — derived read view
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CollectionSnapshot:
    items: tuple[LineItem, ...]
    subtotal: float
    item_count: int
    has_items: bool

    @classmethod
    def of(cls, items: tuple[LineItem, ...]) -> CollectionSnapshot:
        return cls(
            items=items,
            subtotal=sum(i.line_total for i in items),
            item_count=sum(i.quantity for i in items),
            has_items=bool(items),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════════


class CollectionErrorKind(Enum):
    VALIDATION = auto()  # Missing selection / bad quantity, nothing applied
    REMOTE = auto()  # Collection endpoint failed, state unchanged
    NOT_FOUND = auto()  # Unknown item id
    STORAGE = auto()  # Local store unusable


@dataclass(frozen=True, slots=True)
class CollectionError:
    kind: CollectionErrorKind
    message: str
    cause: Exception | None = None


def remote_error(exc: Exception) -> CollectionError:
    return CollectionError(CollectionErrorKind.REMOTE, str(exc) or type(exc).__name__, exc)


def validation_error(message: str) -> CollectionError:
    return CollectionError(CollectionErrorKind.VALIDATION, message)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "CollectionKind",
    "ProductSnapshot",
    "VariantSnapshot",
    "LineItem",
    "ItemInput",
    "CollectionSnapshot",
    "CollectionErrorKind",
    "CollectionError",
    "remote_error",
    "validation_error",
)
