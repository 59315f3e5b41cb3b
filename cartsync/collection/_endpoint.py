"""
Collection endpoint protocol — remote rows scoped by user.
"""

from __future__ import annotations

from typing import Any, Protocol

from cartsync._types import UserId


class CollectionEndpoint(Protocol):
    """
    Remote CRUD for cart_items / wishlist_items.

    Rows are plain dicts in LineItem.to_dict() shape. Methods raise on
    failure; the reconciler lifts every call into a Result.

    upsert() is keyed by (product_id, variant_id) for the user: with
    accumulate=True quantities add, otherwise an existing row is
    returned unchanged. Implement it natively or by fetch-then-branch.
    """

    async def fetch_all(self, user_id: UserId) -> list[dict[str, Any]]: ...

    async def upsert(
        self,
        user_id: UserId,
        row: dict[str, Any],
        *,
        accumulate: bool,
    ) -> dict[str, Any]: ...

    async def update_quantity(
        self,
        user_id: UserId,
        item_id: str,
        quantity: int,
    ) -> dict[str, Any]: ...

    async def delete(self, user_id: UserId, item_id: str) -> None: ...

    async def delete_all(self, user_id: UserId) -> None: ...


__all__ = ("CollectionEndpoint",)
