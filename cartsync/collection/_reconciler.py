"""
Reconciler — one cart or wishlist, guest-local or user-remote.

Backing store follows the session:

    user_id is None   →  LocalStore, fixed guest key, optimistic writes
    user_id is set    →  CollectionEndpoint, confirmed writes

The guest → user transition runs the merge protocol exactly once,
before any remote read is served.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import replace
from typing import Any

import structlog
from combinators import lift as L
from kungfu import Result, Ok, Error

from cartsync._config import Config
from cartsync._types import UserId
from cartsync.collection._build import build_line_item, overlay_row
from cartsync.collection._endpoint import CollectionEndpoint
from cartsync.collection._merge import merge_guest_items
from cartsync.collection._types import (
    CollectionKind,
    LineItem,
    ItemInput,
    CollectionSnapshot,
    CollectionError,
    CollectionErrorKind,
    remote_error,
    validation_error,
)
from cartsync.session import SessionManager
from cartsync.store import LocalStore, read_json, write_json

log = structlog.get_logger("cartsync.collection")


def decode_items(
    raw: Any,
    kind: CollectionKind,
    owner_id: UserId | None,
) -> tuple[list[LineItem], int]:
    """
    Decode stored rows, keeping only valid items owned by `owner_id`.

    Returns the kept items and how many rows were dropped.
    """
    if not isinstance(raw, list):
        return [], 0

    kept: list[LineItem] = []
    seen: set[tuple[str, str | None]] = set()
    for row in raw:
        item = LineItem.from_dict(row, kind)
        if item is None or item.owner_id != owner_id or item.key in seen:
            continue
        seen.add(item.key)
        kept.append(item)
    return kept, len(raw) - len(kept)


class Reconciler:
    """
    Owner of one collection's in-memory items.

    Example:
        cart = Reconciler(CollectionKind.CART, sessions, store, endpoint)
        await cart.start()

        match await cart.add("p1", "v1", quantity=2):
            case Ok(item):
                print(item.id, cart.subtotal)
            case Error(e):
                print(e.kind, e.message)

    Note: guest mutations never fail on storage; a write that is
    abandoned after retries leaves memory ahead of the store.
    """

    def __init__(
        self,
        kind: CollectionKind,
        sessions: SessionManager,
        store: LocalStore,
        endpoint: CollectionEndpoint,
        config: Config = Config(),
    ) -> None:
        self._kind = kind
        self._sessions = sessions
        self._store = store
        self._endpoint = endpoint
        self._config = config
        self._keys = config.keys

        self._items: tuple[LineItem, ...] = ()
        self._user_id: UserId | None = None
        self._ready = asyncio.Event()
        self._ready.set()
        self._epoch = 0
        self._loading = False
        self._error: CollectionError | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._closed = False

    # ═══════════════════════════════════════════════════════════════════════════
    # Read projection
    # ═══════════════════════════════════════════════════════════════════════════

    @property
    def kind(self) -> CollectionKind:
        return self._kind

    @property
    def user_id(self) -> UserId | None:
        return self._user_id

    @property
    def items(self) -> tuple[LineItem, ...]:
        return self._items

    @property
    def subtotal(self) -> float:
        return sum(i.line_total for i in self._items)

    @property
    def item_count(self) -> int:
        return sum(i.quantity for i in self._items)

    @property
    def has_items(self) -> bool:
        return bool(self._items)

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> CollectionError | None:
        """Last background load failure, cleared by the next successful load."""
        return self._error

    def snapshot(self) -> CollectionSnapshot:
        return CollectionSnapshot.of(self._items)

    def find(self, item_id: str) -> LineItem | None:
        return next((i for i in self._items if i.id == item_id), None)

    def contains(self, product_id: str, variant_id: str | None = None) -> bool:
        return self._by_key((product_id, variant_id)) is not None

    # ═══════════════════════════════════════════════════════════════════════════
    # Lifecycle
    # ═══════════════════════════════════════════════════════════════════════════

    async def start(self) -> None:
        """Subscribe to user changes and load the current user's collection."""
        if self._unsubscribe is None:
            self._unsubscribe = self._sessions.subscribe(self._on_user_changed)
        await self._switch(self._sessions.user_id, explicit=False)

    def close(self) -> None:
        self._closed = True
        self._epoch += 1
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._ready.set()

    async def ready(self) -> None:
        """Wait until the current scope switch (and any guest merge) has finished."""
        await self._ready.wait()

    async def _on_user_changed(self, user_id: UserId | None, explicit: bool) -> None:
        if user_id != self._sessions.user_id:
            log.info("stale_user_change_ignored", kind=self._kind.value, user_id=user_id)
            return
        await self._switch(user_id, explicit)

    async def refresh(self) -> Result[CollectionSnapshot, CollectionError]:
        """Re-read the active backing store."""
        await self.ready()
        epoch, user_id = self._epoch, self._user_id
        if user_id is None:
            items = await self._load_guest()
            if epoch == self._epoch:
                self._items = tuple(items)
            return Ok(self.snapshot())

        match await self._fetch_remote(user_id):
            case Ok(items):
                if epoch == self._epoch:
                    self._items = tuple(items)
                    self._error = None
                return Ok(self.snapshot())
            case Error(err):
                return Error(err)

    # ═══════════════════════════════════════════════════════════════════════════
    # Scope switching
    # ═══════════════════════════════════════════════════════════════════════════

    async def _switch(self, user_id: UserId | None, explicit: bool) -> None:
        if self._closed:
            return
        self._epoch += 1
        epoch = self._epoch
        self._ready.clear()
        self._loading = True
        self._user_id = user_id

        if user_id is None:
            items = [] if explicit else await self._load_guest()
            error = None
        else:
            guest = await self._load_guest()
            if guest and epoch == self._epoch:
                await merge_guest_items(
                    self._kind,
                    guest,
                    user_id,
                    self._endpoint,
                    self._store,
                    self._keys,
                    self._config.write_policy,
                    is_current=lambda: epoch == self._epoch,
                )
                # The guest key belongs to whoever holds the scope now
                if epoch == self._epoch:
                    await self._clear_guest_key()
            if epoch != self._epoch:
                return
            match await self._fetch_remote(user_id):
                case Ok(fetched):
                    items, error = fetched, None
                case Error(err):
                    items, error = [], err

        # A newer switch owns the state now
        if epoch != self._epoch:
            return
        self._items = tuple(items)
        self._error = error
        self._loading = False
        self._ready.set()
        log.info(
            "collection_switched",
            kind=self._kind.value,
            user_id=user_id,
            explicit=explicit,
            items=len(items),
        )

    async def _load_guest(self) -> list[LineItem]:
        key = self._keys.guest(self._kind.value)
        raw = await read_json(self._store, key, [])
        items, dropped = decode_items(raw, self._kind, None)
        if dropped:
            log.warning("guest_items_dropped", kind=self._kind.value, dropped=dropped)
            await self._persist_guest(items)
        return items

    async def _fetch_remote(self, user_id: UserId) -> Result[list[LineItem], CollectionError]:
        result = await L.catching_async(
            lambda: self._endpoint.fetch_all(user_id),
            on_error=remote_error,
        )
        match result:
            case Ok(rows):
                items, dropped = decode_items(rows, self._kind, user_id)
                if dropped:
                    log.warning(
                        "remote_rows_dropped",
                        kind=self._kind.value,
                        user_id=user_id,
                        dropped=dropped,
                    )
                return Ok(items)
            case Error(err):
                log.warning(
                    "remote_fetch_failed",
                    kind=self._kind.value,
                    user_id=user_id,
                    error=err.message,
                )
                return Error(err)

    async def _persist_guest(self, items: list[LineItem] | tuple[LineItem, ...]) -> None:
        await write_json(
            self._store,
            self._keys.guest(self._kind.value),
            [i.to_dict() for i in items],
            self._config.write_policy,
        )

    async def _clear_guest_key(self) -> None:
        match await self._store.delete(self._keys.guest(self._kind.value)):
            case Error(err):
                log.warning("guest_clear_failed", kind=self._kind.value, error=err.message)
            case Ok(_):
                pass

    # ═══════════════════════════════════════════════════════════════════════════
    # Mutations
    # ═══════════════════════════════════════════════════════════════════════════

    async def add(
        self,
        product_id: str,
        variant_id: str | None = None,
        quantity: int = 1,
        details: ItemInput | None = None,
    ) -> Result[LineItem, CollectionError]:
        """
        Add a product/variant, or bump an existing line.

        Cart: requires variant_id and quantity >= 1; re-adding sums quantities.
        Wishlist: quantity is ignored; re-adding returns the existing entry.
        """
        if not product_id:
            return Error(validation_error("Product is required"))
        if self._kind.requires_variant and not variant_id:
            return Error(validation_error("Please select a size and colour"))
        if self._kind.tracks_quantity and quantity < 1:
            return Error(validation_error(f"Quantity must be at least 1, got {quantity}"))

        inp = ItemInput(product_id, variant_id, quantity if self._kind.tracks_quantity else 1)
        if details is not None:
            inp = replace(
                details,
                product_id=inp.product_id,
                variant_id=inp.variant_id,
                quantity=inp.quantity,
            )

        await self.ready()
        existing = self._by_key((product_id, variant_id))
        if existing is not None and not self._kind.tracks_quantity:
            return Ok(existing)

        if self._user_id is None:
            if existing is not None:
                item = replace(existing, quantity=existing.quantity + inp.quantity)
            else:
                item = build_line_item(inp, self._kind, owner_id=None)
            self._put(item)
            await self._persist_guest(self._items)
            log.debug("guest_item_added", kind=self._kind.value, product_id=product_id)
            return Ok(item)

        epoch, user_id = self._epoch, self._user_id
        local = build_line_item(inp, self._kind, owner_id=user_id)
        result = await L.catching_async(
            lambda: self._endpoint.upsert(
                user_id, local.to_dict(), accumulate=self._kind.tracks_quantity
            ),
            on_error=remote_error,
        )
        match result:
            case Ok(row):
                item = overlay_row(local, row, self._kind)
                if epoch == self._epoch:
                    self._put(item)
                return Ok(item)
            case Error(err):
                log.warning("remote_add_failed", kind=self._kind.value, error=err.message)
                return Error(err)

    async def update_quantity(
        self,
        item_id: str,
        quantity: int,
    ) -> Result[LineItem | None, CollectionError]:
        """
        Set a line's quantity. Non-positive quantities remove the line.

        Returns the updated item, or None when the line was removed.
        """
        if quantity <= 0:
            match await self.remove(item_id):
                case Ok(_):
                    return Ok(None)
                case Error(err):
                    return Error(err)

        if not self._kind.tracks_quantity:
            return Error(validation_error("Wishlist entries have no quantity"))

        await self.ready()
        current = self.find(item_id)
        if current is None:
            return Error(_not_found(item_id))

        if self._user_id is None:
            item = replace(current, quantity=quantity)
            self._put(item)
            await self._persist_guest(self._items)
            return Ok(item)

        epoch, user_id = self._epoch, self._user_id
        result = await L.catching_async(
            lambda: self._endpoint.update_quantity(user_id, item_id, quantity),
            on_error=remote_error,
        )
        match result:
            case Ok(row):
                item = overlay_row(replace(current, quantity=quantity), row or {}, self._kind)
                if epoch == self._epoch:
                    self._put(item)
                return Ok(item)
            case Error(err):
                log.warning("remote_update_failed", kind=self._kind.value, error=err.message)
                return Error(err)

    async def remove(self, item_id: str) -> Result[None, CollectionError]:
        """Remove a line. Removing an unknown id from the guest collection is a no-op."""
        await self.ready()

        if self._user_id is None:
            if self.find(item_id) is not None:
                self._items = tuple(i for i in self._items if i.id != item_id)
                await self._persist_guest(self._items)
            return Ok(None)

        if self.find(item_id) is None:
            return Error(_not_found(item_id))

        epoch, user_id = self._epoch, self._user_id
        result = await L.catching_async(
            lambda: self._endpoint.delete(user_id, item_id),
            on_error=remote_error,
        )
        match result:
            case Ok(_):
                if epoch == self._epoch:
                    self._items = tuple(i for i in self._items if i.id != item_id)
                return Ok(None)
            case Error(err):
                log.warning("remote_remove_failed", kind=self._kind.value, error=err.message)
                return Error(err)

    async def clear(self) -> Result[None, CollectionError]:
        await self.ready()

        if self._user_id is None:
            self._items = ()
            await self._persist_guest(self._items)
            return Ok(None)

        epoch, user_id = self._epoch, self._user_id
        result = await L.catching_async(
            lambda: self._endpoint.delete_all(user_id),
            on_error=remote_error,
        )
        match result:
            case Ok(_):
                if epoch == self._epoch:
                    self._items = ()
                return Ok(None)
            case Error(err):
                log.warning("remote_clear_failed", kind=self._kind.value, error=err.message)
                return Error(err)

    # ═══════════════════════════════════════════════════════════════════════════
    # Internals
    # ═══════════════════════════════════════════════════════════════════════════

    def _by_key(self, key: tuple[str, str | None]) -> LineItem | None:
        return next((i for i in self._items if i.key == key), None)

    def _put(self, item: LineItem) -> None:
        """Insert or replace by (product_id, variant_id), keeping order."""
        items = list(self._items)
        for index, current in enumerate(items):
            if current.key == item.key:
                items[index] = item
                break
        else:
            items.append(item)
        self._items = tuple(items)


def _not_found(item_id: str) -> CollectionError:
    return CollectionError(CollectionErrorKind.NOT_FOUND, f"No item {item_id}")


__all__ = ("Reconciler", "decode_items")
