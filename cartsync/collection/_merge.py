"""
Guest merge — one-shot migration of guest items into a user's collection.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import structlog
from combinators import lift as L
from kungfu import Ok, Error

from cartsync._types import UserId
from cartsync.collection._build import reown
from cartsync.collection._endpoint import CollectionEndpoint
from cartsync.collection._types import CollectionKind, LineItem, remote_error
from cartsync.store import Keys, LocalStore, WritePolicy, read_json, write_json

log = structlog.get_logger("cartsync.collection")


@dataclass(frozen=True, slots=True)
class MergeReport:
    merged: int
    skipped: int
    failed: int


async def merge_guest_items(
    kind: CollectionKind,
    items: list[LineItem],
    user_id: UserId,
    endpoint: CollectionEndpoint,
    store: LocalStore,
    keys: Keys,
    policy: WritePolicy = WritePolicy(),
    is_current: Callable[[], bool] = lambda: True,
) -> MergeReport:
    """
    Upsert each guest item into the user's remote collection.

    Per-item failures are logged and skipped; there is no global rollback.
    Merged guest ids are recorded in a per-user ledger, so repeating the
    merge with the same guest items changes nothing.

    Stops without further upserts or ledger writes once `is_current()`
    turns false (the user signed out or the owner closed).
    """
    ledger_key = keys.merged(kind.value, user_id)
    raw = await read_json(store, ledger_key, [])
    done: set[str] = set(raw) if isinstance(raw, list) else set()

    merged = skipped = failed = 0
    for item in items:
        if not is_current():
            log.info("guest_merge_abandoned", kind=kind.value, user_id=user_id, merged=merged)
            return MergeReport(merged=merged, skipped=skipped, failed=failed)
        if item.id in done:
            skipped += 1
            continue

        row = reown(item, user_id).to_dict()
        result = await L.catching_async(
            lambda row=row: endpoint.upsert(user_id, row, accumulate=kind.tracks_quantity),
            on_error=remote_error,
        )
        match result:
            case Ok(_):
                merged += 1
                done.add(item.id)
                if is_current():
                    await write_json(store, ledger_key, sorted(done), policy)
            case Error(err):
                failed += 1
                log.warning(
                    "guest_item_merge_failed",
                    kind=kind.value,
                    user_id=user_id,
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    error=err.message,
                )

    log.info(
        "guest_merge_completed",
        kind=kind.value,
        user_id=user_id,
        merged=merged,
        skipped=skipped,
        failed=failed,
    )
    return MergeReport(merged=merged, skipped=skipped, failed=failed)


__all__ = ("MergeReport", "merge_guest_items")
