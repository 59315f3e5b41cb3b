"""Shared infrastructure for examples."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine

import structlog

from cartsync.collection import Reconciler


# Logging
def quiet_logs(level: int = logging.WARNING) -> None:
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(level))


# Helpers
def banner(title: str) -> None:
    print(f"\n{'─' * 50}\n{title}\n{'─' * 50}")


def show(label: str, collection: Reconciler) -> None:
    owner = collection.user_id or "guest"
    print(f"   {label} [{owner}] items={collection.item_count} subtotal={collection.subtotal:.2f}")
    for item in collection.items:
        variant = item.variant_id or "-"
        print(f"     {item.product_id}/{variant} x{item.quantity} @ {item.unit_price:.2f}")


def run(main: Callable[[], Coroutine[object, object, None]]) -> None:
    quiet_logs()
    asyncio.run(main())
