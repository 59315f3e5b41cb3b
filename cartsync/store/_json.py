"""
JSON helpers over LocalStore — degrade on read, retry on write.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import structlog
from kungfu import Result, Ok, Error

from cartsync.store._policy import WritePolicy
from cartsync.store._types import LocalStore, StoreError

log = structlog.get_logger("cartsync.store")


async def read_json[T](store: LocalStore, key: str, default: T) -> Any | T:
    """
    Read and decode a JSON value.

    Never fails: a missing key, a storage error or corrupted JSON
    all return `default`.
    """
    match await store.get(key):
        case Ok(None):
            return default
        case Ok(raw):
            try:
                return json.loads(raw)
            except (TypeError, ValueError) as e:
                log.warning("corrupt_entry", key=key, store=store.name, error=str(e))
                return default
        case Error(err):
            log.warning("read_failed", key=key, store=store.name, error=err.message)
            return default


async def write_json(
    store: LocalStore,
    key: str,
    value: Any,
    policy: WritePolicy = WritePolicy(),
) -> Result[None, StoreError]:
    """
    Encode and write a JSON value, retrying with backoff.

    Returns the result of the last attempt. Callers keep their in-memory
    state either way; the next successful write reconciles storage.
    """
    try:
        raw = json.dumps(value, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        log.error("encode_failed", key=key, error=str(e))
        return Error(StoreError(f"Cannot encode {key}", e))

    delays = policy.delays()
    attempt = 0
    while True:
        attempt += 1
        result = await store.set(key, raw)
        match result:
            case Ok(_):
                if attempt > 1:
                    log.info("write_recovered", key=key, attempts=attempt)
                return result
            case Error(err):
                if attempt > len(delays):
                    log.error(
                        "write_abandoned",
                        key=key,
                        store=store.name,
                        attempts=attempt,
                        error=err.message,
                    )
                    return result
                log.debug("write_retry", key=key, attempt=attempt, error=err.message)
                await asyncio.sleep(delays[attempt - 1])


__all__ = ("read_json", "write_json")
