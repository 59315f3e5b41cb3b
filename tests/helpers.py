from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest
from kungfu import Ok, Error


def ok(result: Any) -> Any:
    match result:
        case Ok(value):
            return value
        case _:
            pytest.fail(f"expected Ok, got {result!r}")


def err(result: Any) -> Any:
    match result:
        case Error(error):
            return error
        case _:
            pytest.fail(f"expected Error, got {result!r}")


async def until(condition: Callable[[], bool], rounds: int = 200) -> None:
    """Let other tasks run until `condition()` holds."""
    for _ in range(rounds):
        if condition():
            return
        await asyncio.sleep(0)
    pytest.fail("condition never held")
