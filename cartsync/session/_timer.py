"""
Refresh timer — at most one outstanding refresh task.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

log = structlog.get_logger("cartsync.session")


def refresh_delay(
    expires_at: float,
    now: float,
    margin: float = 60.0,
    floor: float = 30.0,
) -> float:
    """
    Seconds until the next refresh.

    Example:
        refresh_delay(now + 500, now)  # 440.0
        refresh_delay(now + 70, now)   # 30.0 (floor)
    """
    return max(expires_at - margin - now, floor)


class RefreshTimer:
    """
    Single-slot timer.

    Note: schedule() cancels the previous task before creating the next one,
    so two refreshes are never pending at once.
    """

    def __init__(self) -> None:
        self._task: asyncio.Task[None] | None = None
        self._delay: float | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def delay(self) -> float | None:
        """Delay of the currently scheduled refresh."""
        return self._delay if self.pending else None

    def schedule(self, delay: float, callback: Callable[[], Awaitable[None]]) -> None:
        self.cancel()
        self._delay = delay

        async def fire() -> None:
            await asyncio.sleep(delay)
            # Detach first so the callback may reschedule
            self._task = None
            await callback()

        self._task = asyncio.create_task(fire(), name="cartsync-refresh")
        log.debug("refresh_scheduled", delay=round(delay, 3))

    def cancel(self) -> None:
        task, self._task = self._task, None
        self._delay = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()


__all__ = ("refresh_delay", "RefreshTimer")
