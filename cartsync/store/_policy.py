"""
Write policy — bounded retry with real backoff.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, replace


@dataclass(frozen=True, slots=True)
class WritePolicy:
    """
    Retry settings for local writes.

    Fluent builder — each method returns a new policy.

    Example:
        policy = (
            WritePolicy()
            .with_attempts(5)
            .with_backoff(initial=0.1, factor=2.0, maximum=2.0)
        )

    Note: delays are awaited between attempts, so a retry only happens
    after the backoff has elapsed.
    """

    times: int = 3
    backoff_initial: float = 0.05
    backoff_factor: float = 2.0
    backoff_max: float = 1.0
    jitter: bool = False

    def with_attempts(self, times: int) -> WritePolicy:
        if times < 1:
            raise ValueError("Must allow at least one attempt")
        return replace(self, times=times)

    def with_backoff(
        self,
        *,
        initial: float | None = None,
        factor: float | None = None,
        maximum: float | None = None,
    ) -> WritePolicy:
        return replace(
            self,
            backoff_initial=self.backoff_initial if initial is None else initial,
            backoff_factor=self.backoff_factor if factor is None else factor,
            backoff_max=self.backoff_max if maximum is None else maximum,
        )

    def with_jitter(self, jitter: bool = True) -> WritePolicy:
        return replace(self, jitter=jitter)

    def delays(self) -> list[float]:
        """Sleep before each retry (one fewer than attempts)."""
        out: list[float] = []
        delay = self.backoff_initial
        for _ in range(self.times - 1):
            step = min(delay, self.backoff_max)
            if self.jitter:
                step = random.uniform(0, step)
            out.append(step)
            delay *= self.backoff_factor
        return out


# No waiting between attempts; useful in tests
IMMEDIATE = WritePolicy(backoff_initial=0.0)


__all__ = ("WritePolicy", "IMMEDIATE")
