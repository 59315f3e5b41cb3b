"""
Config — immutable runtime settings.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace

from dotenv import load_dotenv

from cartsync.store import Keys, WritePolicy


@dataclass(frozen=True, slots=True)
class Config:
    """
    Storefront sync configuration.

    Fluent builder pattern — chain methods to configure.

    Example:
        config = (
            Config()
            .with_namespace("shop")
            .with_refresh(margin=60, floor=30)
            .with_sign_out_timeout(seconds=5)
        )

    Note: Immutable — each method returns new Config.
    """

    namespace: str = "vlanco"
    refresh_margin: float = 60.0
    refresh_floor: float = 30.0
    event_debounce: float = 0.2
    sign_out_timeout: float = 5.0
    write_policy: WritePolicy = field(default_factory=WritePolicy)

    @property
    def keys(self) -> Keys:
        return Keys(self.namespace)

    def with_namespace(self, namespace: str) -> Config:
        if not namespace or ":" in namespace:
            raise ValueError(f"Invalid namespace: {namespace!r}")
        return replace(self, namespace=namespace)

    def with_refresh(
        self,
        *,
        margin: float | None = None,
        floor: float | None = None,
    ) -> Config:
        """
        Set refresh scheduling.

        The next refresh fires `margin` seconds before expiry,
        but never sooner than `floor` seconds from now.
        """
        return replace(
            self,
            refresh_margin=self.refresh_margin if margin is None else margin,
            refresh_floor=self.refresh_floor if floor is None else floor,
        )

    def with_debounce(self, *, seconds: float) -> Config:
        return replace(self, event_debounce=seconds)

    def with_sign_out_timeout(self, *, seconds: float) -> Config:
        return replace(self, sign_out_timeout=seconds)

    def with_write_policy(self, policy: WritePolicy) -> Config:
        return replace(self, write_policy=policy)

    @classmethod
    def from_env(cls, dotenv_path: str | os.PathLike[str] | None = None) -> Config:
        """
        Build config from environment (and `.env` if present).

        Variables:
            CARTSYNC_NAMESPACE, CARTSYNC_REFRESH_MARGIN, CARTSYNC_REFRESH_FLOOR,
            CARTSYNC_EVENT_DEBOUNCE, CARTSYNC_SIGN_OUT_TIMEOUT, CARTSYNC_WRITE_ATTEMPTS
        """
        load_dotenv(dotenv_path)
        base = cls()
        return replace(
            base,
            refresh_margin=float(os.getenv("CARTSYNC_REFRESH_MARGIN", base.refresh_margin)),
            refresh_floor=float(os.getenv("CARTSYNC_REFRESH_FLOOR", base.refresh_floor)),
            event_debounce=float(os.getenv("CARTSYNC_EVENT_DEBOUNCE", base.event_debounce)),
            sign_out_timeout=float(
                os.getenv("CARTSYNC_SIGN_OUT_TIMEOUT", base.sign_out_timeout)
            ),
            write_policy=base.write_policy.with_attempts(
                int(os.getenv("CARTSYNC_WRITE_ATTEMPTS", base.write_policy.times))
            ),
        ).with_namespace(os.getenv("CARTSYNC_NAMESPACE", base.namespace))


__all__ = ("Config",)
