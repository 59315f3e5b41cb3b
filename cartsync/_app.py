"""
Storefront — composition root.

One Session Manager, a cart and a wishlist Reconciler and a Checkout
Dispatcher, wired from explicit collaborators. Nothing is global.
"""

from __future__ import annotations

import time
from types import TracebackType

import structlog

from cartsync._config import Config
from cartsync._types import Clock
from cartsync.checkout import CheckoutDispatcher, CheckoutEndpoint, Navigator
from cartsync.collection import CollectionEndpoint, CollectionKind, Reconciler
from cartsync.session import AuthEndpoint, ProfileEndpoint, RestoreTrigger, SessionManager
from cartsync.store import LocalStore

log = structlog.get_logger("cartsync")


class Storefront:
    """
    Example:
        async with Storefront(
            store=await SQLAlchemyStore.create("sqlite+aiosqlite:///cart.db"),
            auth=auth,
            profiles=profiles,
            cart_endpoint=cart_api,
            wishlist_endpoint=wishlist_api,
            checkout_endpoint=payments,
            navigator=browser,
            config=Config.from_env(),
        ) as shop:
            await shop.cart.add("p1", "v1", quantity=2)
            await shop.sessions.sign_in("ada@example.com", "secret")
            await shop.checkout.create_checkout()
    """

    def __init__(
        self,
        *,
        store: LocalStore,
        auth: AuthEndpoint,
        profiles: ProfileEndpoint,
        cart_endpoint: CollectionEndpoint,
        wishlist_endpoint: CollectionEndpoint,
        checkout_endpoint: CheckoutEndpoint,
        navigator: Navigator,
        config: Config = Config(),
        clock: Clock = time.time,
        monotonic: Clock = time.monotonic,
    ) -> None:
        self.config = config
        self.store = store
        self.sessions = SessionManager(auth, profiles, store, config, clock, monotonic)
        self.cart = Reconciler(CollectionKind.CART, self.sessions, store, cart_endpoint, config)
        self.wishlist = Reconciler(
            CollectionKind.WISHLIST, self.sessions, store, wishlist_endpoint, config
        )
        self.checkout = CheckoutDispatcher(
            self.sessions, self.cart, checkout_endpoint, navigator
        )
        self._started = False

    async def start(self) -> None:
        """Restore a remembered session, then load both collections."""
        if self._started:
            return
        self._started = True
        restored = await self.sessions.restore_session(RestoreTrigger.STARTUP)
        await self.cart.start()
        await self.wishlist.start()
        log.info("storefront_started", restored=restored, user_id=self.sessions.user_id)

    async def on_foreground(self) -> bool:
        """App regained visibility."""
        return await self.sessions.restore_session(RestoreTrigger.FOREGROUND)

    async def close(self) -> None:
        self.cart.close()
        self.wishlist.close()
        self.sessions.close()
        log.info("storefront_closed")

    async def __aenter__(self) -> Storefront:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


__all__ = ("Storefront",)
