from __future__ import annotations

from collections.abc import AsyncIterator

import pytest

from cartsync import Config, Storefront
from cartsync.session import SessionManager
from cartsync.store import IMMEDIATE, MemoryStore
from cartsync.testing import (
    ManualClock,
    MemoryAuthEndpoint,
    MemoryCheckoutEndpoint,
    MemoryCollectionEndpoint,
    MemoryProfileEndpoint,
    RecordingNavigator,
)

EMAIL = "ada@example.com"
PASSWORD = "correct horse"
NOW = 1_700_000_000.0


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(NOW)


@pytest.fixture
def ticks() -> ManualClock:
    """Monotonic clock used for auth event debouncing."""
    return ManualClock(100.0)


@pytest.fixture
def config() -> Config:
    return Config().with_write_policy(IMMEDIATE).with_sign_out_timeout(seconds=0.05)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def auth(clock: ManualClock) -> MemoryAuthEndpoint:
    endpoint = MemoryAuthEndpoint(clock)
    endpoint.add_user(EMAIL, PASSWORD, first_name="Ada", last_name="Lovelace")
    return endpoint


@pytest.fixture
def profiles() -> MemoryProfileEndpoint:
    return MemoryProfileEndpoint()


@pytest.fixture
def cart_api() -> MemoryCollectionEndpoint:
    return MemoryCollectionEndpoint()


@pytest.fixture
def wishlist_api() -> MemoryCollectionEndpoint:
    return MemoryCollectionEndpoint()


@pytest.fixture
def payments() -> MemoryCheckoutEndpoint:
    return MemoryCheckoutEndpoint()


@pytest.fixture
def navigator() -> RecordingNavigator:
    return RecordingNavigator()


@pytest.fixture
async def sessions(
    auth: MemoryAuthEndpoint,
    profiles: MemoryProfileEndpoint,
    store: MemoryStore,
    config: Config,
    clock: ManualClock,
    ticks: ManualClock,
) -> AsyncIterator[SessionManager]:
    manager = SessionManager(auth, profiles, store, config, clock, ticks)
    yield manager
    manager.close()


@pytest.fixture
def new_shop(
    store: MemoryStore,
    auth: MemoryAuthEndpoint,
    profiles: MemoryProfileEndpoint,
    cart_api: MemoryCollectionEndpoint,
    wishlist_api: MemoryCollectionEndpoint,
    payments: MemoryCheckoutEndpoint,
    navigator: RecordingNavigator,
    config: Config,
    clock: ManualClock,
    ticks: ManualClock,
):
    """Factory for storefronts sharing one store, i.e. one browser across reloads."""
    created: list[Storefront] = []

    def factory() -> Storefront:
        shop = Storefront(
            store=store,
            auth=auth,
            profiles=profiles,
            cart_endpoint=cart_api,
            wishlist_endpoint=wishlist_api,
            checkout_endpoint=payments,
            navigator=navigator,
            config=config,
            clock=clock,
            monotonic=ticks,
        )
        created.append(shop)
        return shop

    yield factory
    for shop in created:
        shop.cart.close()
        shop.wishlist.close()
        shop.sessions.close()


@pytest.fixture
async def shop(new_shop) -> Storefront:
    front = new_shop()
    await front.start()
    return front
