"""
Storefront Example — guest cart survives sign-in, sign-out wipes it.

Run: uv run python examples/storefront_example.py
"""

from kungfu import Ok, Error

from cartsync import Config, Storefront
from cartsync.collection import ItemInput, ProductSnapshot
from cartsync.store import SQLAlchemyStore
from cartsync.testing import (
    MemoryAuthEndpoint,
    MemoryCheckoutEndpoint,
    MemoryCollectionEndpoint,
    MemoryProfileEndpoint,
    RecordingNavigator,
)
from examples._infra import banner, run, show


# ═══════════════════════════════════════════════════════════════════════════════
# Backend
# ═══════════════════════════════════════════════════════════════════════════════

auth = MemoryAuthEndpoint()
auth.add_user("ada@example.com", "secret", first_name="Ada", last_name="Lovelace")

HOODIE = ItemInput("hoodie", price=59.0, product=ProductSnapshot("hoodie", "Oversized Hoodie", 65.0))
TEE = ItemInput("tee", price=25.0, product=ProductSnapshot("tee", "Logo Tee", 25.0))


# ═══════════════════════════════════════════════════════════════════════════════
# Demo
# ═══════════════════════════════════════════════════════════════════════════════


async def main() -> None:
    store = await SQLAlchemyStore.create()
    navigator = RecordingNavigator()
    shop = Storefront(
        store=store,
        auth=auth,
        profiles=MemoryProfileEndpoint(),
        cart_endpoint=MemoryCollectionEndpoint(),
        wishlist_endpoint=MemoryCollectionEndpoint(),
        checkout_endpoint=MemoryCheckoutEndpoint(),
        navigator=navigator,
        config=Config().with_sign_out_timeout(seconds=1),
    )

    async with shop:
        banner("1. Guest browsing")
        await shop.cart.add("hoodie", "hoodie-black-l", 2, details=HOODIE)
        await shop.cart.add("tee", "tee-white-m", 1, details=TEE)
        await shop.wishlist.add("tee")
        show("cart", shop.cart)

        banner("2. Checkout as guest")
        match await shop.checkout.create_checkout():
            case Ok(checkout):
                print(f"   redirected to {checkout.url}")
            case Error(e):
                print(f"   blocked: {e.user_message}")

        banner("3. Sign in: guest cart is merged")
        match await shop.sessions.sign_in("ADA@example.com ", "secret"):
            case Ok(session):
                print(f"   signed in as {session.user.email}")
            case Error(e):
                print(f"   error: {e.kind.name} {e.message}")
        show("cart", shop.cart)
        show("wishlist", shop.wishlist)

        banner("4. Checkout")
        match await shop.checkout.create_checkout(" welcome10 "):
            case Ok(checkout):
                print(f"   session {checkout.session_id}, redirected to {navigator.urls[-1]}")
            case Error(e):
                print(f"   error: {e.user_message}")

        banner("5. Sign out")
        await shop.sessions.sign_out()
        show("cart", shop.cart)
        print(f"   restore after reload: {await shop.on_foreground()}")

    await store.dispose()


if __name__ == "__main__":
    run(main)
