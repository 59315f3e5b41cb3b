"""
cartsync — cart, wishlist and session continuity for a storefront client.

    from cartsync import store as LS        # Local persistent store
    from cartsync import session as SM      # Auth lifecycle
    from cartsync import collection as C    # Cart / wishlist reconciliation
    from cartsync import checkout as CO     # Checkout hand-off
"""

from cartsync import store
from cartsync._config import Config
from cartsync import session
from cartsync import collection
from cartsync import checkout
from cartsync._app import Storefront
from cartsync._types import (
    Result,
    Ok,
    Error,
    Lazy,
    UserId,
    Clock,
    UserListener,
)

__version__ = "0.1.0"

__all__ = (
    "store",
    "session",
    "collection",
    "checkout",
    "Config",
    "Storefront",
    "Result",
    "Ok",
    "Error",
    "Lazy",
    "UserId",
    "Clock",
    "UserListener",
)
