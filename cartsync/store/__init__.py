"""
Store — local persistent key/value storage.

    from cartsync import store as LS

    local = LS.MemoryStore()
    keys = LS.Keys("vlanco")

    await LS.write_json(local, keys.guest("cart"), [], LS.WritePolicy())
    items = await LS.read_json(local, keys.guest("cart"), default=[])
"""

from cartsync.store._types import (
    StoreError,
    LocalStore,
    Keys,
)
from cartsync.store._policy import WritePolicy, IMMEDIATE
from cartsync.store._memory import MemoryStore
from cartsync.store._json import read_json, write_json
from cartsync.store._sqlalchemy import (
    SQLAlchemyStore,
    LocalEntry,
    Upsert,
    sqlite_upsert,
    postgresql_upsert,
)

__all__ = (
    "StoreError",
    "LocalStore",
    "Keys",
    "WritePolicy",
    "IMMEDIATE",
    "MemoryStore",
    "read_json",
    "write_json",
    "SQLAlchemyStore",
    "LocalEntry",
    "Upsert",
    "sqlite_upsert",
    "postgresql_upsert",
)
