"""
SQLAlchemy integration — durable LocalStore on an async engine.

Upserts are dialect-specific. SQLite is the default; other dialects
pass their own statement factory:

    store = await SQLAlchemyStore.create(pg_url, to_upsert=postgresql_upsert)

Usage:
    store = await SQLAlchemyStore.create("sqlite+aiosqlite:///storefront.db")
    try:
        app = Storefront(store=store, ...)
        ...
    finally:
        await store.dispose()
"""

from __future__ import annotations

import fnmatch
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy import String, DateTime, Text, select, delete
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from kungfu import Result, Ok, Error

from cartsync.store._types import StoreError


# ═══════════════════════════════════════════════════════════════════════════════
# Table
# ═══════════════════════════════════════════════════════════════════════════════


class Base(DeclarativeBase):
    pass


class LocalEntry(Base):
    """One persisted key. Values are opaque serialized strings."""

    __tablename__ = "local_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


# ═══════════════════════════════════════════════════════════════════════════════
# Upsert statements
# ═══════════════════════════════════════════════════════════════════════════════


type Upsert = Callable[[str, str, datetime], Any]


def sqlite_upsert(key: str, value: str, now: datetime) -> Any:
    return (
        sqlite_insert(LocalEntry)
        .values(key=key, value=value, updated_at=now)
        .on_conflict_do_update(
            index_elements=["key"],
            set_={"value": value, "updated_at": now},
        )
    )


def postgresql_upsert(key: str, value: str, now: datetime) -> Any:
    return (
        postgresql_insert(LocalEntry)
        .values(key=key, value=value, updated_at=now)
        .on_conflict_do_update(
            index_elements=["key"],
            set_={"value": value, "updated_at": now},
        )
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Store
# ═══════════════════════════════════════════════════════════════════════════════


class SQLAlchemyStore:
    """
    Local store backed by a SQL table.

    Note: Writes are upserts (INSERT ... ON CONFLICT DO UPDATE),
    so a key always has exactly one row.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
        to_upsert: Upsert = sqlite_upsert,
    ) -> None:
        """
        Args:
            session_factory: SQLAlchemy async session factory
            engine: Engine released by dispose(), when the store owns it
            to_upsert: Factory (key, value, now) → INSERT ... ON CONFLICT stmt
        """
        self._session_factory = session_factory
        self._engine = engine
        self._to_upsert = to_upsert

    @classmethod
    async def create(
        cls,
        url: str = "sqlite+aiosqlite:///:memory:",
        to_upsert: Upsert = sqlite_upsert,
    ) -> SQLAlchemyStore:
        """Create engine + schema and return a ready store."""
        engine = create_async_engine(url, echo=False)

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        return cls(async_sessionmaker(engine, expire_on_commit=False), engine, to_upsert)

    @property
    def name(self) -> str:
        return "sqlalchemy"

    async def get(self, key: str) -> Result[str | None, StoreError]:
        try:
            async with self._session_factory() as session:
                row = (
                    await session.execute(
                        select(LocalEntry.value).where(LocalEntry.key == key)
                    )
                ).scalar_one_or_none()
                return Ok(row)

        except Exception as e:
            return Error(StoreError(f"Failed to get {key}: {e}", e))

    async def set(self, key: str, value: str) -> Result[None, StoreError]:
        try:
            async with self._session_factory() as session:
                await session.execute(self._to_upsert(key, value, datetime.now()))
                await session.commit()
                return Ok(None)

        except Exception as e:
            return Error(StoreError(f"Failed to set {key}: {e}", e))

    async def delete(self, key: str) -> Result[bool, StoreError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(LocalEntry, key)
                if row is None:
                    return Ok(False)

                await session.delete(row)
                await session.commit()
                return Ok(True)

        except Exception as e:
            return Error(StoreError(f"Failed to delete {key}: {e}", e))

    async def delete_pattern(self, pattern: str) -> Result[int, StoreError]:
        try:
            async with self._session_factory() as session:
                keys = (await session.execute(select(LocalEntry.key))).scalars().all()
                matched = [k for k in keys if fnmatch.fnmatchcase(k, pattern)]
                if matched:
                    await session.execute(
                        delete(LocalEntry).where(LocalEntry.key.in_(matched))
                    )
                    await session.commit()
                return Ok(len(matched))

        except Exception as e:
            return Error(StoreError(f"Failed to delete {pattern}: {e}", e))

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()


__all__ = (
    "Base",
    "LocalEntry",
    "SQLAlchemyStore",
    "Upsert",
    "sqlite_upsert",
    "postgresql_upsert",
)
