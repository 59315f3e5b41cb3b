"""
In-memory collaborators for tests and local development.

    from cartsync import testing as T

    clock = T.ManualClock(1_000.0)
    auth = T.MemoryAuthEndpoint(clock)
    auth.add_user("ada@example.com", "secret")

    auth.fail_next(ConnectionError("offline"))   # next call raises
"""

from __future__ import annotations

import asyncio
import copy
import itertools
from typing import Any

from cartsync._types import UserId
from cartsync.checkout import CheckoutLine, CheckoutSession
from cartsync.session import AuthApiError, DuplicateRow, Grant, User


class ManualClock:
    """Wall clock that only moves when told to."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class _Faults:
    """
    Queue of exceptions raised by the next calls, plus per-method holds.

        gate = api.hold("upsert")   # upsert() calls now block
        ...
        gate.set()                  # release every blocked call
    """

    def __init__(self) -> None:
        self._faults: list[Exception] = []
        self._holds: dict[str, asyncio.Event] = {}
        self.calls: list[str] = []

    def fail_next(self, exc: Exception, times: int = 1) -> None:
        self._faults.extend([exc] * times)

    def hold(self, method: str) -> asyncio.Event:
        gate = asyncio.Event()
        self._holds[method] = gate
        return gate

    async def _enter(self, method: str) -> None:
        self.calls.append(method)
        gate = self._holds.get(method)
        if gate is not None:
            await gate.wait()
        if self._faults:
            raise self._faults.pop(0)

    def called(self, method: str) -> int:
        return self.calls.count(method)


# ═══════════════════════════════════════════════════════════════════════════════
# Auth
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryAuthEndpoint(_Faults):
    """
    Password auth with rotating refresh tokens.

    Every issued refresh token is single-use; refresh and set_session
    both consume it and issue a new grant.
    """

    def __init__(self, clock: ManualClock | None = None, ttl: float = 3600.0) -> None:
        super().__init__()
        self.clock = clock or ManualClock()
        self.ttl = ttl
        self.sign_out_delay = 0.0
        self._accounts: dict[str, tuple[str, User]] = {}
        self._refresh: dict[str, UserId] = {}
        self._live: Grant | None = None
        self._ids = itertools.count(1)

    def add_user(self, email: str, password: str, **metadata: Any) -> User:
        user = User(id=f"user-{next(self._ids)}", email=email, metadata=dict(metadata))
        self._accounts[email] = (password, user)
        return user

    def issue(self, user: User, ttl: float | None = None) -> Grant:
        n = next(self._ids)
        grant = Grant(
            user=user,
            access_token=f"access-{n}",
            refresh_token=f"refresh-{n}",
            expires_at=self.clock() + (self.ttl if ttl is None else ttl),
        )
        self._refresh[grant.refresh_token] = user.id
        self._live = grant
        return grant

    def revoke(self, refresh_token: str) -> None:
        self._refresh.pop(refresh_token, None)

    def drop_live_session(self) -> None:
        """Forget the in-process session, as a fresh process start would."""
        self._live = None

    def _user(self, user_id: UserId) -> User:
        for _, user in self._accounts.values():
            if user.id == user_id:
                return user
        raise AuthApiError("User not found", status=404, code="user_not_found")

    async def sign_up(self, email: str, password: str) -> Grant:
        await self._enter("sign_up")
        if email in self._accounts:
            raise AuthApiError("User already registered", status=422, code="user_already_exists")
        return self.issue(self.add_user(email, password))

    async def sign_in_with_password(self, email: str, password: str) -> Grant:
        await self._enter("sign_in_with_password")
        account = self._accounts.get(email)
        if account is None or account[0] != password:
            raise AuthApiError("Invalid login credentials", code="invalid_credentials")
        return self.issue(account[1])

    async def refresh_session(self, refresh_token: str) -> Grant:
        await self._enter("refresh_session")
        return self._exchange(refresh_token)

    async def set_session(self, access_token: str, refresh_token: str) -> Grant:
        await self._enter("set_session")
        return self._exchange(refresh_token)

    def _exchange(self, refresh_token: str) -> Grant:
        user_id = self._refresh.pop(refresh_token, None)
        if user_id is None:
            raise AuthApiError("Invalid Refresh Token", code="refresh_token_not_found")
        return self.issue(self._user(user_id))

    async def sign_out(self, scope: str = "local") -> None:
        await self._enter("sign_out")
        if self.sign_out_delay:
            await asyncio.sleep(self.sign_out_delay)
        if self._live is not None:
            self._refresh.pop(self._live.refresh_token, None)
        self._live = None

    async def get_session(self) -> Grant | None:
        await self._enter("get_session")
        return self._live


# ═══════════════════════════════════════════════════════════════════════════════
# Profiles
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryProfileEndpoint(_Faults):
    def __init__(self) -> None:
        super().__init__()
        self.rows: dict[UserId, dict[str, Any]] = {}

    async def fetch(self, user_id: UserId) -> dict[str, Any] | None:
        await self._enter("fetch")
        row = self.rows.get(user_id)
        return dict(row) if row is not None else None

    async def insert(self, row: dict[str, Any]) -> dict[str, Any]:
        await self._enter("insert")
        if row["id"] in self.rows:
            raise DuplicateRow()
        self.rows[row["id"]] = dict(row)
        return dict(row)

    async def update(self, user_id: UserId, updates: dict[str, Any]) -> dict[str, Any]:
        await self._enter("update")
        if user_id not in self.rows:
            raise AuthApiError("Profile not found", status=404)
        self.rows[user_id].update(updates)
        return dict(self.rows[user_id])


# ═══════════════════════════════════════════════════════════════════════════════
# Collections
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryCollectionEndpoint(_Faults):
    """
    Rows per user, unique by (product_id, variant_id).

    upsert() is implemented natively: accumulate adds quantities,
    otherwise the existing row is returned untouched.
    """

    def __init__(self) -> None:
        super().__init__()
        self.rows: dict[UserId, list[dict[str, Any]]] = {}
        self._ids = itertools.count(1)

    def seed(self, user_id: UserId, *rows: dict[str, Any]) -> None:
        self.rows.setdefault(user_id, []).extend(copy.deepcopy(list(rows)))

    def quantities(self, user_id: UserId) -> dict[tuple[str, str | None], int]:
        return {
            (r["product_id"], r.get("variant_id")): r["quantity"]
            for r in self.rows.get(user_id, [])
        }

    def _find(self, user_id: UserId, item_id: str) -> dict[str, Any]:
        for row in self.rows.get(user_id, []):
            if row["id"] == item_id:
                return row
        raise LookupError(f"No row {item_id}")

    async def fetch_all(self, user_id: UserId) -> list[dict[str, Any]]:
        await self._enter("fetch_all")
        return copy.deepcopy(self.rows.get(user_id, []))

    async def upsert(
        self,
        user_id: UserId,
        row: dict[str, Any],
        *,
        accumulate: bool,
    ) -> dict[str, Any]:
        await self._enter("upsert")
        rows = self.rows.setdefault(user_id, [])
        key = (row["product_id"], row.get("variant_id"))
        for existing in rows:
            if (existing["product_id"], existing.get("variant_id")) == key:
                if accumulate:
                    existing["quantity"] += row["quantity"]
                return copy.deepcopy(existing)

        stored = copy.deepcopy(row)
        stored["id"] = f"row-{next(self._ids)}"
        stored["owner_id"] = user_id
        rows.append(stored)
        return copy.deepcopy(stored)

    async def update_quantity(
        self,
        user_id: UserId,
        item_id: str,
        quantity: int,
    ) -> dict[str, Any]:
        await self._enter("update_quantity")
        row = self._find(user_id, item_id)
        row["quantity"] = quantity
        return copy.deepcopy(row)

    async def delete(self, user_id: UserId, item_id: str) -> None:
        await self._enter("delete")
        row = self._find(user_id, item_id)
        self.rows[user_id].remove(row)

    async def delete_all(self, user_id: UserId) -> None:
        await self._enter("delete_all")
        self.rows[user_id] = []


# ═══════════════════════════════════════════════════════════════════════════════
# Checkout
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryCheckoutEndpoint(_Faults):
    def __init__(self) -> None:
        super().__init__()
        self.requests: list[tuple[list[CheckoutLine], str | None]] = []
        self._ids = itertools.count(1)

    async def create_checkout_session(
        self,
        lines: list[CheckoutLine],
        discount_code: str | None,
    ) -> CheckoutSession:
        await self._enter("create_checkout_session")
        self.requests.append((list(lines), discount_code))
        session_id = f"cs_test_{next(self._ids)}"
        return CheckoutSession(url=f"https://pay.example/{session_id}", session_id=session_id)


class RecordingNavigator:
    def __init__(self) -> None:
        self.urls: list[str] = []

    async def redirect(self, url: str) -> None:
        self.urls.append(url)


__all__ = (
    "ManualClock",
    "MemoryAuthEndpoint",
    "MemoryProfileEndpoint",
    "MemoryCollectionEndpoint",
    "MemoryCheckoutEndpoint",
    "RecordingNavigator",
)
