"""
Session manager — authentication lifecycle.

Owns the in-memory Session, the explicit sign-out flag, the remember-me
preference and the single refresh timer. Foreground operations return
Results; background operations (restore, refresh, auth events) log and
keep the prior state.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

import structlog
from combinators import lift as L
from kungfu import Result, Ok, Error

from cartsync._config import Config
from cartsync._types import Clock, UserId, UserListener
from cartsync.store import LocalStore, read_json, write_json
from cartsync.session._endpoint import AuthEndpoint, ProfileEndpoint
from cartsync.session._profile import ensure_profile, lookup_profile
from cartsync.session._timer import RefreshTimer, refresh_delay
from cartsync.session._types import (
    AuthState,
    AuthEvent,
    RestoreTrigger,
    User,
    Grant,
    Session,
    AuthError,
    AuthErrorKind,
    classify,
    Profile,
    ProfileDefaults,
    ProfileLookup,
    NotFound,
    LookupFailed,
)

log = structlog.get_logger("cartsync.session")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _token_error(exc: Exception) -> AuthError:
    return classify(exc, default=AuthErrorKind.INVALID_TOKEN)


class SessionManager:
    """
    Explicitly constructed session owner.

    Example:
        sessions = SessionManager(auth, profiles, store, Config())
        await sessions.restore_session()

        match await sessions.sign_in("Ada@Example.com ", "secret", remember_me=False):
            case Ok(session):
                print(session.user_id)
            case Error(e):
                print(e.kind, e.message)

    Note: listeners registered via subscribe() are awaited after every
    user change, so when sign_in() returns the collections have already
    switched to the new user.
    """

    def __init__(
        self,
        auth: AuthEndpoint,
        profiles: ProfileEndpoint,
        store: LocalStore,
        config: Config = Config(),
        clock: Clock = time.time,
        monotonic: Clock = time.monotonic,
    ) -> None:
        self._auth = auth
        self._profiles = profiles
        self._store = store
        self._config = config
        self._keys = config.keys
        self._clock = clock
        self._monotonic = monotonic

        self._state = AuthState.UNAUTHENTICATED
        self._session: Session | None = None
        self._signed_out = False
        self._remember_me = False
        self._flags_loaded = False

        self._timer = RefreshTimer()
        self._listeners: list[UserListener] = []
        self._initial_seen = False
        self._last_event_at: float | None = None
        self._closed = False

    # ═══════════════════════════════════════════════════════════════════════════
    # Read-only view
    # ═══════════════════════════════════════════════════════════════════════════

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def user(self) -> User | None:
        return self._session.user if self._session else None

    @property
    def user_id(self) -> UserId | None:
        return self._session.user_id if self._session else None

    @property
    def remember_me(self) -> bool:
        return self._remember_me

    @property
    def signed_out_explicitly(self) -> bool:
        return self._signed_out

    @property
    def refresh_timer(self) -> RefreshTimer:
        return self._timer

    # ═══════════════════════════════════════════════════════════════════════════
    # Listeners
    # ═══════════════════════════════════════════════════════════════════════════

    def subscribe(self, listener: UserListener) -> Callable[[], None]:
        """Register a user-change listener. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self, user_id: UserId | None, explicit: bool) -> None:
        for listener in list(self._listeners):
            # A later sign-in/out replaced the user while a listener was awaited
            if self.user_id != user_id:
                log.info("user_change_superseded", user_id=user_id, current=self.user_id)
                return
            try:
                await listener(user_id, explicit)
            except Exception as e:
                log.exception("listener_failed", user_id=user_id, error=str(e))

    # ═══════════════════════════════════════════════════════════════════════════
    # Foreground operations
    # ═══════════════════════════════════════════════════════════════════════════

    async def sign_up(
        self,
        email: str,
        password: str,
        defaults: ProfileDefaults = ProfileDefaults(),
    ) -> Result[Session, AuthError]:
        """
        Create an account and sign in.

        Profile creation is best-effort: a failure is logged and retried
        lazily by fetch_profile().
        """
        email = normalize_email(email)
        previous = self._state
        self._state = AuthState.AUTHENTICATING

        result = await L.catching_async(
            lambda: self._auth.sign_up(email, password),
            on_error=classify,
        )
        match result:
            case Error(err):
                self._state = previous if self._session else AuthState.UNAUTHENTICATED
                log.info("sign_up_rejected", kind=err.kind.name)
                return Error(err)
            case Ok(grant):
                session = Session.from_grant(grant, remember_me=True)
                await self._set_remember_me(True)
                await self._set_signed_out(False)
                await ensure_profile(self._profiles, grant.user, defaults)
                await self._establish(session)
                log.info("signed_up", user_id=session.user_id)
                return Ok(session)

    async def sign_in(
        self,
        email: str,
        password: str,
        remember_me: bool = True,
    ) -> Result[Session, AuthError]:
        email = normalize_email(email)
        previous = self._state
        self._state = AuthState.AUTHENTICATING

        result = await L.catching_async(
            lambda: self._auth.sign_in_with_password(email, password),
            on_error=classify,
        )
        match result:
            case Error(err):
                self._state = previous if self._session else AuthState.UNAUTHENTICATED
                log.info("sign_in_rejected", kind=err.kind.name)
                return Error(err)
            case Ok(grant):
                session = Session.from_grant(grant, remember_me)
                await self._set_remember_me(remember_me)
                await self._set_signed_out(False)
                await ensure_profile(self._profiles, grant.user)
                await self._establish(session)
                log.info("signed_in", user_id=session.user_id, remember_me=remember_me)
                return Ok(session)

    async def sign_out(self) -> Result[None, AuthError]:
        """
        Sign out locally, then best-effort remotely.

        Local clearing is authoritative. The remote call is bounded by
        config.sign_out_timeout; its failure is only logged.
        """
        # Flag before clearing: a restore racing this call must see it
        self._signed_out = True
        self._flags_loaded = True
        self._timer.cancel()

        previous = self.user_id
        self._session = None
        self._state = AuthState.UNAUTHENTICATED

        await write_json(self._store, self._keys.signed_out, True, self._config.write_policy)
        for pattern in self._keys.sign_out_patterns():
            match await self._store.delete_pattern(pattern):
                case Error(err):
                    log.warning("sign_out_clear_failed", pattern=pattern, error=err.message)
                case Ok(_):
                    pass

        if previous is not None:
            await self._notify(None, explicit=True)

        remote = await L.catching_async(
            lambda: asyncio.wait_for(
                self._auth.sign_out("local"),
                timeout=self._config.sign_out_timeout,
            ),
            on_error=classify,
        )
        match remote:
            case Error(err):
                log.warning("remote_sign_out_failed", kind=err.kind.name, error=err.message)
            case Ok(_):
                pass

        log.info("signed_out", user_id=previous)
        return Ok(None)

    # ═══════════════════════════════════════════════════════════════════════════
    # Background operations
    # ═══════════════════════════════════════════════════════════════════════════

    async def restore_session(
        self,
        trigger: RestoreTrigger = RestoreTrigger.STARTUP,
    ) -> bool:
        """
        Silently restore a session. Returns True when authenticated afterwards.

        Skipped entirely after an explicit sign-out without remember-me.
        On STARTUP only a remembered session is restored.
        """
        if self._session is not None:
            return True

        await self._load_flags()
        if self._blocked():
            log.info("restore_skipped", reason="signed_out", trigger=trigger.name)
            return False
        if trigger is RestoreTrigger.STARTUP and not self._remember_me:
            log.info("restore_skipped", reason="not_remembered", trigger=trigger.name)
            return False

        live = await L.catching_async(self._auth.get_session, on_error=classify)
        match live:
            case Ok(Grant() as grant):
                return await self._adopt(grant, self._remember_me, trigger)
            case Ok(None):
                pass
            case Error(err):
                log.debug("live_session_unavailable", kind=err.kind.name)

        snapshot = Session.from_dict(await read_json(self._store, self._keys.session, None))
        if snapshot is None:
            return False

        self._state = AuthState.REFRESHING
        exchanged = await L.catching_async(
            lambda: self._auth.set_session(snapshot.access_token, snapshot.refresh_token),
            on_error=_token_error,
        )
        match exchanged:
            case Ok(grant):
                return await self._adopt(grant, snapshot.remember_me, trigger)
            case Error(err):
                if self._session is None:
                    self._state = AuthState.UNAUTHENTICATED
                log.info("restore_failed", kind=err.kind.name, trigger=trigger.name)
                return False

    async def _adopt(self, grant: Grant, remember_me: bool, trigger: RestoreTrigger) -> bool:
        # sign_out() may have run while we were awaiting the endpoint
        if self._blocked() or self._closed:
            if self._session is None:
                self._state = AuthState.UNAUTHENTICATED
            log.info("restore_aborted", trigger=trigger.name)
            return False
        await self._establish(Session.from_grant(grant, remember_me))
        log.info("session_restored", user_id=grant.user.id, trigger=trigger.name)
        return True

    async def refresh(self) -> bool:
        """
        Exchange the refresh token. Returns True if still authenticated.

        Network errors keep the session and retry on the next timer tick;
        a rejected token drops the session.
        """
        session = self._session
        if session is None:
            return False

        self._state = AuthState.REFRESHING
        result = await L.catching_async(
            lambda: self._auth.refresh_session(session.refresh_token),
            on_error=_token_error,
        )
        if self._session is not session or self._closed:
            return self._session is not None

        match result:
            case Ok(grant):
                await self._establish(Session.from_grant(grant, session.remember_me))
                log.debug("token_refreshed", user_id=grant.user.id)
                return True
            case Error(err) if err.kind is AuthErrorKind.NETWORK:
                self._state = AuthState.AUTHENTICATED
                self._timer.schedule(self._config.refresh_floor, self._on_timer)
                log.warning("refresh_deferred", error=err.message)
                return True
            case Error(err):
                log.warning("refresh_rejected", kind=err.kind.name)
                await self._drop_session(explicit=False)
                return False

    async def _on_timer(self) -> None:
        await self.refresh()

    async def handle_auth_event(self, event: AuthEvent, grant: Grant | None) -> bool:
        """
        Sink for the backend's auth state-change stream.

        Events within config.event_debounce of the previous handled event
        are dropped, except the first INITIAL_SESSION.
        Returns whether the event was handled.
        """
        now = self._monotonic()
        if event is AuthEvent.INITIAL_SESSION and not self._initial_seen:
            self._initial_seen = True
        elif (
            self._last_event_at is not None
            and now - self._last_event_at < self._config.event_debounce
        ):
            log.debug("auth_event_debounced", event=event.value)
            return False
        self._last_event_at = now

        await self._load_flags()
        match event, grant:
            case AuthEvent.SIGNED_OUT, _:
                if self._session is not None:
                    await self._drop_session(explicit=True)
            case _, None:
                pass
            case AuthEvent.INITIAL_SESSION, Grant():
                if self._session is None and not self._blocked():
                    await self._establish(Session.from_grant(grant, self._remember_me))
            case _, Grant():
                remember = self._session.remember_me if self._session else self._remember_me
                if self._session is not None or not self._blocked():
                    await self._establish(Session.from_grant(grant, remember))

        log.debug("auth_event_handled", event=event.value, user_id=self.user_id)
        return True

    # ═══════════════════════════════════════════════════════════════════════════
    # Profile
    # ═══════════════════════════════════════════════════════════════════════════

    async def fetch_profile(self) -> ProfileLookup:
        """Look up the current user's profile, creating it lazily if missing."""
        user = self.user
        if user is None:
            return LookupFailed(RuntimeError("No user signed in"))

        lookup = await lookup_profile(self._profiles, user.id)
        if isinstance(lookup, NotFound) and await ensure_profile(self._profiles, user):
            return await lookup_profile(self._profiles, user.id)
        return lookup

    async def update_profile(self, **updates: object) -> Result[Profile, AuthError]:
        user = self.user
        if user is None:
            return Error(AuthError(AuthErrorKind.NO_SESSION, "No user signed in"))

        changes = {k: v for k, v in updates.items() if k not in ("id", "email")}
        result = await L.catching_async(
            lambda: self._profiles.update(user.id, changes),
            on_error=classify,
        )
        match result:
            case Ok(row):
                return Ok(Profile.from_row(row))
            case Error(err):
                log.warning("profile_update_failed", user_id=user.id, kind=err.kind.name)
                return Error(err)

    # ═══════════════════════════════════════════════════════════════════════════
    # Lifecycle
    # ═══════════════════════════════════════════════════════════════════════════

    def close(self) -> None:
        """Cancel the refresh timer and drop listeners. Late results are ignored."""
        self._closed = True
        self._timer.cancel()
        self._listeners.clear()

    # ═══════════════════════════════════════════════════════════════════════════
    # Internals
    # ═══════════════════════════════════════════════════════════════════════════

    def _blocked(self) -> bool:
        """A signed-out user without remember-me must not be re-signed-in."""
        return self._signed_out and not self._remember_me

    async def _establish(self, session: Session) -> None:
        if self._closed:
            return
        previous = self.user_id
        self._session = session
        self._state = AuthState.AUTHENTICATED

        await write_json(
            self._store, self._keys.session, session.to_dict(), self._config.write_policy
        )
        self._timer.schedule(
            refresh_delay(
                session.expires_at,
                self._clock(),
                self._config.refresh_margin,
                self._config.refresh_floor,
            ),
            self._on_timer,
        )
        if previous != session.user_id:
            await self._notify(session.user_id, explicit=False)

    async def _drop_session(self, *, explicit: bool) -> None:
        previous = self.user_id
        self._timer.cancel()
        self._session = None
        self._state = AuthState.UNAUTHENTICATED
        if explicit:
            await self._set_signed_out(True)
        match await self._store.delete(self._keys.session):
            case Error(err):
                log.warning("session_clear_failed", error=err.message)
            case Ok(_):
                pass
        if previous is not None:
            await self._notify(None, explicit=explicit)

    async def _load_flags(self) -> None:
        if self._flags_loaded:
            return
        self._signed_out = bool(await read_json(self._store, self._keys.signed_out, False))
        self._remember_me = bool(await read_json(self._store, self._keys.remember_me, False))
        self._flags_loaded = True

    async def _set_signed_out(self, value: bool) -> None:
        self._signed_out = value
        self._flags_loaded = True
        if value:
            await write_json(self._store, self._keys.signed_out, True, self._config.write_policy)
        else:
            await self._store.delete(self._keys.signed_out)

    async def _set_remember_me(self, value: bool) -> None:
        self._remember_me = value
        if value:
            await write_json(self._store, self._keys.remember_me, True, self._config.write_policy)
        else:
            await self._store.delete(self._keys.remember_me)


__all__ = ("SessionManager", "normalize_email")
