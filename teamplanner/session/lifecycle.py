"""
Session lifecycle: the process's current identity as an explicit object.

States:

    UNINITIALIZED --start()--> LOADING --first provider event--> AUTHENTICATED
                                                             \-> UNAUTHENTICATED

After the first event the session moves between AUTHENTICATED and
UNAUTHENTICATED on every provider event. An identity without a tenant is
still AUTHENTICATED (check `identity.is_scoped`). A raw identity whose claims
cannot be resolved counts as UNAUTHENTICATED.

Ordering: provider events are handled in delivery order. Each event (and
each `force_claims_refresh()`) takes a new generation number; a resolution
that finishes after a newer one has started is discarded, so the newest
event always wins even when resolutions complete out of order.

login/register/logout only delegate to the provider. The provider's own
state-change event drives the next transition.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable, Optional

from teamplanner.common.logging import log_event
from teamplanner.tenancy.claims import resolve_identity
from teamplanner.tenancy.context import Identity

from .provider import IdentityProvider, RawIdentity

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


SessionListener = Callable[["SessionLifecycle"], None]
Resolver = Callable[..., Awaitable[Optional[Identity]]]


class SessionLifecycle:
    def __init__(self, provider: IdentityProvider, *, resolver: Resolver = resolve_identity) -> None:
        self._provider = provider
        self._resolver = resolver
        self._state = SessionState.UNINITIALIZED
        self._identity: Optional[Identity] = None
        self._last_error: Optional[str] = None
        self._generation = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._ready: Optional[asyncio.Event] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._pending: set[asyncio.Task] = set()
        self._listeners: list[SessionListener] = []
        self._torn_down = False

    # -- read side -----------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def loading(self) -> bool:
        return self._state in (SessionState.UNINITIALIZED, SessionState.LOADING)

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def clear_error(self) -> None:
        self._last_error = None

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        """Called after every applied transition. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    async def wait_ready(self, timeout: Optional[float] = None) -> SessionState:
        """Wait until the first provider event has been applied."""
        if self._ready is None:
            raise RuntimeError("SessionLifecycle.start() has not been called")
        if timeout is None:
            await self._ready.wait()
        else:
            await asyncio.wait_for(self._ready.wait(), timeout=timeout)
        return self._state

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        if self._torn_down:
            raise RuntimeError("SessionLifecycle was torn down")
        if self._state is not SessionState.UNINITIALIZED:
            return
        self._loop = asyncio.get_running_loop()
        self._ready = asyncio.Event()
        self._set_state(SessionState.LOADING)
        self._unsubscribe = self._provider.subscribe(self._on_provider_event)

    async def teardown(self) -> None:
        """Release the provider subscription. No listener runs after this returns."""
        if self._torn_down:
            return
        self._torn_down = True
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._pending.clear()
        self._listeners.clear()
        self._identity = None
        self._state = SessionState.UNINITIALIZED
        log_event(logger, "session.torn_down", severity="DEBUG")

    async def __aenter__(self) -> "SessionLifecycle":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.teardown()

    # -- provider events -----------------------------------------------------

    def _on_provider_event(self, raw: Optional[RawIdentity]) -> None:
        # May run on any thread; hop onto the session's loop in delivery order.
        loop = self._loop
        if self._torn_down or loop is None:
            return
        try:
            loop.call_soon_threadsafe(self._handle_event, raw)
        except RuntimeError:
            return

    def _handle_event(self, raw: Optional[RawIdentity]) -> None:
        if self._torn_down:
            return
        self._generation += 1
        generation = self._generation
        if raw is None:
            self._apply(generation, None)
            return
        assert self._loop is not None
        task = self._loop.create_task(self._resolve_and_apply(generation, raw, force_refresh=False))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _resolve(self, raw: RawIdentity, *, force_refresh: bool) -> Optional[Identity]:
        async def _fetch() -> Any:
            return await self._provider.fetch_token_claims(force_refresh=force_refresh)

        return await self._resolver(
            _fetch,
            subject_id=raw.subject_id,
            email=raw.email,
            display_name=raw.display_name,
        )

    async def _resolve_and_apply(self, generation: int, raw: RawIdentity, *, force_refresh: bool) -> bool:
        identity = await self._resolve(raw, force_refresh=force_refresh)
        return self._apply(generation, identity)

    def _apply(self, generation: int, identity: Optional[Identity]) -> bool:
        if self._torn_down:
            return False
        if generation != self._generation:
            log_event(
                logger,
                "session.stale_resolution_discarded",
                severity="DEBUG",
                generation=generation,
                current_generation=self._generation,
            )
            return False
        self._identity = identity
        self._set_state(SessionState.AUTHENTICATED if identity is not None else SessionState.UNAUTHENTICATED)
        if self._ready is not None:
            self._ready.set()
        self._notify()
        return True

    def _set_state(self, state: SessionState) -> None:
        prev, self._state = self._state, state
        ident = self._identity
        log_event(
            logger,
            "session.transition",
            severity="INFO",
            from_state=prev.value,
            to_state=state.value,
            subject_id=ident.subject_id if ident else None,
            tenant_id=ident.tenant_id if ident else None,
        )

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                log_event(
                    logger,
                    "session.listener_error",
                    severity="ERROR",
                    error=f"{type(e).__name__}: {e}",
                )

    # -- operations ----------------------------------------------------------

    async def force_claims_refresh(self) -> Optional[Identity]:
        """
        Re-resolve claims from a freshly fetched token, without waiting for a
        provider event. Call after claims were assigned out-of-band.
        """
        if self._loop is None or self._torn_down:
            raise RuntimeError("SessionLifecycle is not running")
        self._generation += 1
        generation = self._generation
        raw = self._provider.current_identity
        if raw is None:
            self._apply(generation, None)
            return None
        await self._resolve_and_apply(generation, raw, force_refresh=True)
        return self._identity

    async def _delegate(self, operation: str, call: Callable[[], Awaitable[Any]]) -> Any:
        self._last_error = None
        try:
            return await call()
        except Exception as e:
            self._last_error = str(e) or f"Failed to {operation}"
            log_event(
                logger,
                "session.provider_error",
                severity="WARNING",
                operation=operation,
                code=getattr(e, "code", None),
                error=f"{type(e).__name__}: {e}",
            )
            raise

    async def login(self, email: str, password: str) -> RawIdentity:
        return await self._delegate("login", lambda: self._provider.sign_in(email, password))

    async def register(self, email: str, password: str, display_name: str) -> RawIdentity:
        return await self._delegate("register", lambda: self._provider.sign_up(email, password, display_name))

    async def logout(self) -> None:
        await self._delegate("logout", self._provider.sign_out)
