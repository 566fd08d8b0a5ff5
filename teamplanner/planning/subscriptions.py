"""
Realtime collection subscriptions.

Firestore delivers watch snapshots on a background thread. A
CollectionSubscription bridges them onto the subscriber's event loop as an
async iterator of full-collection snapshots:

    async with repos.employees.subscribe(tenant_id) as sub:
        async for snap in sub:
            render(snap.items)

Snapshots are not diffs: the same id routinely appears in consecutive
snapshots with different field values. The watch starts on first iteration
(or on `async with`) and is released by `close()`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Generic, Optional, TypeVar

from teamplanner.common.logging import log_event

logger = logging.getLogger(__name__)

E = TypeVar("E")

_CLOSED = object()


@dataclass(frozen=True, slots=True)
class CollectionSnapshot(Generic[E]):
    items: tuple[E, ...]
    read_time: Optional[datetime] = None

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(str(getattr(i, "id", "")) for i in self.items)


class CollectionSubscription(Generic[E]):
    def __init__(
        self,
        *,
        query: Any,
        to_entity: Callable[[Any], E],
        entity_kind: str,
        tenant_id: str,
        on_error: Callable[[BaseException], BaseException],
    ) -> None:
        self._query = query
        self._to_entity = to_entity
        self._entity_kind = entity_kind
        self._tenant_id = tenant_id
        self._on_error = on_error
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._watch: Any = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _start(self) -> None:
        if self._watch is not None or self._closed:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        try:
            self._watch = self._query.on_snapshot(self._on_snapshot)
        except Exception as e:
            self._closed = True
            raise self._on_error(e) from e
        log_event(
            logger,
            "subscription.started",
            severity="DEBUG",
            entity_kind=self._entity_kind,
            tenant_id=self._tenant_id,
        )

    def _on_snapshot(self, docs: Any, changes: Any, read_time: Any) -> None:  # noqa: ARG002
        # Runs on the store's watch thread.
        if self._closed or self._loop is None or self._queue is None:
            return
        try:
            item: Any = CollectionSnapshot(items=tuple(self._to_entity(d) for d in docs), read_time=read_time)
        except Exception as e:
            item = self._on_error(e)
            item.__cause__ = e
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError:
            # Subscriber's loop already closed; nothing left to deliver to.
            self._closed = True

    def __aiter__(self) -> "CollectionSubscription[E]":
        return self

    async def __anext__(self) -> CollectionSnapshot[E]:
        if self._closed and (self._queue is None or self._queue.empty()):
            raise StopAsyncIteration
        self._start()
        assert self._queue is not None
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    def close(self) -> None:
        """Release the watch and end iteration. Idempotent."""
        if self._closed and self._watch is None:
            return
        self._closed = True
        watch, self._watch = self._watch, None
        if watch is not None:
            watch.unsubscribe()
            log_event(
                logger,
                "subscription.closed",
                severity="DEBUG",
                entity_kind=self._entity_kind,
                tenant_id=self._tenant_id,
            )
        if self._queue is not None:
            self._queue.put_nowait(_CLOSED)

    async def __aenter__(self) -> "CollectionSubscription[E]":
        self._start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()
