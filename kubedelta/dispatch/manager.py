"""Event dispatcher for kubedelta.

EventHandler    -- ABC every handler implements.
EventDispatcher -- Delivers classified events to the handlers registered for
                   their kind. Per-kind order is preserved; kinds are
                   independent. A failing handler never blocks the others or
                   the watch loop.

Two delivery modes:

* ``sync``  -- handlers are awaited in the producer's task. Fully ordered;
  slow handlers throttle ingestion.
* ``queue`` -- each kind has a bounded queue drained by its own task.
  Overflow policy: the OLDEST queued event is dropped and a warning logged.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable

import structlog

from kubedelta.errors import HandlerError
from kubedelta.models.config import DispatchMode
from kubedelta.models.events import ChangeEvent
from kubedelta.models.resources import ResourceKind
from kubedelta.observability.metrics import (
    dispatch_queue_dropped_total,
    events_dispatched_total,
    handler_errors_total,
)

_log = structlog.get_logger(component="dispatch.manager")

ErrorSink = Callable[[HandlerError], None]


class EventHandler(ABC):
    """Abstract base class for event handlers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier used in logs and metrics."""

    @abstractmethod
    async def handle(self, event: ChangeEvent) -> None:
        """Process one event. Exceptions are caught by the dispatcher."""


def log_handler_error(error: HandlerError) -> None:
    """Default error sink: structured log line plus a counter."""
    handler_errors_total.labels(kind=error.event.kind.value, handler=error.handler).inc()
    _log.error(
        "handler_failed",
        handler=error.handler,
        kind=error.event.kind.value,
        verb=error.event.verb.value,
        resource=str(error.event.identity),
        error=str(error.cause),
        error_type=type(error.cause).__name__,
    )


class _KindQueue:
    """Bounded FIFO with drop-oldest overflow."""

    def __init__(self, kind: ResourceKind, maxsize: int) -> None:
        self.kind = kind
        self._items: deque[ChangeEvent] = deque()
        self._maxsize = maxsize
        self._ready = asyncio.Event()
        self._closed = False

    def put(self, event: ChangeEvent) -> None:
        if len(self._items) >= self._maxsize:
            dropped = self._items.popleft()
            dispatch_queue_dropped_total.labels(kind=self.kind.value).inc()
            _log.warning(
                "dispatch_queue_overflow",
                kind=self.kind.value,
                maxsize=self._maxsize,
                dropped_verb=dropped.verb.value,
                dropped_resource=str(dropped.identity),
                dropped_revision=dropped.revision,
            )
        self._items.append(event)
        self._ready.set()

    async def get(self) -> ChangeEvent | None:
        """Next event, or None once the queue is closed."""
        while not self._items:
            if self._closed:
                return None
            self._ready.clear()
            await self._ready.wait()
        if self._closed:
            return None
        return self._items.popleft()

    def close(self) -> int:
        """Close the queue and discard the backlog. Returns the discarded count."""
        discarded = len(self._items)
        self._items.clear()
        self._closed = True
        self._ready.set()
        return discarded

    def __len__(self) -> int:
        return len(self._items)


class EventDispatcher:
    """Fans classified events out to per-kind handlers."""

    def __init__(
        self,
        mode: DispatchMode = DispatchMode.SYNC,
        queue_size: int = 1000,
        error_sink: ErrorSink | None = None,
    ) -> None:
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        self._mode = mode
        self._queue_size = queue_size
        self._error_sink = error_sink or log_handler_error
        self._handlers: dict[ResourceKind, list[EventHandler]] = {}
        self._queues: dict[ResourceKind, _KindQueue] = {}
        self._workers: dict[ResourceKind, asyncio.Task[None]] = {}
        self._stopping = False

    @property
    def mode(self) -> DispatchMode:
        return self._mode

    def register(self, kind: ResourceKind, handler: EventHandler) -> None:
        self._handlers.setdefault(kind, []).append(handler)
        _log.debug("handler_registered", kind=kind.value, handler=handler.name)

    def unregister(self, kind: ResourceKind, handler: EventHandler) -> None:
        handlers = self._handlers.get(kind, [])
        if handler in handlers:
            handlers.remove(handler)

    def handlers(self, kind: ResourceKind) -> list[EventHandler]:
        return list(self._handlers.get(kind, []))

    def backlog(self, kind: ResourceKind) -> int:
        queue = self._queues.get(kind)
        return len(queue) if queue is not None else 0

    async def start(self) -> None:
        """Start one dispatch task per registered kind (queue mode only)."""
        self._stopping = False
        if self._mode == DispatchMode.QUEUE:
            for kind in self._handlers:
                self._queue_for(kind)
        _log.info("dispatcher_started", mode=self._mode.value, queue_size=self._queue_size)

    async def dispatch(self, event: ChangeEvent) -> None:
        """Hand *event* to every handler registered for its kind."""
        if self._stopping:
            _log.debug("dispatch_after_stop_ignored", kind=event.kind.value, resource=str(event.identity))
            return
        events_dispatched_total.labels(kind=event.kind.value, verb=event.verb.value).inc()
        if self._mode == DispatchMode.SYNC:
            await self._deliver(event)
        else:
            self._queue_for(event.kind).put(event)

    async def stop(self) -> None:
        """Stop delivery. In-flight handler calls finish; backlogs are dropped."""
        self._stopping = True
        for kind, queue in self._queues.items():
            discarded = queue.close()
            if discarded:
                _log.warning("dispatch_backlog_discarded", kind=kind.value, events=discarded)
        if self._workers:
            await asyncio.gather(*self._workers.values(), return_exceptions=True)
        self._workers.clear()
        self._queues.clear()
        _log.info("dispatcher_stopped")

    def _queue_for(self, kind: ResourceKind) -> _KindQueue:
        queue = self._queues.get(kind)
        if queue is None:
            queue = _KindQueue(kind, self._queue_size)
            self._queues[kind] = queue
            self._workers[kind] = asyncio.create_task(self._drain(queue), name=f"dispatch-{kind.value.lower()}")
        return queue

    async def _drain(self, queue: _KindQueue) -> None:
        while True:
            event = await queue.get()
            if event is None:
                return
            await self._deliver(event)

    async def _deliver(self, event: ChangeEvent) -> None:
        for handler in self.handlers(event.kind):
            try:
                await handler.handle(event)
            except Exception as exc:  # noqa: BLE001
                self._error_sink(HandlerError(handler.name, event, exc))
