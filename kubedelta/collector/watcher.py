"""ResourceWatcher: the list/watch/resync loop for one resource kind.

The watcher is the only writer of its ResourceCache. Every delta goes
through ``cache.apply``; every resulting event goes through the classifier
and, if significant, to the dispatcher, in the order it was applied.

Recovery:
    stream ended by the server  -> re-watch from the cache revision
    WatchExpired (410)          -> immediate re-list, then re-watch
    SourceUnavailable           -> exponential back-off, then re-list
    any other error             -> logged as watch_failed, back-off, re-list
    resync interval elapsed     -> re-list, independent of watch health

Cancellation: ``stop()`` sets a single asyncio.Event shared with the loop.
The pending read on the watch stream is cancelled and the stream closed,
which releases the connection; an event already being applied or
dispatched is allowed to finish.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import AsyncIterator, Iterable

import structlog

from kubedelta.cache.resource_cache import ResourceCache
from kubedelta.diff.classifier import ChangeClassifier
from kubedelta.dispatch.manager import EventDispatcher
from kubedelta.errors import MalformedDelta, SourceUnavailable, WatchExpired
from kubedelta.models.events import ChangeEvent, RawDelta
from kubedelta.models.resources import ResourceKind
from kubedelta.observability.metrics import deltas_dropped_total, resyncs_total, watch_failures_total
from kubedelta.source.base import RemoteSource

_log = structlog.get_logger(component="collector.watcher")

_STOP_GRACE_SECONDS = 10.0

# outcomes of waiting on the watch stream
_STOPPED = object()
_RESYNC_DUE = object()
_STREAM_END = object()


async def _pull(stream: AsyncIterator[RawDelta]) -> RawDelta:
    return await anext(stream)


class ResourceWatcher:
    """Keeps one ResourceCache in step with the remote source."""

    def __init__(
        self,
        kind: ResourceKind,
        source: RemoteSource,
        cache: ResourceCache,
        classifier: ChangeClassifier,
        dispatcher: EventDispatcher,
        resync_interval: float = 10.0,
        backoff_initial: float = 1.0,
        backoff_max: float = 30.0,
    ) -> None:
        if cache.kind != kind:
            raise ValueError(f"cache holds {cache.kind}, watcher is for {kind}")
        self._kind = kind
        self._source = source
        self._cache = cache
        self._classifier = classifier
        self._dispatcher = dispatcher
        self._resync_interval = resync_interval
        self._backoff_initial = backoff_initial
        self._backoff_max = backoff_max

        self._stop = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._failures = 0
        self._next_resync = 0.0

    @property
    def kind(self) -> ResourceKind:
        return self._kind

    @property
    def cache(self) -> ResourceCache:
        return self._cache

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Perform the initial list, publish it, then start watching.

        Raises:
            SourceUnavailable: the initial list failed. This is fatal to the
                caller; later failures are retried by the loop.
        """
        self._stop.clear()
        result = await self._source.list(self._kind)
        events = self._cache.replace(result.items, result.revision)
        self._cache.mark_syncing()
        await self._publish(events)
        self._cache.mark_synced()
        self._schedule_resync()
        _log.info("watcher_started", kind=self._kind.value, objects=len(self._cache), revision=result.revision)
        self._task = asyncio.create_task(self._run(), name=f"watch-{self._kind.value.lower()}")

    async def stop(self, timeout: float = _STOP_GRACE_SECONDS) -> None:
        """Signal the loop to stop and wait for it to release the stream."""
        self._stop.set()
        if self._task is None:
            return
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except TimeoutError:
            _log.warning("watcher_stop_timed_out", kind=self._kind.value, timeout=timeout)
        self._task = None
        _log.info("watcher_stopped", kind=self._kind.value)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        resync_trigger: str | None = None
        while not self._stop.is_set():
            try:
                if resync_trigger is not None:
                    await self._resync(resync_trigger)
                    resync_trigger = None
                outcome = await self._watch_once()
                if outcome is _RESYNC_DUE:
                    resync_trigger = "interval"
            except WatchExpired as exc:
                _log.info("watch_expired", kind=self._kind.value, revision=self._cache.revision, reason=str(exc))
                resync_trigger = "expired"
            except SourceUnavailable as exc:
                resync_trigger = "recovery"
                await self._back_off("source_unavailable", exc)
            except Exception as exc:
                # only cancellation ends the loop; anything else is retried through a relist
                resync_trigger = "recovery"
                await self._back_off("watch_failed", exc)

    async def _back_off(self, event: str, exc: Exception) -> None:
        self._failures += 1
        watch_failures_total.labels(kind=self._kind.value).inc()
        delay = self._backoff_delay()
        _log.warning(
            event,
            kind=self._kind.value,
            failures=self._failures,
            retry_in=round(delay, 3),
            error=str(exc),
            error_type=type(exc).__name__,
        )
        await self._sleep(delay)

    async def _watch_once(self) -> object:
        """Consume one watch stream until it ends, stops, or a resync is due."""
        stream = self._source.watch(self._kind, self._cache.revision)
        try:
            while True:
                item = await self._next(stream)
                if item is _STOPPED or item is _RESYNC_DUE or item is _STREAM_END:
                    return item
                self._failures = 0
                await self._process(item)  # type: ignore[arg-type]
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _next(self, stream: AsyncIterator[RawDelta]) -> object:
        """Wait for the next delta, the stop signal, or the resync deadline."""
        if self._stop.is_set():
            return _STOPPED
        remaining = self._next_resync - asyncio.get_running_loop().time()
        if remaining <= 0:
            return _RESYNC_DUE

        pull = asyncio.create_task(_pull(stream))
        stopped = asyncio.create_task(self._stop.wait())
        try:
            done, _ = await asyncio.wait({pull, stopped}, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopped.cancel()

        if pull in done:
            try:
                return pull.result()
            except StopAsyncIteration:
                return _STREAM_END

        pull.cancel()
        await asyncio.gather(pull, return_exceptions=True)
        return _STOPPED if self._stop.is_set() else _RESYNC_DUE

    async def _process(self, delta: RawDelta) -> None:
        try:
            event = self._cache.apply(delta)
        except MalformedDelta as exc:
            deltas_dropped_total.labels(kind=self._kind.value, reason="malformed").inc()
            _log.warning("malformed_delta_dropped", kind=self._kind.value, type=delta.type.value, error=str(exc))
            return
        if event is not None:
            await self._publish([event])

    async def _resync(self, trigger: str) -> None:
        result = await self._source.list(self._kind)
        events = self._cache.replace(result.items, result.revision)
        self._failures = 0
        self._schedule_resync()
        resyncs_total.labels(kind=self._kind.value, trigger=trigger).inc()
        _log.info(
            "resync_completed",
            kind=self._kind.value,
            trigger=trigger,
            revision=result.revision,
            objects=len(self._cache),
            changes=len(events),
        )
        await self._publish(events)

    async def _publish(self, events: Iterable[ChangeEvent]) -> None:
        for event in events:
            if self._classifier.is_significant(event):
                await self._dispatcher.dispatch(event)

    # ------------------------------------------------------------------
    # Timing helpers
    # ------------------------------------------------------------------

    def _schedule_resync(self) -> None:
        self._next_resync = asyncio.get_running_loop().time() + self._resync_interval

    def _backoff_delay(self) -> float:
        exp = self._backoff_initial * (2 ** min(self._failures - 1, 16))
        return min(self._backoff_max, exp) * random.uniform(0.8, 1.0)

    async def _sleep(self, delay: float) -> None:
        """Sleep for *delay* seconds, waking early if stop is requested."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=delay)
        except TimeoutError:
            pass
