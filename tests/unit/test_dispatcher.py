"""Unit tests for EventDispatcher: ordering, handler isolation and queue overflow."""

from __future__ import annotations

import asyncio

import pytest

from kubedelta.dispatch.manager import EventDispatcher, EventHandler
from kubedelta.errors import HandlerError
from kubedelta.models.config import DispatchMode
from kubedelta.models.events import Added, ChangeEvent, Deleted
from kubedelta.models.resources import ResourceKind, ResourceRecord
from tests.fakes import RecordingHandler, make_deployment, wait_until


def _added(name: str, rv: int = 1) -> Added:
    return Added(ResourceRecord.from_object(ResourceKind.DEPLOYMENT, make_deployment(name=name, rv=rv)))


class _FailingHandler(EventHandler):
    def __init__(self) -> None:
        self.calls = 0

    @property
    def name(self) -> str:
        return "failing"

    async def handle(self, event: ChangeEvent) -> None:
        self.calls += 1
        raise RuntimeError("boom")


class _GatedHandler(RecordingHandler):
    """Blocks inside handle() until the gate opens."""

    def __init__(self) -> None:
        super().__init__("gated")
        self.gate = asyncio.Event()
        self.entered = 0

    async def handle(self, event: ChangeEvent) -> None:
        self.entered += 1
        await self.gate.wait()
        await super().handle(event)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegistration:
    def test_register_and_unregister(self) -> None:
        dispatcher = EventDispatcher()
        handler = RecordingHandler()
        dispatcher.register(ResourceKind.DEPLOYMENT, handler)
        assert dispatcher.handlers(ResourceKind.DEPLOYMENT) == [handler]
        dispatcher.unregister(ResourceKind.DEPLOYMENT, handler)
        assert dispatcher.handlers(ResourceKind.DEPLOYMENT) == []

    def test_unregister_unknown_handler_is_noop(self) -> None:
        dispatcher = EventDispatcher()
        dispatcher.unregister(ResourceKind.POD, RecordingHandler())
        assert dispatcher.handlers(ResourceKind.POD) == []

    def test_queue_size_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            EventDispatcher(queue_size=0)


# ---------------------------------------------------------------------------
# Sync mode
# ---------------------------------------------------------------------------


class TestSyncMode:
    async def test_events_delivered_in_order(self) -> None:
        dispatcher = EventDispatcher(mode=DispatchMode.SYNC)
        recorder = RecordingHandler()
        dispatcher.register(ResourceKind.DEPLOYMENT, recorder)
        await dispatcher.start()

        events = [_added(f"web-{i}") for i in range(5)]
        for event in events:
            await dispatcher.dispatch(event)

        assert recorder.events == events
        await dispatcher.stop()

    async def test_only_handlers_of_the_event_kind_are_called(self) -> None:
        dispatcher = EventDispatcher()
        deployments = RecordingHandler("deployments")
        pods = RecordingHandler("pods")
        dispatcher.register(ResourceKind.DEPLOYMENT, deployments)
        dispatcher.register(ResourceKind.POD, pods)

        await dispatcher.dispatch(_added("web"))

        assert len(deployments.events) == 1
        assert pods.events == []

    async def test_failing_handler_does_not_block_others(self) -> None:
        errors: list[HandlerError] = []
        dispatcher = EventDispatcher(error_sink=errors.append)
        failing = _FailingHandler()
        recorder = RecordingHandler()
        dispatcher.register(ResourceKind.DEPLOYMENT, failing)
        dispatcher.register(ResourceKind.DEPLOYMENT, recorder)

        event = _added("web")
        await dispatcher.dispatch(event)
        await dispatcher.dispatch(Deleted(event.record))

        assert failing.calls == 2
        assert len(recorder.events) == 2
        assert len(errors) == 2
        assert errors[0].handler == "failing"
        assert errors[0].event == event
        assert isinstance(errors[0].cause, RuntimeError)

    async def test_default_error_sink_logs_and_continues(self) -> None:
        dispatcher = EventDispatcher()
        recorder = RecordingHandler()
        dispatcher.register(ResourceKind.DEPLOYMENT, _FailingHandler())
        dispatcher.register(ResourceKind.DEPLOYMENT, recorder)
        await dispatcher.dispatch(_added("web"))
        assert len(recorder.events) == 1

    async def test_dispatch_after_stop_is_ignored(self) -> None:
        dispatcher = EventDispatcher()
        recorder = RecordingHandler()
        dispatcher.register(ResourceKind.DEPLOYMENT, recorder)
        await dispatcher.start()
        await dispatcher.stop()
        await dispatcher.dispatch(_added("web"))
        assert recorder.events == []


# ---------------------------------------------------------------------------
# Queue mode
# ---------------------------------------------------------------------------


class TestQueueMode:
    async def test_events_delivered_in_order(self) -> None:
        dispatcher = EventDispatcher(mode=DispatchMode.QUEUE, queue_size=100)
        recorder = RecordingHandler()
        dispatcher.register(ResourceKind.DEPLOYMENT, recorder)
        await dispatcher.start()

        events = [_added(f"web-{i}") for i in range(10)]
        for event in events:
            await dispatcher.dispatch(event)

        await wait_until(lambda: len(recorder.events) == 10)
        assert recorder.events == events
        await dispatcher.stop()

    async def test_overflow_drops_oldest_queued_event(self) -> None:
        dispatcher = EventDispatcher(mode=DispatchMode.QUEUE, queue_size=2)
        gated = _GatedHandler()
        dispatcher.register(ResourceKind.DEPLOYMENT, gated)
        await dispatcher.start()

        first, second, third, fourth = (_added(f"web-{i}") for i in range(4))
        await dispatcher.dispatch(first)
        await wait_until(lambda: gated.entered == 1)

        await dispatcher.dispatch(second)
        await dispatcher.dispatch(third)
        await dispatcher.dispatch(fourth)
        assert dispatcher.backlog(ResourceKind.DEPLOYMENT) == 2

        gated.gate.set()
        await wait_until(lambda: len(gated.events) == 3)
        assert gated.events == [first, third, fourth]
        await dispatcher.stop()

    async def test_handler_failure_does_not_stop_worker(self) -> None:
        errors: list[HandlerError] = []
        dispatcher = EventDispatcher(mode=DispatchMode.QUEUE, error_sink=errors.append)
        recorder = RecordingHandler()
        dispatcher.register(ResourceKind.DEPLOYMENT, _FailingHandler())
        dispatcher.register(ResourceKind.DEPLOYMENT, recorder)
        await dispatcher.start()

        await dispatcher.dispatch(_added("a"))
        await dispatcher.dispatch(_added("b"))

        await wait_until(lambda: len(recorder.events) == 2)
        assert len(errors) == 2
        await dispatcher.stop()

    async def test_stop_discards_backlog_and_ends_workers(self) -> None:
        dispatcher = EventDispatcher(mode=DispatchMode.QUEUE, queue_size=10)
        gated = _GatedHandler()
        dispatcher.register(ResourceKind.DEPLOYMENT, gated)
        await dispatcher.start()

        await dispatcher.dispatch(_added("a"))
        await wait_until(lambda: gated.entered == 1)
        await dispatcher.dispatch(_added("b"))
        await dispatcher.dispatch(_added("c"))

        gated.gate.set()
        await dispatcher.stop()

        # the in-flight event finishes, the backlog is dropped
        assert [e.identity.name for e in gated.events] == ["a"]
        assert dispatcher.backlog(ResourceKind.DEPLOYMENT) == 0
