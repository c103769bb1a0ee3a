"""Tests for core.dispatcher - fan-out with per-destination isolation"""
import asyncio
from unittest.mock import AsyncMock, Mock, patch

import pytest

from pagecollect.contracts.event import AnalyticsEvent
from pagecollect.core.dispatcher import MAX_LOGGED_ERROR_LEN, Dispatcher
from pagecollect.destinations.base import Destination


class RecordingDestination(Destination):

    def __init__(self, name="recording", error=None, delay=0.0, raise_sync=False):
        self.type = name
        self.error = error
        self.delay = delay
        self.raise_sync = raise_sync
        self.calls = 0
        self.completed = 0

    def describe(self):
        return f"Recording {self.type}"

    def send(self, event, ctx):
        self.calls += 1
        if self.raise_sync:
            raise self.error
        return self._send()

    async def _send(self):
        await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        self.completed += 1


@pytest.fixture
def event():
    return AnalyticsEvent(type="page")


class TestDispatch:

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, event, make_ctx):
        sync_failure = RecordingDestination("sync", error=ValueError("boom"), raise_sync=True)
        async_failure = RecordingDestination("async", error=RuntimeError("rejected"), delay=0.01)
        success = RecordingDestination("ok", delay=0.02)

        dispatcher = Dispatcher([sync_failure, async_failure, success])
        await dispatcher.dispatch(event, make_ctx())

        assert sync_failure.calls == 1
        assert async_failure.calls == 1
        assert success.calls == 1
        assert success.completed == 1

    @pytest.mark.asyncio
    async def test_destinations_run_concurrently(self, event, make_ctx):
        slow = [RecordingDestination(f"d{i}", delay=0.2) for i in range(3)]
        dispatcher = Dispatcher(slow)

        loop = asyncio.get_running_loop()
        started = loop.time()
        await dispatcher.dispatch(event, make_ctx())

        assert loop.time() - started < 0.5
        assert all(d.completed == 1 for d in slow)

    @pytest.mark.asyncio
    async def test_error_handler_receives_type_and_error(self, event, make_ctx):
        error = RuntimeError("rejected")
        handler = Mock()
        dispatcher = Dispatcher([RecordingDestination("segment", error=error)], error_handler=handler)

        await dispatcher.dispatch(event, make_ctx())

        handler.assert_called_once_with("segment", error)

    @pytest.mark.asyncio
    async def test_async_error_handler_awaited(self, event, make_ctx):
        handler = AsyncMock()
        dispatcher = Dispatcher([RecordingDestination(error=RuntimeError("x"))], error_handler=handler)
        await dispatcher.dispatch(event, make_ctx())
        handler.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failing_error_handler_never_propagates(self, event, make_ctx):
        handler = Mock(side_effect=RuntimeError("handler broke"))
        ok = RecordingDestination("ok")
        dispatcher = Dispatcher([RecordingDestination(error=RuntimeError("x")), ok], error_handler=handler)

        await dispatcher.dispatch(event, make_ctx())

        assert ok.completed == 1

    @pytest.mark.asyncio
    async def test_logged_error_truncated(self, event, make_ctx):
        dispatcher = Dispatcher([RecordingDestination("big", error=RuntimeError("e" * 5000))])
        with patch("pagecollect.core.dispatcher.logger") as logger:
            await dispatcher.dispatch(event, make_ctx())

        logger.warning.assert_called_once()
        logged = logger.warning.call_args.kwargs["error"]
        assert logged.startswith("e" * MAX_LOGGED_ERROR_LEN)
        assert logged.endswith("(truncated; len=5000)")

    @pytest.mark.asyncio
    async def test_no_destinations(self, event, make_ctx):
        dispatcher = Dispatcher([])
        await dispatcher.dispatch(event, make_ctx())
        assert dispatcher.schedule(event, make_ctx()) is None


class TestSchedule:

    @pytest.mark.asyncio
    async def test_background_task_retained_until_done(self, event, make_ctx):
        slow = RecordingDestination(delay=0.05)
        dispatcher = Dispatcher([slow])

        task = dispatcher.schedule(event, make_ctx())
        assert dispatcher.pending == 1
        assert slow.completed == 0

        await task
        await asyncio.sleep(0)
        assert slow.completed == 1
        assert dispatcher.pending == 0


class TestClose:

    @pytest.mark.asyncio
    async def test_closes_every_destination(self):
        first, second = RecordingDestination("a"), RecordingDestination("b")
        first.aclose = AsyncMock(side_effect=RuntimeError("close failed"))
        second.aclose = AsyncMock()
        dispatcher = Dispatcher([first, second])

        with patch("pagecollect.core.dispatcher.logger") as logger:
            await dispatcher.aclose()

        first.aclose.assert_awaited_once()
        second.aclose.assert_awaited_once()
        assert logger.warning.call_args.args[0] == "destination_close_failed"
