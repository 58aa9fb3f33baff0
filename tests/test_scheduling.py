"""Tests for timers, the invalidation debouncer and the fallback poller."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from scheduling.debounce import DEFAULT_DEBOUNCE_SECONDS, Debouncer
from scheduling.poller import DEFAULT_POLL_INTERVAL, FallbackPoller
from scheduling.timers import LoopTimers, ManualTimers


class TestManualTimers:
    """Tests for the virtual clock."""

    def test_fires_in_order(self):
        timers = ManualTimers()
        fired = []
        timers.call_later(2.0, lambda: fired.append("b"))
        timers.call_later(1.0, lambda: fired.append("a"))

        assert timers.advance(1.5) == 1
        assert fired == ["a"]
        assert timers.now() == 1.5

        timers.advance(1.0)
        assert fired == ["a", "b"]

    def test_cancelled_timer_does_not_fire(self):
        timers = ManualTimers()
        callback = MagicMock()
        handle = timers.call_later(1.0, callback)
        handle.cancel()

        assert timers.pending == 0
        assert timers.advance(5.0) == 0
        callback.assert_not_called()

    def test_rescheduled_timers_fire_within_span(self):
        timers = ManualTimers()
        ticks = []

        def tick():
            ticks.append(timers.now())
            if len(ticks) < 3:
                timers.call_later(1.0, tick)

        timers.call_later(1.0, tick)
        timers.advance(10.0)

        assert ticks == [1.0, 2.0, 3.0]


class TestLoopTimers:
    @pytest.mark.asyncio
    async def test_call_later_uses_running_loop(self):
        timers = LoopTimers()
        fired = asyncio.Event()

        timers.call_later(0.01, fired.set)
        await asyncio.wait_for(fired.wait(), timeout=1.0)

        assert timers.loop is asyncio.get_running_loop()


class TestDebouncer:
    """Tests for Debouncer."""

    def test_default_delay(self):
        assert DEFAULT_DEBOUNCE_SECONDS == 0.5

    def test_negative_delay_rejected(self):
        with pytest.raises(ValueError):
            Debouncer(AsyncMock(), delay=-1)

    @pytest.mark.asyncio
    async def test_burst_coalesces_into_one_run(self, timers):
        action = AsyncMock()
        debouncer = Debouncer(action, delay=0.5, timers=timers)

        # Three events 50ms apart
        debouncer.request()
        timers.advance(0.05)
        debouncer.request()
        timers.advance(0.05)
        debouncer.request()

        # 0.5s after the first request, but only 0.4s after the last
        timers.advance(0.4)
        await debouncer.wait_idle()
        action.assert_not_awaited()

        timers.advance(0.2)
        await debouncer.wait_idle()

        action.assert_awaited_once()
        assert debouncer.request_count == 3
        assert debouncer.fire_count == 1
        assert not debouncer.is_armed

    @pytest.mark.asyncio
    async def test_separate_bursts_run_separately(self, timers):
        action = AsyncMock()
        debouncer = Debouncer(action, delay=0.5, timers=timers)

        debouncer.request()
        timers.advance(0.5)
        await debouncer.wait_idle()
        debouncer.request()
        timers.advance(0.5)
        await debouncer.wait_idle()

        assert action.await_count == 2

    @pytest.mark.asyncio
    async def test_cancel(self, timers):
        action = AsyncMock()
        debouncer = Debouncer(action, delay=0.5, timers=timers)

        debouncer.request()
        debouncer.cancel()
        timers.advance(1.0)
        await debouncer.wait_idle()

        action.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fire_now_supersedes_pending_request(self, timers):
        action = AsyncMock()
        debouncer = Debouncer(action, delay=0.5, timers=timers)

        debouncer.request()
        await debouncer.fire_now()
        timers.advance(1.0)
        await debouncer.wait_idle()

        action.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_action_errors_are_logged_not_raised(self, timers, caplog):
        action = AsyncMock(side_effect=RuntimeError("store down"))
        debouncer = Debouncer(action, delay=0.5, timers=timers)

        debouncer.request()
        timers.advance(0.5)
        await debouncer.wait_idle()

        assert "store down" in caplog.text

    @pytest.mark.asyncio
    async def test_close_cancels_in_flight(self, timers):
        started = asyncio.Event()

        async def slow():
            started.set()
            await asyncio.sleep(10)

        debouncer = Debouncer(slow, delay=0.5, timers=timers)
        debouncer.fire_now()
        await started.wait()

        await debouncer.close()
        assert not debouncer.is_running


class TestFallbackPoller:
    """Tests for FallbackPoller."""

    def test_default_interval(self):
        assert DEFAULT_POLL_INTERVAL == 30.0

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            FallbackPoller(MagicMock(), interval=0)

    def test_polls_every_interval(self, timers):
        action = MagicMock()
        poller = FallbackPoller(action, interval=30.0, timers=timers)
        poller.start()

        timers.advance(29.0)
        action.assert_not_called()
        timers.advance(1.0)
        assert action.call_count == 1
        timers.advance(60.0)
        assert action.call_count == 3
        assert poller.poll_count == 3

    def test_skips_while_condition_false(self, timers):
        action = MagicMock()
        connected = False
        poller = FallbackPoller(action, interval=30.0, timers=timers, should_poll=lambda: connected)
        poller.start()

        timers.advance(60.0)
        action.assert_not_called()

        connected = True
        timers.advance(30.0)
        assert action.call_count == 1

    def test_stop(self, timers):
        action = MagicMock()
        poller = FallbackPoller(action, interval=30.0, timers=timers)
        poller.start()
        poller.stop()

        timers.advance(120.0)
        action.assert_not_called()
        assert not poller.is_running
        assert timers.pending == 0

    def test_action_error_keeps_polling(self, timers):
        action = MagicMock(side_effect=[RuntimeError("boom"), None])
        poller = FallbackPoller(action, interval=30.0, timers=timers)
        poller.start()

        timers.advance(60.0)
        assert action.call_count == 2
