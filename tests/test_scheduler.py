"""
Unit tests for PassScheduler: busy-flag guard, failure isolation, one-shot
and periodic modes, and shutdown-aware sleeping.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from archiver.scheduler import (
    PassScheduler,
    handle_signal,
    shutdown_event,
    sleep_with_shutdown,
)
from shared.errors import TransportError


class TestTick:
    @pytest.mark.asyncio
    async def test_no_overlapping_passes(self):
        """A tick while a pass is in flight is skipped; the next one runs."""
        release = asyncio.Event()
        started = asyncio.Event()
        calls = 0

        async def slow_pass():
            nonlocal calls
            calls += 1
            started.set()
            await release.wait()
            return 7

        scheduler = PassScheduler(slow_pass, AsyncMock())
        first = asyncio.create_task(scheduler.tick())
        await started.wait()

        assert scheduler.busy
        assert await scheduler.tick() is None
        assert calls == 1

        release.set()
        assert await first is True
        assert not scheduler.busy

        assert await scheduler.tick() is True
        assert calls == 2

    @pytest.mark.asyncio
    async def test_failed_pass_releases_guard_and_is_audited(self):
        run_pass = AsyncMock(side_effect=TransportError("boom", "GET", "/x"))
        audit = AsyncMock()
        scheduler = PassScheduler(run_pass, audit)

        assert await scheduler.tick() is False
        assert not scheduler.busy
        assert scheduler.failed_passes == 1
        audit.log.assert_awaited_once()
        assert audit.log.await_args.kwargs["success"] is False

        # The scheduler survives: the next tick runs a new pass.
        run_pass.side_effect = None
        run_pass.return_value = 3
        assert await scheduler.tick() is True
        assert run_pass.await_count == 2

    @pytest.mark.asyncio
    async def test_cancelled_pass_still_releases_guard(self):
        async def hang():
            await asyncio.Event().wait()
            return 0

        scheduler = PassScheduler(hang, AsyncMock())
        task = asyncio.create_task(scheduler.tick())
        await asyncio.sleep(0)
        assert scheduler.busy

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert not scheduler.busy

    @pytest.mark.asyncio
    async def test_pass_numbers_increment(self):
        audit = AsyncMock()
        scheduler = PassScheduler(AsyncMock(return_value=0), audit)
        await scheduler.tick()
        await scheduler.tick()
        numbers = [c.args[2]["pass_number"] for c in audit.log.await_args_list]
        assert numbers == [1, 2]


class TestModes:
    @pytest.mark.asyncio
    async def test_one_shot_reports_success(self):
        scheduler = PassScheduler(AsyncMock(return_value=5), AsyncMock())
        assert not scheduler.periodic
        assert await scheduler.run() is True

    @pytest.mark.asyncio
    async def test_one_shot_reports_failure(self):
        scheduler = PassScheduler(
            AsyncMock(side_effect=TransportError("down")), AsyncMock()
        )
        assert await scheduler.run() is False

    @pytest.mark.asyncio
    async def test_periodic_failure_does_not_stop_next_pass(self):
        """Pass 1 fails, pass 2 still runs; shutdown after pass 2."""
        outcomes = [TransportError("down"), 4]

        async def run_pass():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            shutdown_event.set()
            return outcome

        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)
            return shutdown_event.is_set()

        scheduler = PassScheduler(run_pass, AsyncMock(), interval_seconds=60.0)
        with patch("archiver.scheduler.sleep_with_shutdown", side_effect=fake_sleep):
            assert await scheduler.run() is True

        assert scheduler.pass_number == 2
        assert scheduler.failed_passes == 1
        assert sleeps == [60.0, 60.0]

    @pytest.mark.asyncio
    async def test_run_forever_requires_interval(self):
        scheduler = PassScheduler(AsyncMock(return_value=0), AsyncMock())
        with pytest.raises(ValueError):
            await scheduler.run_forever()

    @pytest.mark.asyncio
    async def test_run_forever_exits_immediately_when_shutdown_set(self):
        run_pass = AsyncMock(return_value=0)
        shutdown_event.set()
        scheduler = PassScheduler(run_pass, AsyncMock(), interval_seconds=1.0)
        await scheduler.run_forever()
        run_pass.assert_not_called()


class TestShutdown:
    @pytest.mark.asyncio
    async def test_sleep_returns_early_when_shutdown_set(self):
        shutdown_event.set()
        assert await sleep_with_shutdown(30) is True

    @pytest.mark.asyncio
    async def test_short_sleep_completes(self):
        assert await sleep_with_shutdown(0.01) is False

    def test_handle_signal_sets_event(self):
        handle_signal(15, None)
        assert shutdown_event.is_set()
