"""Tests for the jittered sync loop."""

import asyncio
import random
from unittest.mock import MagicMock

import pytest

from tempolink.transport import SyncLoop, next_interval


class TestNextInterval:
    """Tests for interval selection."""

    def test_default_interval_within_bounds(self):
        """Test every interval lies in [200, 300] ms."""
        rng = random.Random(1234)

        intervals = [next_interval(rng=rng) for _ in range(2000)]

        assert all(200.0 <= i <= 300.0 for i in intervals)
        # Jitter actually spreads the intervals
        assert max(intervals) - min(intervals) > 50.0

    def test_extremes_of_jitter(self):
        rng = MagicMock()
        rng.uniform.side_effect = lambda lo, hi: lo
        assert next_interval(250, 50, rng) == 200.0

        rng.uniform.side_effect = lambda lo, hi: hi
        assert next_interval(250, 50, rng) == 300.0

    def test_jitter_bounds_passed_to_rng(self):
        rng = MagicMock()
        rng.uniform.return_value = 0.0

        assert next_interval(500, 100, rng) == 500.0
        rng.uniform.assert_called_once_with(-100, 100)


class TestSyncLoopLifecycle:
    """Tests for start/cancel/stop."""

    @pytest.mark.asyncio
    async def test_ticks_repeatedly(self):
        tick = MagicMock()
        loop = SyncLoop(tick, interval_ms=10, jitter_ms=2)

        loop.start()
        await asyncio.sleep(0.1)
        await loop.stop()

        assert tick.call_count >= 2

    @pytest.mark.asyncio
    async def test_first_tick_is_immediate(self):
        tick = MagicMock()
        loop = SyncLoop(tick, interval_ms=10_000, jitter_ms=0)

        loop.start()
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert tick.call_count == 1
        await loop.stop()

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        loop = SyncLoop(MagicMock(), interval_ms=10, jitter_ms=0)

        loop.start()
        task1 = loop._task
        loop.start()
        task2 = loop._task

        assert task1 is task2
        await loop.stop()

    @pytest.mark.asyncio
    async def test_no_ticks_after_cancel(self):
        """Test cancel() stops the loop synchronously."""
        tick = MagicMock()
        loop = SyncLoop(tick, interval_ms=5, jitter_ms=1)

        loop.start()
        await asyncio.sleep(0.05)
        loop.cancel()
        count = tick.call_count
        await asyncio.sleep(0.05)

        assert loop.running is False
        assert tick.call_count == count

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        loop = SyncLoop(MagicMock())

        await loop.stop()  # Should not raise

        assert loop.running is False

    @pytest.mark.asyncio
    async def test_tick_errors_do_not_stop_loop(self):
        tick = MagicMock(side_effect=RuntimeError("tick failed"))
        loop = SyncLoop(tick, interval_ms=5, jitter_ms=0)

        loop.start()
        await asyncio.sleep(0.1)

        assert loop.running is True
        assert tick.call_count >= 2
        await loop.stop()

    @pytest.mark.asyncio
    async def test_uses_injected_rng(self):
        rng = MagicMock()
        rng.uniform.return_value = -5.0
        loop = SyncLoop(MagicMock(), interval_ms=10, jitter_ms=5, rng=rng)

        loop.start()
        await asyncio.sleep(0.05)
        await loop.stop()

        rng.uniform.assert_called_with(-5, 5)
