"""Jittered self-rescheduling loop that keeps the local clock corrected."""

import asyncio
import logging
import random
from typing import Callable

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 250.0
DEFAULT_JITTER_MS = 50.0


def next_interval(
    base_ms: float = DEFAULT_INTERVAL_MS,
    jitter_ms: float = DEFAULT_JITTER_MS,
    rng: random.Random | None = None,
) -> float:
    """Pick the delay before the next sync, in milliseconds.

    Jitter spreads resynchronization across clients that all observed the
    same reference update.

    Args:
        base_ms: Base interval.
        jitter_ms: Maximum deviation either side of the base.
        rng: Random source (defaults to the module-level generator).

    Returns:
        Delay in the range [base_ms - jitter_ms, base_ms + jitter_ms].
    """
    source = rng if rng is not None else random
    return base_ms + source.uniform(-jitter_ms, jitter_ms)


class SyncLoop:
    """Background task invoking a tick callback at jittered intervals."""

    def __init__(
        self,
        tick: Callable[[], object],
        interval_ms: float = DEFAULT_INTERVAL_MS,
        jitter_ms: float = DEFAULT_JITTER_MS,
        rng: random.Random | None = None,
    ):
        """Initialize the sync loop.

        Args:
            tick: Called once per iteration.
            interval_ms: Base interval between ticks.
            jitter_ms: Uniform jitter applied to every interval.
            rng: Random source for the jitter.
        """
        self._tick = tick
        self._interval_ms = interval_ms
        self._jitter_ms = jitter_ms
        self._rng = rng
        self._task: asyncio.Task | None = None
        self._running = False
        self.iterations = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Schedule the loop on the running event loop."""
        if self._running:
            return

        loop = asyncio.get_running_loop()
        self._running = True
        self._task = loop.create_task(self._run_loop())
        logger.debug(
            f"Sync loop started (interval={self._interval_ms}ms "
            f"±{self._jitter_ms}ms)"
        )

    def cancel(self) -> None:
        """Cancel the loop without waiting; no further ticks will run."""
        self._running = False
        if self._task:
            self._task.cancel()

    async def stop(self) -> None:
        """Cancel the loop and wait for the task to finish."""
        task = self._task
        self.cancel()
        if task:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.debug("Sync loop stopped")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                self._tick()
            except Exception as e:
                logger.error(f"Sync tick failed: {e}", exc_info=True)
            self.iterations += 1

            delay = next_interval(self._interval_ms, self._jitter_ms, self._rng)
            await asyncio.sleep(delay / 1000)
