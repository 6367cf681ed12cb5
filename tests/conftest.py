"""Shared fixtures: a controllable time source and engines driven by it."""

import pytest

from tempolink.config import TransportConfig
from tempolink.transport import SoftwareClock, TransportEngine, destroy_engine


class FakeTime:
    """Wall clock and monotonic clock that only move when told to."""

    def __init__(self, start_ms: float = 1_700_000_000_000.0):
        self.ms = start_ms

    def now_ms(self) -> float:
        return self.ms

    def monotonic(self) -> float:
        return self.ms / 1000

    def advance(self, ms: float) -> None:
        self.ms += ms


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def clock(fake_time):
    return SoftwareClock(bpm=120.0, time_source=fake_time.monotonic)


@pytest.fixture
def engine(fake_time, clock):
    """Initialized engine without a background sync loop."""
    eng = TransportEngine(TransportConfig(), clock=clock, now_ms=fake_time.now_ms)
    eng.initialize(120, start_sync_loop=False)
    yield eng
    eng.destroy()


@pytest.fixture(autouse=True)
def _reset_process_engine():
    yield
    destroy_engine()
