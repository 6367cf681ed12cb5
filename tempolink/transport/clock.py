"""Local transport clock.

The clock is the client-local playback position generator that the engine
keeps aligned with the shared timeline. Audio layers supply their own clock
by implementing the LocalClock protocol; SoftwareClock is a self-contained
implementation driven by a monotonic time source.
"""

import logging
import time
from enum import Enum
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class ClockState(Enum):
    """Playback condition of a local clock."""

    STARTED = "started"
    PAUSED = "paused"
    STOPPED = "stopped"


ClockListener = Callable[[str], None]


class LocalClock(Protocol):
    """Interface the engine drives."""

    seconds: float
    bpm: float

    @property
    def state(self) -> ClockState: ...

    def now(self) -> float: ...

    def start(self, at: float | None = None) -> None: ...

    def pause(self) -> None: ...

    def stop(self) -> None: ...


class SoftwareClock:
    """Local clock advancing in real time from a monotonic source.

    A start may be scheduled for a future instant; until that instant the
    clock reports PAUSED and holds its position.
    """

    def __init__(
        self,
        bpm: float = 120.0,
        time_source: Callable[[], float] = time.monotonic,
    ):
        """Initialize the clock.

        Args:
            bpm: Initial playback tempo.
            time_source: Monotonic time in seconds.
        """
        self._time = time_source
        self._bpm = bpm
        self._state = ClockState.STOPPED
        self._position = 0.0
        self._anchor: float | None = None  # instant the position starts advancing
        self._listeners: list[ClockListener] = []

    def now(self) -> float:
        """Current time of the clock's time source in seconds."""
        return self._time()

    @property
    def state(self) -> ClockState:
        if (
            self._state is ClockState.STARTED
            and self._anchor is not None
            and self.now() < self._anchor
        ):
            return ClockState.PAUSED
        return self._state

    @property
    def seconds(self) -> float:
        """Playback position in seconds."""
        if self._state is ClockState.STARTED and self._anchor is not None:
            return self._position + max(0.0, self.now() - self._anchor)
        return self._position

    @seconds.setter
    def seconds(self, value: float) -> None:
        if self._state is ClockState.STARTED and self._anchor is not None:
            now = self.now()
            if now >= self._anchor:
                self._anchor = now
        self._position = value
        self._emit("seek")

    @property
    def bpm(self) -> float:
        return self._bpm

    @bpm.setter
    def bpm(self, value: float) -> None:
        if value == self._bpm:
            return
        self._bpm = value
        self._emit("tempo")

    def start(self, at: float | None = None) -> None:
        """Start advancing, now or at a future instant of the time source."""
        now = self.now()
        self._position = self.seconds
        self._anchor = now if at is None else max(now, at)
        self._state = ClockState.STARTED
        self._emit("start")

    def pause(self) -> None:
        """Hold the current position."""
        self._position = self.seconds
        self._anchor = None
        self._state = ClockState.PAUSED
        self._emit("pause")

    def stop(self) -> None:
        """Stop and rewind to zero."""
        self._position = 0.0
        self._anchor = None
        self._state = ClockState.STOPPED
        self._emit("stop")

    def add_listener(self, listener: ClockListener) -> Callable[[], None]:
        """Register a listener for clock changes.

        Args:
            listener: Called with the event name ("start", "pause", "stop",
                "seek" or "tempo").

        Returns:
            Function that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _emit(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Clock listener failed on {event}: {e}", exc_info=True)
