"""Transport synchronization engine.

Keeps the local clock aligned with the shared timeline state. Local commands
produce new states for the caller to publish; remote states are reconciled
against the local clock, and a periodic loop corrects accumulated drift.
"""

import logging
import math
import random
import time
from typing import Callable

from ..config import TransportConfig
from .clock import ClockState, LocalClock, SoftwareClock
from .state import TimelineState
from .sync_loop import SyncLoop
from .vector import TimingVector, from_vector, to_vector

logger = logging.getLogger(__name__)

TempoCallback = Callable[[int], None]


def _wall_clock_ms() -> float:
    return time.time() * 1000


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class TransportEngine:
    """Synchronizes a local clock with the shared timeline state."""

    def __init__(
        self,
        config: TransportConfig | None = None,
        clock: LocalClock | None = None,
        now_ms: Callable[[], float] = _wall_clock_ms,
        rng: random.Random | None = None,
    ):
        """Initialize the engine.

        Args:
            config: Tolerances and loop timing.
            clock: Local clock to drive (defaults to a SoftwareClock).
            now_ms: Wall-clock source in milliseconds since epoch. Must be
                comparable across clients.
            rng: Random source for sync loop jitter.
        """
        self.config = config or TransportConfig()
        self.clock = clock if clock is not None else SoftwareClock(
            bpm=self.config.initial_tempo
        )
        self._now_ms = now_ms
        self._rng = rng
        self._state = TimelineState(tempo=self.config.initial_tempo)
        self._sync_loop: SyncLoop | None = None
        self._initialized = False
        self._tempo_callback: TempoCallback | None = None
        self._applying_remote = False
        self._restart_at: float | None = None  # clock time a smooth seek resumes

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def applying_remote(self) -> bool:
        """True while a remote state is being applied to the clock."""
        return self._applying_remote

    @property
    def sync_loop(self) -> SyncLoop | None:
        return self._sync_loop

    def now_ms(self) -> float:
        return self._now_ms()

    # ==================== Lifecycle ====================

    def initialize(
        self, tempo: float | None = None, start_sync_loop: bool = True
    ) -> None:
        """Initialize the engine. Later calls are no-ops.

        Args:
            tempo: Starting tempo (defaults to the configured tempo).
            start_sync_loop: Start the periodic drift correction. Requires a
                running event loop.

        Raises:
            ValueError: If the tempo is not positive.
            RuntimeError: If the sync loop is requested outside an event
                loop. The engine stays uninitialized.
        """
        if self._initialized:
            logger.info("Transport engine already initialized")
            return

        if tempo is None:
            tempo = self.config.initial_tempo
        if tempo <= 0:
            raise ValueError(f"Tempo must be positive, got {tempo}")

        if start_sync_loop:
            sync_loop = SyncLoop(
                self.correct_drift,
                interval_ms=self.config.sync_interval_ms,
                jitter_ms=self.config.sync_jitter_ms,
                rng=self._rng,
            )
            # Raises RuntimeError outside an event loop, before any state changes
            sync_loop.start()
            self._sync_loop = sync_loop

        self._state = TimelineState(tempo=tempo)
        self.clock.bpm = tempo
        self._initialized = True

        logger.info(f"Transport engine initialized at {tempo} BPM")

    def destroy(self) -> None:
        """Cancel the sync loop and clear the tempo observer."""
        if self._sync_loop is not None:
            self._sync_loop.cancel()
            self._sync_loop = None
        self._initialized = False
        self._tempo_callback = None
        logger.info("Transport engine destroyed")

    # ==================== Queries ====================

    def get_state(self) -> TimelineState:
        """Get a copy of the current timeline state."""
        return self._state.copy()

    def position(self) -> float:
        """Position in seconds implied by the current state."""
        return self._state.position_at(self.now_ms())

    def to_vector(self) -> TimingVector:
        """Current state as a timing vector."""
        return to_vector(self._state, self.now_ms())

    # ==================== Local commands ====================

    def _ready(self) -> bool:
        if not self._initialized:
            logger.warning("Transport engine not initialized")
        return self._initialized

    def start(self) -> TimelineState:
        """Start playback from position 0."""
        if not self._ready():
            return self.get_state()

        self.clock.seconds = 0
        self._state.reference_instant = self.now_ms()
        self._state.is_playing = True
        self._state.paused_position = 0.0
        self._restart_at = None
        self.clock.start()

        logger.info(f"Started playback from 0 at {self._state.reference_instant:.0f}")
        return self.get_state()

    def resume(self) -> TimelineState:
        """Resume playback from the paused position."""
        if not self._ready():
            return self.get_state()

        if self._state.is_playing:
            logger.debug("Already playing")
            return self.get_state()

        position = self._state.paused_position
        self.clock.seconds = position
        # Back-date the reference so the derived position equals the paused one
        self._state.reference_instant = self.now_ms() - position * 1000
        self._state.is_playing = True
        self._restart_at = None
        self.clock.start()

        logger.info(f"Resumed playback from {position:.2f}s")
        return self.get_state()

    def pause(self) -> TimelineState:
        """Pause playback, keeping the position for resume."""
        if not self._ready():
            return self.get_state()

        if self._state.reference_instant is not None:
            self._state.paused_position = max(
                0.0, (self.now_ms() - self._state.reference_instant) / 1000
            )
        self._state.is_playing = False
        self._state.reference_instant = None
        self._restart_at = None
        self.clock.pause()

        logger.info(f"Paused at {self._state.paused_position:.2f}s")
        return self.get_state()

    def reset(self) -> TimelineState:
        """Return to position 0 without changing play/pause state."""
        if not self._ready():
            return self.get_state()

        self._restart_at = None
        self.clock.seconds = 0
        self._state.paused_position = 0.0
        if self._state.is_playing:
            self._state.reference_instant = self.now_ms()

        logger.info("Reset position to 0")
        return self.get_state()

    def set_tempo(self, tempo: float) -> TimelineState:
        """Change the tempo."""
        if not self._ready():
            return self.get_state()

        if tempo <= 0:
            logger.warning(f"Ignoring non-positive tempo {tempo}")
            return self.get_state()

        self._state.tempo = tempo
        self.clock.bpm = tempo

        logger.info(f"Updated tempo: {tempo}")
        return self.get_state()

    # ==================== Remote reconciliation ====================

    def apply_remote(self, state: TimelineState) -> None:
        """Apply a state received from the shared document.

        A play/pause transition seeks the clock directly, since no audio is
        sounding yet. A steady-state correction only happens past the drift
        tolerance and always uses a smooth seek.

        Args:
            state: Snapshot from the shared document.
        """
        if not self._initialized:
            logger.debug("Ignoring remote state: engine not initialized")
            return

        if state.tempo <= 0:
            logger.warning(f"Ignoring remote state with tempo {state.tempo}")
            return

        previous_tempo = self._state.tempo
        was_playing = self._state.is_playing

        self._applying_remote = True
        try:
            self._state = state.copy()

            if abs(state.tempo - previous_tempo) > self.config.tempo_epsilon:
                self._notify_tempo_change(state.tempo)

            self.clock.bpm = state.tempo

            if state.is_playing and state.reference_instant is not None:
                expected = (self.now_ms() - state.reference_instant) / 1000

                if not was_playing or self.clock.state is not ClockState.STARTED:
                    logger.info(f"Starting clock at {expected:.3f}s")
                    self.clock.seconds = expected
                    self._restart_at = None
                    self.clock.start()
                else:
                    drift = abs(self.clock.seconds - expected)
                    if drift > self.config.drift_tolerance_seconds:
                        logger.info(
                            f"Remote update correcting drift: {drift * 1000:.1f}ms"
                        )
                        self.smooth_seek(expected)
            elif (
                self.clock.state is ClockState.STARTED or self._restart_at is not None
            ):
                # A pending smooth seek would otherwise restart the clock
                logger.info("Pausing clock")
                self._restart_at = None
                self.clock.pause()
        finally:
            self._applying_remote = False

    def apply_vector(self, vector: TimingVector) -> None:
        """Apply a remote timing vector.

        Raises:
            UnsupportedVectorError: If the vector has non-zero acceleration.
                The engine state is left untouched.
        """
        state = from_vector(vector, self.now_ms(), tempo=self._state.tempo)
        self.apply_remote(state)

    # ==================== Drift correction ====================

    def correct_drift(self) -> bool:
        """Resync the clock if it drifted from the shared timeline.

        Returns:
            True if a correction was applied.
        """
        if (
            not self._initialized
            or not self._state.is_playing
            or self._state.reference_instant is None
        ):
            return False

        if self._restart_at is not None and self.clock.now() < self._restart_at:
            logger.debug("Skipping drift check: smooth seek pending")
            return False

        expected = (self.now_ms() - self._state.reference_instant) / 1000
        drift = abs(self.clock.seconds - expected)
        if drift <= self.config.drift_tolerance_seconds:
            return False

        logger.info(f"Correcting drift: {drift * 1000:.1f}ms")
        self.smooth_seek(expected)
        return True

    def smooth_seek(self, target: float) -> None:
        """Move a running clock to target without an audible jump.

        The clock is paused, positioned one lookahead past the target and
        restarted one lookahead in the future, so it is exactly on target
        when it starts advancing again.
        """
        lookahead = self.config.seek_lookahead_seconds
        self.clock.pause()
        self.clock.seconds = target + lookahead
        self._restart_at = self.clock.now() + lookahead
        self.clock.start(at=self._restart_at)

    # ==================== Tempo observer ====================

    def on_tempo_change(self, callback: TempoCallback) -> Callable[[], None]:
        """Register the tempo change observer, replacing any previous one.

        Args:
            callback: Called with the rounded tempo when a remote state
                changes the tempo.

        Returns:
            Function that detaches this observer.
        """
        self._tempo_callback = callback

        def detach() -> None:
            if self._tempo_callback is callback:
                self._tempo_callback = None

        return detach

    def _notify_tempo_change(self, tempo: float) -> None:
        if self._tempo_callback is None:
            return
        try:
            self._tempo_callback(_round_half_up(tempo))
        except Exception as e:
            logger.error(f"Tempo change callback failed: {e}", exc_info=True)


_engine: TransportEngine | None = None


def get_engine(**kwargs) -> TransportEngine:
    """Get the process-wide engine, creating it on first use.

    Keyword arguments are passed to TransportEngine when it is created and
    ignored otherwise.
    """
    global _engine
    if _engine is None:
        _engine = TransportEngine(**kwargs)
    return _engine


def destroy_engine() -> None:
    """Destroy the process-wide engine so a fresh one is created next time."""
    global _engine
    if _engine is not None:
        _engine.destroy()
        _engine = None
