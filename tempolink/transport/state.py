"""Shared timeline state replicated between clients.

The state is a reference wall-clock instant plus a paused position. While
playing, the current position is always derived from the reference instant,
never stored.
"""

from dataclasses import dataclass
from typing import Any

DEFAULT_TEMPO = 120.0


@dataclass
class TimelineState:
    """Snapshot of the shared transport timeline."""

    reference_instant: float | None = None  # ms since epoch, None while paused
    tempo: float = DEFAULT_TEMPO  # beats per minute
    is_playing: bool = False
    paused_position: float = 0.0  # seconds, used to resume

    def position_at(self, now_ms: float) -> float:
        """Get the timeline position in seconds at a wall-clock instant.

        Args:
            now_ms: Wall-clock time in milliseconds since epoch.

        Returns:
            Position in seconds.
        """
        if self.is_playing and self.reference_instant is not None:
            return (now_ms - self.reference_instant) / 1000
        return self.paused_position

    def beat_at(self, now_ms: float) -> float:
        """Get the timeline position in beats at a wall-clock instant."""
        return self.position_at(now_ms) * self.tempo / 60

    def copy(self) -> "TimelineState":
        return TimelineState(
            reference_instant=self.reference_instant,
            tempo=self.tempo,
            is_playing=self.is_playing,
            paused_position=self.paused_position,
        )

    def validate(self) -> None:
        """Check the state invariants.

        Raises:
            ValueError: If any invariant is violated.
        """
        if self.tempo <= 0:
            raise ValueError(f"Tempo must be positive, got {self.tempo}")
        if self.paused_position < 0:
            raise ValueError(
                f"Paused position must be non-negative, got {self.paused_position}"
            )
        if self.is_playing and self.reference_instant is None:
            raise ValueError("Playing state requires a reference instant")
        if not self.is_playing and self.reference_instant is not None:
            raise ValueError("Paused state must not carry a reference instant")

    def to_dict(self) -> dict[str, Any]:
        """Convert to the document wire schema."""
        return {
            "referenceInstant": self.reference_instant,
            "tempo": self.tempo,
            "isPlaying": self.is_playing,
            "pausedPosition": self.paused_position,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TimelineState":
        """Create from the document wire schema."""
        reference = data["referenceInstant"]
        return cls(
            reference_instant=float(reference) if reference is not None else None,
            tempo=float(data["tempo"]),
            is_playing=bool(data["isPlaying"]),
            paused_position=float(data["pausedPosition"]),
        )
