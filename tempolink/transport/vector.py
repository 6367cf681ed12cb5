"""Adapters between timeline states and position/velocity timing vectors.

Some timing protocols describe a timeline as a kinematic vector sampled at a
timestamp. Only constant-velocity segments map onto a timeline state, so any
vector carrying acceleration is rejected.
"""

from dataclasses import dataclass
from typing import Any

from .state import TimelineState


class UnsupportedVectorError(ValueError):
    """Raised when a timing vector cannot be expressed as a timeline state."""


@dataclass
class TimingVector:
    """Kinematic description of a timeline."""

    position: float  # beats
    velocity: float  # beats per second
    acceleration: float = 0.0
    timestamp: float = 0.0  # seconds since epoch

    def to_dict(self) -> dict[str, Any]:
        return {
            "position": self.position,
            "velocity": self.velocity,
            "acceleration": self.acceleration,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TimingVector":
        return cls(
            position=float(data["position"]),
            velocity=float(data["velocity"]),
            acceleration=float(data.get("acceleration", 0.0)),
            timestamp=float(data["timestamp"]),
        )


def to_vector(state: TimelineState, now_ms: float) -> TimingVector:
    """Express a timeline state as a timing vector sampled at now.

    Args:
        state: Timeline state to convert.
        now_ms: Wall-clock time in milliseconds since epoch.

    Returns:
        TimingVector with zero acceleration.
    """
    beats_per_second = state.tempo / 60
    velocity = beats_per_second if state.is_playing else 0.0
    return TimingVector(
        position=state.position_at(now_ms) * beats_per_second,
        velocity=velocity,
        acceleration=0.0,
        timestamp=now_ms / 1000,
    )


def from_vector(
    vector: TimingVector, now_ms: float, tempo: float
) -> TimelineState:
    """Convert a timing vector into a timeline state.

    Args:
        vector: Vector to convert.
        now_ms: Wall-clock time in milliseconds since epoch.
        tempo: Tempo to use when the vector is stopped, since a zero
            velocity carries no tempo.

    Returns:
        Equivalent TimelineState.

    Raises:
        UnsupportedVectorError: If the vector has non-zero acceleration.
    """
    if vector.acceleration != 0:
        raise UnsupportedVectorError(
            f"Acceleration not supported (got {vector.acceleration})"
        )

    if vector.velocity > 0:
        elapsed = now_ms / 1000 - vector.timestamp
        beats = vector.position + vector.velocity * elapsed
        position = max(0.0, beats / vector.velocity)
        return TimelineState(
            reference_instant=now_ms - position * 1000,
            tempo=vector.velocity * 60,
            is_playing=True,
            paused_position=0.0,
        )

    return TimelineState(
        reference_instant=None,
        tempo=tempo,
        is_playing=False,
        paused_position=max(0.0, vector.position / (tempo / 60)),
    )
