"""Transport synchronization engine.

Keeps a locally advancing clock in step with a timeline state shared through
an eventually-consistent document.
"""

from .clock import ClockState, LocalClock, SoftwareClock
from .engine import TransportEngine, destroy_engine, get_engine
from .state import TimelineState
from .sync_loop import SyncLoop, next_interval
from .vector import TimingVector, UnsupportedVectorError, from_vector, to_vector

__all__ = [
    "ClockState",
    "LocalClock",
    "SoftwareClock",
    "TransportEngine",
    "destroy_engine",
    "get_engine",
    "TimelineState",
    "SyncLoop",
    "next_interval",
    "TimingVector",
    "UnsupportedVectorError",
    "from_vector",
    "to_vector",
]
