"""Last-write-wins register ordered by Lamport timestamps.

Writes from nodes that may be offline for a while are ordered by
(lamport_ts, node_id), so every replica that has seen the same writes holds
the same value.
"""

import logging
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, order=True)
class Stamp:
    """Total order over writes; node id breaks Lamport ties."""

    lamport_ts: int
    node_id: str


class LamportClock:
    """Logical clock for ordering writes across nodes."""

    def __init__(self, start: int = 0):
        self._value = start

    @property
    def value(self) -> int:
        return self._value

    def tick(self) -> int:
        """Increment and return the clock."""
        self._value += 1
        return self._value

    def observe(self, remote_ts: int) -> None:
        """Advance past a timestamp seen from another node."""
        self._value = max(self._value, remote_ts) + 1


class LWWRegister(Generic[T]):
    """Register holding the value of the highest-stamped write."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        self.clock = LamportClock()
        self._stamp: Stamp | None = None
        self._value: T | None = None

    @property
    def stamp(self) -> Stamp | None:
        return self._stamp

    @property
    def value(self) -> T | None:
        return self._value

    def set(self, value: T) -> Stamp:
        """Write a local value.

        Returns:
            Stamp assigned to the write.
        """
        stamp = Stamp(self.clock.tick(), self.node_id)
        self._stamp = stamp
        self._value = value
        return stamp

    def merge(self, stamp: Stamp, value: T) -> bool:
        """Merge a remote write.

        Writes already seen or older than the current one are ignored.

        Returns:
            True if the remote value was adopted.
        """
        self.clock.observe(stamp.lamport_ts)

        if self._stamp is not None and stamp <= self._stamp:
            logger.debug(f"Ignoring stale write {stamp} (current {self._stamp})")
            return False

        self._stamp = stamp
        self._value = value
        return True
