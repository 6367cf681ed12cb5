"""Replicated document holding the shared transport state.

Every write is wrapped in a DocumentUpdate carrying the writer's node id and
Lamport timestamp. Replicas merge updates with last-write-wins semantics, so
they converge regardless of delivery order.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from ..transport.state import TimelineState
from .lww import LWWRegister, Stamp

logger = logging.getLogger(__name__)


@dataclass
class DocumentUpdate:
    """A write to the transport field of the shared document."""

    state: TimelineState
    origin: str
    lamport_ts: int
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def stamp(self) -> Stamp:
        return Stamp(self.lamport_ts, self.origin)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "origin": self.origin,
            "lamportTs": self.lamport_ts,
            "updatedAt": self.updated_at.isoformat(),
            "transport": self.state.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DocumentUpdate":
        """Create from dictionary."""
        return cls(
            state=TimelineState.from_dict(data["transport"]),
            origin=str(data["origin"]),
            lamport_ts=int(data["lamportTs"]),
            updated_at=(
                datetime.fromisoformat(data["updatedAt"])
                if data.get("updatedAt")
                else datetime.now()
            ),
        )


UpdateCallback = Callable[[DocumentUpdate], None]


class SharedDocument:
    """Local replica of the shared document.

    Subscribers are notified of local changes and of adopted remote updates.
    """

    def __init__(self, node_id: str):
        """Initialize the replica.

        Args:
            node_id: Unique identifier for this node.
        """
        self.node_id = node_id
        self._register: LWWRegister[DocumentUpdate] = LWWRegister(node_id)
        self._subscribers: list[UpdateCallback] = []
        self._hub: "DocumentHub | None" = None

    def current(self) -> DocumentUpdate | None:
        """Get the latest adopted update, if any."""
        return self._register.value

    def subscribe(self, callback: UpdateCallback) -> Callable[[], None]:
        """Subscribe to document changes.

        Returns:
            Function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def change(self, state: TimelineState) -> DocumentUpdate:
        """Write a new transport state from this node.

        Args:
            state: State produced by a local command.

        Returns:
            The update that was written and published.
        """
        update = DocumentUpdate(state=state.copy(), origin=self.node_id, lamport_ts=0)
        update.lamport_ts = self._register.set(update).lamport_ts

        logger.debug(f"Local change ts={update.lamport_ts}: {update.state.to_dict()}")
        self._publish(update)
        self._notify(update)
        return update

    def receive(self, update: DocumentUpdate) -> bool:
        """Merge an update from another replica.

        Returns:
            True if the update was newer and adopted.
        """
        if not self._register.merge(update.stamp, update):
            return False

        logger.debug(
            f"Adopted update from {update.origin} ts={update.lamport_ts}"
        )
        self._notify(update)
        return True

    def _publish(self, update: DocumentUpdate) -> None:
        """Send a local update to other replicas."""
        if self._hub is not None:
            self._hub.broadcast(update, sender=self)

    def _notify(self, update: DocumentUpdate) -> None:
        for callback in list(self._subscribers):
            try:
                callback(update)
            except Exception as e:
                logger.error(f"Document subscriber failed: {e}", exc_info=True)


class DocumentHub:
    """In-process replication between SharedDocument replicas.

    Delivery can be held back and released later, in any order, to model a
    high-latency network.
    """

    def __init__(self):
        self._documents: list[SharedDocument] = []
        self._held: list[tuple[DocumentUpdate, SharedDocument]] | None = None

    def attach(self, document: SharedDocument) -> None:
        """Connect a replica and bring it up to date."""
        document._hub = self
        for other in self._documents:
            latest = other.current()
            if latest is not None:
                document.receive(latest)
        self._documents.append(document)

    def detach(self, document: SharedDocument) -> None:
        if document in self._documents:
            self._documents.remove(document)
        document._hub = None

    def hold(self) -> None:
        """Queue deliveries until flush() is called."""
        if self._held is None:
            self._held = []

    def flush(self, reverse: bool = False) -> int:
        """Deliver queued updates and resume immediate delivery.

        Args:
            reverse: Deliver newest first.

        Returns:
            Number of updates delivered.
        """
        held = self._held or []
        self._held = None
        if reverse:
            held = list(reversed(held))
        for update, target in held:
            target.receive(update)
        return len(held)

    def broadcast(self, update: DocumentUpdate, sender: SharedDocument) -> None:
        for document in self._documents:
            if document is sender:
                continue
            if self._held is not None:
                self._held.append((update, document))
            else:
                document.receive(update)
