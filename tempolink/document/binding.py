"""Wiring between the transport engine and the shared document."""

import logging
from typing import Callable

from ..transport.engine import TransportEngine
from ..transport.state import TimelineState
from .shared_document import DocumentUpdate, SharedDocument

logger = logging.getLogger(__name__)


class TransportBinding:
    """Publishes local commands and applies remote updates.

    The engine never writes to the document itself. Updates carrying this
    node's id are echoes of our own writes and are not applied again.
    """

    def __init__(self, engine: TransportEngine, document: SharedDocument):
        self.engine = engine
        self.document = document
        self._unsubscribe: Callable[[], None] | None = None
        self.applied = 0

    @property
    def attached(self) -> bool:
        return self._unsubscribe is not None

    def attach(self) -> None:
        """Subscribe to the document and apply its current value."""
        if self._unsubscribe is not None:
            return

        self._unsubscribe = self.document.subscribe(self._on_update)
        current = self.document.current()
        if current is not None:
            self._on_update(current)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_update(self, update: DocumentUpdate) -> None:
        if update.origin == self.document.node_id:
            return

        try:
            self.engine.apply_remote(update.state)
            self.applied += 1
        except Exception as e:
            logger.error(
                f"Failed to apply transport update from {update.origin}: {e}",
                exc_info=True,
            )

    def _publish(self, state: TimelineState) -> TimelineState:
        if self.engine.initialized:
            self.document.change(state)
        return state

    # ==================== Commands ====================

    def start(self) -> TimelineState:
        return self._publish(self.engine.start())

    def resume(self) -> TimelineState:
        return self._publish(self.engine.resume())

    def pause(self) -> TimelineState:
        return self._publish(self.engine.pause())

    def reset(self) -> TimelineState:
        return self._publish(self.engine.reset())

    def set_tempo(self, tempo: float) -> TimelineState:
        return self._publish(self.engine.set_tempo(tempo))
