"""Shared document replicated through an MQTT broker.

Each local change is published as a retained JSON message on the transport
topic, so nodes joining later receive the latest state immediately. Incoming
messages are merged with last-write-wins semantics.
"""

import asyncio
import json
import logging

from ..mqtt_client import MQTTClient
from .shared_document import DocumentUpdate, SharedDocument

logger = logging.getLogger(__name__)


class MQTTDocument(SharedDocument):
    """SharedDocument whose replicas talk over MQTT."""

    def __init__(self, node_id: str, client: MQTTClient, topic: str):
        """Initialize the document.

        Args:
            node_id: Unique identifier for this node.
            client: Connected (or soon to be connected) MQTT client. It must
                be subscribed to the topic.
            topic: Topic carrying transport updates.
        """
        super().__init__(node_id)
        self._client = client
        self.topic = topic
        self._pending: set[asyncio.Task] = set()

    def _publish(self, update: DocumentUpdate) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error("Cannot publish update: no running event loop")
            return

        task = loop.create_task(self._send(update))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, update: DocumentUpdate) -> None:
        payload = json.dumps(update.to_dict())
        if not await self._client.publish(self.topic, payload, retain=True):
            logger.warning(f"Failed to publish transport update ts={update.lamport_ts}")

    def handle_payload(self, payload: str) -> bool:
        """Merge a raw message payload.

        Malformed payloads are logged and dropped.

        Returns:
            True if the update was adopted.
        """
        try:
            update = DocumentUpdate.from_dict(json.loads(payload))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Dropping malformed transport update: {e}")
            return False

        if update.origin == self.node_id:
            # Own write, possibly retained from an earlier run; later writes
            # must be stamped past it
            self._register.clock.observe(update.lamport_ts)
            return False

        return self.receive(update)

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Pump incoming messages into the document until stopped.

        Args:
            stop_event: Event to signal the pump should stop.
        """
        logger.info(f"Listening for transport updates on {self.topic}")

        while not (stop_event and stop_event.is_set()):
            message = await self._client.get_message(timeout=0.5)
            if message is None:
                if not self._client.is_connected:
                    await asyncio.sleep(0.5)
                continue
            if message.topic != self.topic:
                continue
            self.handle_payload(message.payload)

        logger.info("Transport update listener stopped")

    async def flush(self) -> None:
        """Wait for in-flight publishes to complete."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
