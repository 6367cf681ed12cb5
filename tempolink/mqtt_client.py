"""Broker connection used to relay shared document updates between nodes."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import paho.mqtt.client as mqtt

from .config import MQTTConfig

logger = logging.getLogger(__name__)


@dataclass
class Message:
    """A message received from the broker."""

    topic: str
    payload: str
    retained: bool = False
    timestamp: float = field(default_factory=time.time)


class MQTTClient:
    """Asyncio front end for a paho MQTT connection.

    Paho runs its network loop on a background thread. Incoming messages are
    handed to the event loop through a queue and read with get_message().
    Subscriptions are remembered and renewed whenever the broker connection
    is (re)established, so a node that reconnects also receives the retained
    transport state again.
    """

    def __init__(self, config: MQTTConfig, topics: list[str] | None = None):
        """Initialize the client.

        Args:
            config: Broker connection settings.
            topics: Topics to subscribe to once connected.
        """
        self.config = config
        self._subscriptions: set[str] = set(topics or [])

        self._client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        self._client.on_connect = self._handle_connect
        self._client.on_message = self._handle_message
        self._client.on_disconnect = self._handle_disconnect
        self._client.reconnect_delay_set(min_delay=1, max_delay=30)

        self._connected = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._inbox: asyncio.Queue[Message] | None = None

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def subscriptions(self) -> set[str]:
        return set(self._subscriptions)

    # ==================== Paho callbacks (network thread) ====================

    def _handle_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        if reason_code != 0:
            logger.error(f"Broker refused connection: {reason_code}")
            return

        self._connected = True
        logger.info(f"Connected to MQTT broker at {self.config.broker}:{self.config.port}")
        for topic in sorted(self._subscriptions):
            client.subscribe(topic, qos=self.config.qos)
            logger.debug(f"Subscribed to {topic}")

    def _handle_message(
        self,
        client: mqtt.Client,
        userdata: Any,
        msg: mqtt.MQTTMessage,
    ) -> None:
        try:
            payload = msg.payload.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning(f"Dropping non-UTF-8 message on {msg.topic}")
            return

        message = Message(topic=msg.topic, payload=payload, retained=bool(msg.retain))
        logger.debug(f"Received {len(payload)} bytes on {msg.topic}")

        if self._inbox is not None and self._loop is not None:
            self._loop.call_soon_threadsafe(self._inbox.put_nowait, message)

    def _handle_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        disconnect_flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        self._connected = False
        logger.warning(f"Disconnected from MQTT broker: {reason_code}")

    # ==================== Connection ====================

    async def connect(self, timeout: float = 5.0) -> bool:
        """Connect to the broker and wait for the handshake.

        Args:
            timeout: Seconds to wait for the broker to accept the connection.

        Returns:
            True if connected within the timeout.
        """
        self._loop = asyncio.get_running_loop()
        self._inbox = asyncio.Queue()

        if self.config.username and self.config.password:
            self._client.username_pw_set(self.config.username, self.config.password)

        try:
            self._client.connect(
                self.config.broker, self.config.port, keepalive=self.config.keepalive
            )
        except OSError as e:
            logger.error(f"Failed to connect to MQTT broker: {e}")
            return False

        self._client.loop_start()

        deadline = self._loop.time() + timeout
        while not self._connected:
            if self._loop.time() >= deadline:
                logger.error("Timeout waiting for MQTT connection")
                return False
            await asyncio.sleep(0.1)
        return True

    async def disconnect(self) -> None:
        self._client.loop_stop()
        self._client.disconnect()
        self._connected = False

    async def check_connection(self) -> bool:
        """Check if the broker is reachable without joining the session."""
        if self._connected:
            return True

        probe = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        try:
            probe.connect(self.config.broker, self.config.port, keepalive=5)
            probe.disconnect()
            return True
        except OSError:
            return False

    # ==================== Messaging ====================

    def subscribe(self, topic: str) -> None:
        """Add a subscription, applied now if connected and on every reconnect."""
        self._subscriptions.add(topic)
        if self._connected:
            self._client.subscribe(topic, qos=self.config.qos)

    async def publish(self, topic: str, payload: str, retain: bool = False) -> bool:
        """Publish a message.

        Args:
            topic: Topic to publish to.
            payload: Message payload.
            retain: Ask the broker to keep the message for late subscribers.

        Returns:
            True if the message was handed to the network loop.
        """
        if not self._connected:
            logger.error("Cannot publish: not connected to broker")
            return False

        result = self._client.publish(topic, payload, qos=self.config.qos, retain=retain)
        return result.rc == mqtt.MQTT_ERR_SUCCESS

    async def get_message(self, timeout: float | None = None) -> Message | None:
        """Wait for the next incoming message.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely.

        Returns:
            The message, or None on timeout or before connect().
        """
        if self._inbox is None:
            return None

        try:
            return await asyncio.wait_for(self._inbox.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
