"""Configuration loading for tempolink."""

import os
import socket
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


def default_node_name() -> str:
    """Hostname plus a random suffix.

    The node name is the origin tag used to drop echoes of our own writes,
    so two nodes must never share it.
    """
    return f"{socket.gethostname()}-{uuid.uuid4().hex[:8]}"


@dataclass
class NodeConfig:
    name: str = field(default_factory=default_node_name)


@dataclass
class TransportConfig:
    """Timing parameters of the transport engine."""

    initial_tempo: float = 120.0
    drift_tolerance_seconds: float = 0.05
    seek_lookahead_seconds: float = 0.05
    sync_interval_ms: float = 250.0
    sync_jitter_ms: float = 50.0
    tempo_epsilon: float = 0.1


@dataclass
class DocumentConfig:
    """Configuration for the replicated document."""

    backend: str = "memory"  # "memory" or "mqtt"
    topic: str = "tempolink/transport"


@dataclass
class MQTTConfig:
    broker: str = "localhost"
    port: int = 1883
    username: str | None = None
    password: str | None = None
    keepalive: int = 60
    qos: int = 1


@dataclass
class APIConfig:
    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class Config:
    node: NodeConfig = field(default_factory=NodeConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)
    document: DocumentConfig = field(default_factory=DocumentConfig)
    mqtt: MQTTConfig = field(default_factory=MQTTConfig)
    api: APIConfig = field(default_factory=APIConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with TEMPOLINK_ prefix."""
    return os.environ.get(f"TEMPOLINK_{key}", default)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    if name := _get_env("NODE_NAME"):
        config.node.name = name

    # Transport overrides
    if tempo := _get_env("INITIAL_TEMPO"):
        config.transport.initial_tempo = float(tempo)
    if interval := _get_env("SYNC_INTERVAL_MS"):
        config.transport.sync_interval_ms = float(interval)
    if jitter := _get_env("SYNC_JITTER_MS"):
        config.transport.sync_jitter_ms = float(jitter)

    # Document overrides
    if backend := _get_env("DOCUMENT_BACKEND"):
        config.document.backend = backend.lower()
    if topic := _get_env("DOCUMENT_TOPIC"):
        config.document.topic = topic

    # MQTT overrides
    if broker := _get_env("MQTT_BROKER"):
        config.mqtt.broker = broker
    if port := _get_env("MQTT_PORT"):
        config.mqtt.port = int(port)
    if username := _get_env("MQTT_USERNAME"):
        config.mqtt.username = username
    if password := _get_env("MQTT_PASSWORD"):
        config.mqtt.password = password

    # API overrides
    if host := _get_env("API_HOST"):
        config.api.host = host
    if port := _get_env("API_PORT"):
        config.api.port = int(port)

    return config


def _validate(config: Config) -> None:
    if config.transport.initial_tempo <= 0:
        raise ValueError(
            f"transport.initial_tempo must be positive, got {config.transport.initial_tempo}"
        )
    if config.transport.sync_jitter_ms >= config.transport.sync_interval_ms:
        raise ValueError("transport.sync_jitter_ms must be smaller than sync_interval_ms")
    if config.mqtt.qos not in (0, 1, 2):
        raise ValueError(f"mqtt.qos must be 0, 1 or 2, got {config.mqtt.qos}")
    if config.document.backend not in ("memory", "mqtt"):
        raise ValueError(
            f"document.backend must be 'memory' or 'mqtt', got {config.document.backend!r}"
        )


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded and validated Config object.

    Raises:
        ValueError: If the resulting configuration is invalid.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            if "node" in data:
                config.node = NodeConfig(
                    name=data["node"].get("name", config.node.name)
                )

            if "transport" in data:
                transport_data = data["transport"]
                defaults = config.transport
                config.transport = TransportConfig(
                    initial_tempo=float(
                        transport_data.get("initial_tempo", defaults.initial_tempo)
                    ),
                    drift_tolerance_seconds=float(
                        transport_data.get(
                            "drift_tolerance_seconds", defaults.drift_tolerance_seconds
                        )
                    ),
                    seek_lookahead_seconds=float(
                        transport_data.get(
                            "seek_lookahead_seconds", defaults.seek_lookahead_seconds
                        )
                    ),
                    sync_interval_ms=float(
                        transport_data.get("sync_interval_ms", defaults.sync_interval_ms)
                    ),
                    sync_jitter_ms=float(
                        transport_data.get("sync_jitter_ms", defaults.sync_jitter_ms)
                    ),
                    tempo_epsilon=float(
                        transport_data.get("tempo_epsilon", defaults.tempo_epsilon)
                    ),
                )

            if "document" in data:
                doc_data = data["document"]
                config.document = DocumentConfig(
                    backend=doc_data.get("backend", config.document.backend),
                    topic=doc_data.get("topic", config.document.topic),
                )

            if "mqtt" in data:
                mqtt_data = data["mqtt"]
                config.mqtt = MQTTConfig(
                    broker=mqtt_data.get("broker", config.mqtt.broker),
                    port=mqtt_data.get("port", config.mqtt.port),
                    username=mqtt_data.get("username"),
                    password=mqtt_data.get("password"),
                    keepalive=mqtt_data.get("keepalive", config.mqtt.keepalive),
                    qos=int(mqtt_data.get("qos", config.mqtt.qos)),
                )

            if "api" in data:
                api_data = data["api"]
                config.api = APIConfig(
                    host=api_data.get("host", config.api.host),
                    port=api_data.get("port", config.api.port),
                )

    config = _apply_env_overrides(config)
    _validate(config)
    return config
