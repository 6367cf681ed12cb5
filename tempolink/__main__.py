"""CLI entry point for tempolink."""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

import httpx

from .config import Config, load_config
from .document import SharedDocument, TransportBinding
from .mqtt_client import MQTTClient
from .transport import TransportEngine

logger = logging.getLogger(__name__)


LEVELS = {
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, tagged with the emitting node."""

    def __init__(self, node: str | None = None):
        super().__init__()
        self.node = node

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "node": self.node,
            "component": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(
    verbose: bool = False,
    log_level: str | None = None,
    json_output: bool = False,
    node: str | None = None,
) -> None:
    """Configure root logging for a node.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
        node: Node name included in every record.
    """
    if log_level:
        level = LEVELS.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter(node=node))
    else:
        prefix = f"[{node}] ".replace("%", "%%") if node else ""
        handler.setFormatter(
            logging.Formatter(
                fmt=f"%(asctime)s {prefix}%(levelname)s %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            )
        )

    logging.basicConfig(level=level, handlers=[handler])


async def cmd_run(args: argparse.Namespace, config: Config | None = None) -> int:
    """Run a node: engine, shared document and control API."""
    config = config or load_config(args.config)

    try:
        import uvicorn
        from .api import create_app
    except ImportError as e:
        print(f"API dependencies not installed: {e}", file=sys.stderr)
        return 1

    print(f"Starting tempolink node: {config.node.name}")
    print(f"Tempo: {config.transport.initial_tempo} BPM")
    print(f"Document: {config.document.backend} ({config.document.topic})")
    print(f"API: http://{config.api.host}:{config.api.port}")

    engine = TransportEngine(config.transport)
    engine.initialize(config.transport.initial_tempo)
    engine.on_tempo_change(lambda bpm: logger.info(f"Remote tempo change: {bpm} BPM"))

    stop_event = asyncio.Event()
    client: MQTTClient | None = None
    pump: asyncio.Task | None = None

    if config.document.backend == "mqtt":
        from .document.mqtt_document import MQTTDocument

        client = MQTTClient(config.mqtt, topics=[config.document.topic])
        if not await client.connect():
            print(
                f"Error: could not connect to MQTT broker "
                f"{config.mqtt.broker}:{config.mqtt.port}",
                file=sys.stderr,
            )
            engine.destroy()
            return 1
        document: SharedDocument = MQTTDocument(
            config.node.name, client, config.document.topic
        )
        pump = asyncio.create_task(document.run(stop_event))
    else:
        document = SharedDocument(config.node.name)

    binding = TransportBinding(engine, document)
    binding.attach()

    app = create_app(config, engine, binding)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=config.api.host,
            port=config.api.port,
            log_level="info" if args.verbose else "warning",
        )
    )

    try:
        await server.serve()
    except KeyboardInterrupt:
        print("\nShutting down...")
    finally:
        stop_event.set()
        if pump:
            await pump
        binding.detach()
        engine.destroy()
        if client:
            await client.disconnect()

    return 0


async def cmd_status(args: argparse.Namespace, config: Config | None = None) -> int:
    """Show configuration and check connectivity."""
    config = config or load_config(args.config)

    status_data = {
        "timestamp": datetime.now().isoformat(),
        "node": {"name": config.node.name},
        "transport": {
            "initial_tempo": config.transport.initial_tempo,
            "drift_tolerance_seconds": config.transport.drift_tolerance_seconds,
            "sync_interval_ms": config.transport.sync_interval_ms,
            "sync_jitter_ms": config.transport.sync_jitter_ms,
        },
        "document": {
            "backend": config.document.backend,
            "topic": config.document.topic,
        },
    }

    if config.document.backend == "mqtt":
        client = MQTTClient(config.mqtt)
        status_data["mqtt"] = {
            "broker": f"{config.mqtt.broker}:{config.mqtt.port}",
            "reachable": await client.check_connection(),
        }

    if args.url:
        node_status: dict = {"url": args.url}
        try:
            async with httpx.AsyncClient(timeout=5.0) as http:
                response = await http.get(f"{args.url.rstrip('/')}/api/transport")
                response.raise_for_status()
                node_status["transport"] = response.json()
        except httpx.HTTPError as e:
            node_status["error"] = str(e)
        status_data["remote"] = node_status

    if args.json:
        print(json.dumps(status_data, indent=2))
        return 0

    print(f"Node: {config.node.name}")
    print(
        f"Transport: {config.transport.initial_tempo} BPM, "
        f"sync every {config.transport.sync_interval_ms:.0f}"
        f"±{config.transport.sync_jitter_ms:.0f}ms, "
        f"tolerance {config.transport.drift_tolerance_seconds * 1000:.0f}ms"
    )
    print(f"Document: {config.document.backend} ({config.document.topic})")

    if "mqtt" in status_data:
        mqtt_status = status_data["mqtt"]
        state = "reachable" if mqtt_status["reachable"] else "unreachable"
        print(f"MQTT: {mqtt_status['broker']} ({state})")

    if "remote" in status_data:
        remote = status_data["remote"]
        if "error" in remote:
            print(f"Remote node {remote['url']}: error ({remote['error']})")
        else:
            transport = remote["transport"]
            playing = "playing" if transport["state"]["isPlaying"] else "paused"
            print(
                f"Remote node {remote['url']}: {playing} at "
                f"{transport['position']:.2f}s, {transport['state']['tempo']} BPM"
            )

    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="tempolink",
        description="Shared transport clock synchronized through a replicated document",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: built-in defaults)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    run_parser = subparsers.add_parser("run", help="Start a node")
    run_parser.set_defaults(func=cmd_run)

    status_parser = subparsers.add_parser("status", help="Show configuration and connectivity")
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.add_argument(
        "--url",
        type=str,
        default=None,
        help="Base URL of a running node to query (e.g. http://localhost:8080)",
    )
    status_parser.set_defaults(func=cmd_status)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = load_config(args.config)
        setup_logging(
            args.verbose, args.log_level, args.json_logs, node=config.node.name
        )
        return asyncio.run(args.func(args, config))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
