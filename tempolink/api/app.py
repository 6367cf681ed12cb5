"""FastAPI control surface for a tempolink node."""

import logging
from datetime import datetime
from typing import Any

from fastapi import FastAPI
from pydantic import BaseModel, Field

from ..config import Config
from ..document import TransportBinding
from ..transport import TimelineState, TransportEngine

logger = logging.getLogger(__name__)


class TempoRequest(BaseModel):
    tempo: float = Field(gt=0, description="Beats per minute")


def create_app(
    config: Config,
    engine: TransportEngine,
    binding: TransportBinding | None = None,
) -> FastAPI:
    """Create the control API application.

    Args:
        config: Application configuration.
        engine: Transport engine to control.
        binding: Optional binding; when given, command results are
            published to the shared document.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="tempolink",
        description="Shared transport control for a tempolink node",
        version="0.1.0",
    )

    app.state.config = config
    app.state.engine = engine
    app.state.binding = binding

    # Commands go through the binding when present so they get published
    commands: Any = binding if binding is not None else engine

    def _state_response(state: TimelineState) -> dict[str, Any]:
        return state.to_dict()

    @app.get("/api/health")
    async def api_health() -> dict[str, Any]:
        """Health check endpoint."""
        return {
            "status": "ok",
            "timestamp": datetime.now().isoformat(),
            "node": config.node.name,
            "initialized": engine.initialized,
            "sync_loop": engine.sync_loop is not None and engine.sync_loop.running,
            "document": binding is not None and binding.attached,
        }

    @app.get("/api/transport")
    async def api_transport() -> dict[str, Any]:
        """Current shared state plus derived and local clock positions."""
        now_ms = engine.now_ms()
        state = engine.get_state()
        return {
            "state": state.to_dict(),
            "position": state.position_at(now_ms),
            "beat": state.beat_at(now_ms),
            "clock": {
                "state": engine.clock.state.value,
                "seconds": engine.clock.seconds,
                "bpm": engine.clock.bpm,
            },
            "vector": engine.to_vector().to_dict(),
        }

    @app.post("/api/transport/start")
    async def api_start() -> dict[str, Any]:
        return _state_response(commands.start())

    @app.post("/api/transport/resume")
    async def api_resume() -> dict[str, Any]:
        return _state_response(commands.resume())

    @app.post("/api/transport/pause")
    async def api_pause() -> dict[str, Any]:
        return _state_response(commands.pause())

    @app.post("/api/transport/reset")
    async def api_reset() -> dict[str, Any]:
        return _state_response(commands.reset())

    @app.put("/api/transport/tempo")
    async def api_tempo(request: TempoRequest) -> dict[str, Any]:
        return _state_response(commands.set_tempo(request.tempo))

    return app
