"""Tests for the CLI entry point."""

import json
import logging
import os
import sys
from argparse import Namespace

import httpx
import pytest

from tempolink.__main__ import JSONFormatter, cmd_status, main


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("TEMPOLINK_"):
            monkeypatch.delenv(key)


def _mock_http(monkeypatch, handler):
    """Route httpx.AsyncClient requests through a mock transport."""
    real_client = httpx.AsyncClient

    def factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", factory)


class TestJSONFormatter:
    def test_format(self):
        record = logging.LogRecord(
            "tempolink.transport.engine", logging.INFO, __file__, 1,
            "Updated tempo: %s", (96,), None,
        )

        data = json.loads(JSONFormatter(node="studio-a").format(record))

        assert data["level"] == "INFO"
        assert data["node"] == "studio-a"
        assert data["component"] == "tempolink.transport.engine"
        assert data["message"] == "Updated tempo: 96"
        assert "exception" not in data

    def test_format_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            exc_info = sys.exc_info()
        record = logging.LogRecord(
            "tempolink", logging.ERROR, __file__, 1, "failed", (), exc_info
        )

        data = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: boom" in data["exception"]


class TestStatus:
    """Tests for the status command."""

    @pytest.mark.asyncio
    async def test_status_json(self, capsys, monkeypatch):
        monkeypatch.setenv("TEMPOLINK_NODE_NAME", "studio-a")
        result = await cmd_status(Namespace(config=None, json=True, url=None))

        assert result == 0
        data = json.loads(capsys.readouterr().out)
        assert data["node"]["name"] == "studio-a"
        assert data["transport"]["initial_tempo"] == 120.0
        assert data["document"]["backend"] == "memory"
        assert "mqtt" not in data
        assert "remote" not in data

    @pytest.mark.asyncio
    async def test_status_text(self, capsys, monkeypatch):
        monkeypatch.setenv("TEMPOLINK_NODE_NAME", "studio-a")
        result = await cmd_status(Namespace(config=None, json=False, url=None))

        assert result == 0
        out = capsys.readouterr().out
        assert "Node: studio-a" in out
        assert "Document: memory" in out

    @pytest.mark.asyncio
    async def test_status_queries_remote_node(self, capsys, monkeypatch):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/transport"
            return httpx.Response(
                200,
                json={
                    "state": {"isPlaying": True, "tempo": 100.0},
                    "position": 12.5,
                },
            )

        _mock_http(monkeypatch, handler)

        result = await cmd_status(
            Namespace(config=None, json=False, url="http://node:8080/")
        )

        assert result == 0
        out = capsys.readouterr().out
        assert "Remote node http://node:8080/: playing at 12.50s, 100.0 BPM" in out

    @pytest.mark.asyncio
    async def test_status_reports_unreachable_node(self, capsys, monkeypatch):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        _mock_http(monkeypatch, handler)

        result = await cmd_status(
            Namespace(config=None, json=True, url="http://node:8080")
        )

        assert result == 0
        data = json.loads(capsys.readouterr().out)
        assert "connection refused" in data["remote"]["error"]


class TestMain:
    def test_no_command_prints_help(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["tempolink"])

        assert main() == 1
        assert "usage" in capsys.readouterr().out

    def test_invalid_config_returns_error(self, monkeypatch, capsys):
        monkeypatch.setenv("TEMPOLINK_DOCUMENT_BACKEND", "redis")
        monkeypatch.setattr(sys, "argv", ["tempolink", "status"])

        assert main() == 1
        assert "document.backend" in capsys.readouterr().err

    def test_status_uses_loaded_config(self, monkeypatch, capsys):
        monkeypatch.setenv("TEMPOLINK_NODE_NAME", "studio-b")
        monkeypatch.setattr(sys, "argv", ["tempolink", "status", "--json"])

        assert main() == 0
        assert json.loads(capsys.readouterr().out)["node"]["name"] == "studio-b"
