"""HTTP control API for a tempolink node."""

from .app import create_app

__all__ = ["create_app"]
