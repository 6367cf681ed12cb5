"""Replicated document carrying the shared transport state.

Provides a last-write-wins replica, in-process and MQTT replication, and the
binding that connects a replica to the transport engine.
"""

from .binding import TransportBinding
from .lww import LamportClock, LWWRegister, Stamp
from .shared_document import DocumentHub, DocumentUpdate, SharedDocument

__all__ = [
    "TransportBinding",
    "LamportClock",
    "LWWRegister",
    "Stamp",
    "DocumentHub",
    "DocumentUpdate",
    "SharedDocument",
]
