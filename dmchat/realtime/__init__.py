"""
Realtime Package

This package contains the real-time typing channel of the chat service.

Modules:
- registry: ConnectionRegistry mapping each user to one live channel
- relay: TypingRelay routing typing events to the other participant
- lifecycle: per-connection state machine (connecting -> awaiting init -> active -> closed)
- events: wire format and parsing of client frames
- channel: non-blocking WebSocket push handle
- ws: WebSocket endpoint and status route (imported by the application factory)
"""

from .registry import ConnectionEntry, ConnectionRegistry
from .relay import TypingRelay

__all__ = [
    "ConnectionEntry",
    "ConnectionRegistry",
    "TypingRelay",
]
