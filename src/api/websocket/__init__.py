"""WebSocket handlers for real-time voice sessions.

This module provides the browser voice endpoint:
- realtime_endpoint: Main WebSocket handler
- RealtimeSessionHandler: Per-connection session state machine
"""

from src.api.websocket.realtime import (
    RealtimeSessionHandler,
    parse_control_frame,
    realtime_endpoint,
)

__all__ = [
    "realtime_endpoint",
    "RealtimeSessionHandler",
    "parse_control_frame",
]
