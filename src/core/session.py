"""Per-connection voice session state and the client write path."""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, auto
from typing import Any, Protocol

from src.logging_config import get_logger

logger: Any = get_logger(__name__)


def now_ms() -> float:
    """Current wall-clock time in epoch milliseconds."""
    return time.time() * 1000


def new_session_id() -> str:
    return uuid.uuid4().hex


class SessionState(Enum):
    """Lifecycle of one client connection."""

    NEW = auto()  # Socket accepted, hello not yet sent
    AWAITING_START = auto()  # Waiting for a start control message
    ACTIVE = auto()  # Streaming audio to speech recognition
    CLOSED = auto()  # Client disconnected


@dataclass(frozen=True, slots=True)
class Query:
    """A finalized, trimmed user utterance waiting for its turn."""

    text: str
    received_at: float  # epoch ms when the final transcript arrived


@dataclass
class VoiceSession:
    """Mutable state for one connection.

    Owned by the protocol handler and shared by reference with the query
    queue and synthesis dispatcher. Only touched from the connection's own
    event-loop tasks, so no locking is needed.
    """

    session_id: str = field(default_factory=new_session_id)
    state: SessionState = SessionState.NEW

    # Transcript buffers
    last_interim: str = ""
    last_final: str = ""
    last_final_at: float | None = None

    # Turn queue
    pending: deque[Query] = field(default_factory=deque)
    in_flight: bool = False

    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE

    def record_interim(self, text: str) -> None:
        self.last_interim = text

    def record_final(self, text: str) -> float:
        """Store a final transcript and return its arrival time (epoch ms)."""
        self.last_final = text
        self.last_interim = ""
        self.last_final_at = now_ms()
        return self.last_final_at

    def reset_transcripts(self) -> None:
        self.last_interim = ""
        self.last_final = ""
        self.last_final_at = None


class ClientSocket(Protocol):
    """The subset of a Starlette WebSocket the channel writes through."""

    async def send_text(self, data: str) -> None: ...

    async def send_bytes(self, data: bytes) -> None: ...


class ClientChannel:
    """Single write path to the client socket.

    Turn results and detached synthesis tasks write concurrently; every frame
    goes through one lock so writes never interleave. Once the client is gone
    sends are dropped silently.
    """

    def __init__(self, websocket: ClientSocket) -> None:
        self._websocket = websocket
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def mark_closed(self) -> None:
        self._closed = True

    async def send_json(self, payload: dict[str, Any]) -> bool:
        return await self._send(self._websocket.send_text, json.dumps(payload))

    async def send_bytes(self, data: bytes) -> bool:
        return await self._send(self._websocket.send_bytes, data)

    async def send_error(self, message: str) -> bool:
        return await self.send_json({"type": "error", "message": message})

    async def _send(self, send: Any, data: str | bytes) -> bool:
        if self._closed:
            return False
        async with self._lock:
            if self._closed:
                return False
            try:
                await send(data)
                return True
            except Exception as e:
                logger.debug(f"Dropping frame for closed client: {e}")
                self._closed = True
                return False
