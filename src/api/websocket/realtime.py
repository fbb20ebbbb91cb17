"""WebSocket handler for browser voice sessions.

Protocol:
- Receives JSON control messages: {"type": "start", "session_id"}, {"type": "stop"}
- Receives binary frames of mono linear16 PCM audio
- Sends JSON events: hello, ready, interim, final, assistant, stopped, error
- Sends one binary frame of synthesized audio per reply
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from src.config import Settings, get_settings
from src.core.capabilities import Capabilities
from src.core.dispatcher import SynthesisDispatcher
from src.core.queue import QueryQueue, TurnProcessor
from src.core.session import ClientChannel, SessionState, VoiceSession, new_session_id
from src.logging_config import get_logger, mask_session_id, preview
from src.observability.metrics import ACTIVE_SESSIONS
from src.services.stt.protocol import Final, Interim, SpeechError, UtteranceEnd

logger: Any = get_logger(__name__)

# Control frames start with '{' or '['; anything else is audio and never JSON-parsed
CONTROL_FRAME_PREFIXES = frozenset(b"{[")


def parse_control_frame(data: bytes) -> Any | None:
    """Decode a binary frame as a control message, or return None for audio."""
    if not data or data[0] not in CONTROL_FRAME_PREFIXES:
        return None
    try:
        return json.loads(data)
    except ValueError:
        return None


class RealtimeSessionHandler:
    """State machine for one client connection: New → Awaiting-Start → Active → Closed."""

    def __init__(
        self,
        websocket: WebSocket,
        capabilities: Capabilities,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._websocket = websocket
        self.session = VoiceSession()
        self.channel = ClientChannel(websocket)
        self.speech = capabilities.speech_factory()
        self.dispatcher = SynthesisDispatcher(
            self.session, self.channel, capabilities.tts, capabilities.latency
        )
        self.processor = TurnProcessor(
            self.session,
            self.channel,
            capabilities.llm,
            capabilities.history,
            self.dispatcher,
            history_limit=settings.history_max_messages,
        )
        self.queue = QueryQueue(self.session, self.processor)
        self._transcript_task: asyncio.Task[None] | None = None

    async def run(self) -> None:
        """Serve the connection until the client goes away."""
        await self._websocket.accept()
        ACTIVE_SESSIONS.inc()
        logger.info("Voice WebSocket connected")

        try:
            await self.open()

            while True:
                message = await self._websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                await self.handle_frame(text=message.get("text"), data=message.get("bytes"))

        except WebSocketDisconnect:
            pass

        except Exception as e:
            logger.error(f"WebSocket error for session {mask_session_id(self.session.session_id)}: {e}")

        finally:
            await self.shutdown()
            ACTIVE_SESSIONS.dec()

    async def open(self) -> None:
        """Greet the client and start relaying transcript events."""
        self.session.state = SessionState.AWAITING_START
        await self.channel.send_json({"type": "hello", "message": "ws_connected"})
        self._transcript_task = asyncio.create_task(
            self._consume_transcripts(), name="transcripts"
        )

    async def handle_frame(self, *, text: str | None = None, data: bytes | None = None) -> None:
        """Route one inbound frame to control handling or the audio path."""
        if data is not None:
            control = parse_control_frame(data)
            if control is None:
                await self._on_audio(data)
                return
        elif text is not None:
            try:
                control = json.loads(text)
            except ValueError:
                logger.warning("Malformed control message received")
                await self.channel.send_error("Malformed control message")
                return
        else:
            return

        await self._on_control(control)

    async def _on_control(self, message: Any) -> None:
        if not isinstance(message, dict):
            await self.channel.send_error("Malformed control message")
            return

        kind = message.get("type")
        if kind == "start":
            await self._start(message.get("session_id"))
        elif kind == "stop":
            await self._stop()
        else:
            await self.channel.send_error(f"Unknown control message: {kind}")

    async def _start(self, session_id: Any) -> None:
        if self.session.state == SessionState.CLOSED:
            return
        if self.session.is_active:
            # The active session keeps its id until stop
            await self.channel.send_error("Session already started")
            return

        self.session.session_id = str(session_id).strip() if session_id else new_session_id()
        masked = mask_session_id(self.session.session_id)

        if not await self.speech.connect():
            # The speech socket has already published an error event
            logger.warning(f"Speech recognition unavailable for session {masked}")
            return

        self.session.state = SessionState.ACTIVE
        logger.info(f"Session {masked} started")
        await self.channel.send_json({"type": "ready"})

    async def _stop(self) -> None:
        await self.speech.disconnect()
        dropped = self.queue.clear()
        self.session.reset_transcripts()
        if self.session.state != SessionState.CLOSED:
            self.session.state = SessionState.AWAITING_START

        logger.info(
            f"Session {mask_session_id(self.session.session_id)} stopped "
            f"({dropped} pending queries dropped)"
        )
        await self.channel.send_json({"type": "stopped"})

    async def _on_audio(self, data: bytes) -> None:
        if not self.session.is_active:
            return
        await self.speech.send_audio(data)

    async def _consume_transcripts(self) -> None:
        async for event in self.speech.events():
            if isinstance(event, SpeechError):
                await self.channel.send_error(event.message)
                continue

            if not self.session.is_active:
                continue

            if isinstance(event, Interim):
                self.session.record_interim(event.text)
                await self.channel.send_json({"type": "interim", "text": event.text})

            elif isinstance(event, Final):
                received_at = self.session.record_final(event.text)
                logger.debug(f"Final transcript: '{preview(event.text)}'")
                await self.channel.send_json({"type": "final", "text": event.text})
                self.queue.enqueue_final(event.text, received_at=received_at)

            elif isinstance(event, UtteranceEnd):
                logger.debug("Utterance end")

    async def shutdown(self) -> None:
        """Release the session: speech socket, queue and transcript consumer."""
        self.session.state = SessionState.CLOSED
        self.queue.close()
        self.channel.mark_closed()

        try:
            await self.speech.close()
        except Exception as e:
            logger.error(f"Error closing speech socket: {e}")
        finally:
            if self._transcript_task is not None:
                self._transcript_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._transcript_task

        logger.info(f"Session {mask_session_id(self.session.session_id)} closed")


async def realtime_endpoint(
    websocket: WebSocket,
    capabilities: Capabilities,
    settings: Settings | None = None,
) -> None:
    """Handle one browser voice WebSocket connection."""
    handler = RealtimeSessionHandler(websocket, capabilities, settings=settings)
    await handler.run()
