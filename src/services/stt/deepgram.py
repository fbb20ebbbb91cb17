"""Deepgram live transcription over a raw WebSocket.

One DeepgramSocket is created per client session. It owns the upstream
connection (connect, keepalive, reconnect-once on send failure, teardown)
and publishes classified transcript events on an async channel.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed

from src.config import Settings, get_settings
from src.logging_config import get_logger
from src.observability.metrics import STT_RECONNECTS
from src.services.stt.exceptions import STTConnectionError
from src.services.stt.protocol import (
    Final,
    Interim,
    SpeechError,
    TranscriptEvent,
    UtteranceEnd,
)

logger: Any = get_logger(__name__)

DEEPGRAM_LISTEN_URL = "wss://api.deepgram.com/v1/listen"
KEEPALIVE_MESSAGE = json.dumps({"type": "KeepAlive"})
MAX_MESSAGE_BYTES = 2**23

CONNECT_FAILED_MESSAGE = "Speech recognition connect failed; will retry on next audio chunk"


def build_listen_url(settings: Settings) -> str:
    """Build the Deepgram listen URL from settings."""
    params = {
        "model": settings.deepgram_model,
        "interim_results": "true",
        "punctuate": "true",
        "vad_events": "true",
        "endpointing": settings.deepgram_endpointing_ms,
        "encoding": "linear16",
        "sample_rate": settings.audio_sample_rate,
        "channels": 1,
        "smart_format": "true",
        "language": settings.deepgram_language,
    }
    return f"{DEEPGRAM_LISTEN_URL}?{urlencode(params)}"


def parse_transcript_events(raw: str | bytes) -> list[TranscriptEvent]:
    """Classify one upstream message into transcript events.

    A transcript alternative yields Interim or Final depending on ``is_final``.
    A message that is both ``is_final`` and ``speech_final``, or an explicit
    ``UtteranceEnd`` message, additionally yields UtteranceEnd. Unparseable
    messages are logged and yield nothing.
    """
    try:
        parsed = json.loads(raw)
    except ValueError as e:
        logger.warning(f"Unparseable Deepgram message: {e}")
        return []

    if not isinstance(parsed, dict):
        return []

    events: list[TranscriptEvent] = []
    channel = parsed.get("channel")

    if isinstance(channel, dict) and isinstance(channel.get("alternatives"), list):
        alternatives = channel["alternatives"]
        alternative = alternatives[0] if alternatives and isinstance(alternatives[0], dict) else {}
        transcript = alternative.get("transcript")
        if not isinstance(transcript, str):
            transcript = ""
        is_final = bool(parsed.get("is_final"))

        if transcript:
            if not is_final:
                events.append(Interim(transcript))
            elif transcript.strip():
                events.append(Final(transcript))

        if is_final and parsed.get("speech_final") is True and transcript.strip():
            events.append(UtteranceEnd(parsed))
        return events

    if parsed.get("type") == "UtteranceEnd":
        events.append(UtteranceEnd(parsed))

    return events


class DeepgramSocket:
    """Per-session Deepgram live socket with lazy connect and keepalive.

    Concurrent ``connect()`` calls share the single in-flight attempt, and
    audio frames never wait on one: while a connect or retry is in flight
    they are dropped, so a burst of frames opens at most one upstream
    connection and reports at most one error per failed attempt.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        keepalive_interval: float | None = None,
        reconnect_delay: float | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._url = build_listen_url(self._settings)
        self._keepalive_interval = (
            keepalive_interval
            if keepalive_interval is not None
            else self._settings.stt_keepalive_seconds
        )
        self._reconnect_delay = (
            reconnect_delay
            if reconnect_delay is not None
            else self._settings.stt_reconnect_delay_seconds
        )

        self._ws: Any = None
        self._connect_task: asyncio.Task[bool] | None = None
        self._retry_task: asyncio.Task[None] | None = None
        self._last_connect_failure: float | None = None
        self._receive_task: asyncio.Task[None] | None = None
        self._keepalive_task: asyncio.Task[None] | None = None
        self._epoch = 0
        self._closed = False
        self._events: asyncio.Queue[TranscriptEvent | None] = asyncio.Queue()

    @property
    def url(self) -> str:
        return self._url

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def events(self) -> AsyncIterator[TranscriptEvent]:
        """Yield transcript events until ``close()`` is called."""
        while True:
            event = await self._events.get()
            if event is None:
                return
            yield event

    async def connect(self) -> bool:
        """Open the upstream socket if absent.

        Returns True once connected, False if the attempt failed (an error
        event is published; callers retry lazily on the next audio frame).
        """
        if self._ws is not None:
            return True
        if self._closed:
            return False

        if self._connect_task is None:
            task = asyncio.create_task(self._open(self._epoch), name="deepgram-connect")
            task.add_done_callback(self._on_connect_done)
            self._connect_task = task

        return await asyncio.shield(self._connect_task)

    def _on_connect_done(self, task: asyncio.Task[bool]) -> None:
        if self._connect_task is task:
            self._connect_task = None

    async def _dial(self) -> Any:
        try:
            return await websockets.connect(
                self._url,
                additional_headers={
                    "Authorization": f"Token {self._settings.deepgram_api_key.get_secret_value()}"
                },
                open_timeout=self._settings.stt_connect_timeout_seconds,
                max_size=MAX_MESSAGE_BYTES,
            )
        except Exception as e:
            raise STTConnectionError(f"Failed to connect to Deepgram: {e}") from e

    async def _open(self, epoch: int) -> bool:
        try:
            ws = await self._dial()
        except STTConnectionError as e:
            logger.warning(str(e))
            self._last_connect_failure = asyncio.get_running_loop().time()
            self._emit(SpeechError(CONNECT_FAILED_MESSAGE))
            return False

        # A disconnect/close raced the dial; do not adopt the new socket
        if self._closed or epoch != self._epoch:
            await self._close_quietly(ws)
            return False

        self._ws = ws
        self._receive_task = asyncio.create_task(
            self._receive_loop(ws), name="deepgram-receive"
        )
        self._keepalive_task = asyncio.create_task(
            self._keepalive_loop(ws), name="deepgram-keepalive"
        )
        logger.debug("Deepgram WebSocket connected")
        return True

    async def _receive_loop(self, ws: Any) -> None:
        try:
            async for message in ws:
                for event in parse_transcript_events(message):
                    self._emit(event)
        except ConnectionClosed as e:
            logger.warning(f"Deepgram stream closed abnormally: {e}")
            self._emit(SpeechError(f"Speech recognition stream error: {e}"))
        except Exception as e:
            logger.error(f"Deepgram receive loop failed: {e}")
            self._emit(SpeechError(f"Speech recognition stream error: {e}"))
        finally:
            if self._ws is ws:
                self._ws = None
                self._cancel_keepalive()
                await self._close_quietly(ws)
            logger.debug("Deepgram WebSocket closed")

    async def _keepalive_loop(self, ws: Any) -> None:
        while True:
            await asyncio.sleep(self._keepalive_interval)
            try:
                await ws.send(KEEPALIVE_MESSAGE)
            except ConnectionClosed:
                return

    async def send_audio(self, audio: bytes) -> bool:
        """Forward audio upstream without waiting on a connection attempt.

        Returns True only when the frame was written to a live socket. With no
        socket, the frame starts a background (re)connect and is delivered once
        it opens; frames arriving while an attempt is in flight are dropped. On
        a send failure the broken socket is torn down, and after a short pause
        the frame is retried once on a fresh connection.
        """
        if self._closed:
            return False

        ws = self._ws
        if ws is None:
            if not self.reconnecting:
                self._schedule_retry(audio, self._backoff_remaining())
            return False

        try:
            await ws.send(audio)
            return True
        except Exception as e:
            logger.warning(f"Deepgram send failed, reconnecting: {e}")

        await self._teardown()
        STT_RECONNECTS.inc()
        if not self.reconnecting:
            self._schedule_retry(audio, self._reconnect_delay)
        return False

    @property
    def reconnecting(self) -> bool:
        """True while a connect or a deferred retry is in flight."""
        return self._connect_task is not None or self._retry_task is not None

    def _schedule_retry(self, audio: bytes, delay: float) -> None:
        task = asyncio.create_task(
            self._retry(audio, delay, self._epoch), name="deepgram-retry"
        )
        task.add_done_callback(self._on_retry_done)
        self._retry_task = task

    def _on_retry_done(self, task: asyncio.Task[None]) -> None:
        if self._retry_task is task:
            self._retry_task = None

    def _backoff_remaining(self) -> float:
        if self._last_connect_failure is None:
            return 0.0
        elapsed = asyncio.get_running_loop().time() - self._last_connect_failure
        return max(0.0, self._reconnect_delay - elapsed)

    async def _retry(self, audio: bytes, delay: float, epoch: int) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        if self._closed or epoch != self._epoch:
            return
        if not await self.connect() or self._ws is None:
            return

        ws = self._ws
        try:
            await ws.send(audio)
        except Exception as e:
            logger.warning(f"Deepgram retry send failed, dropping frame: {e}")
            self._emit(SpeechError(f"Speech recognition send failed: {e}"))
            if self._ws is ws:
                await self._teardown()

    async def disconnect(self) -> None:
        """Close the upstream socket and cancel any pending retry. Idempotent."""
        self._epoch += 1
        if self._retry_task is not None:
            self._retry_task.cancel()
            self._retry_task = None
        await self._teardown()

    async def close(self) -> None:
        """Disconnect and end the event channel."""
        self._closed = True
        await self.disconnect()
        self._events.put_nowait(None)

    async def _teardown(self) -> None:
        ws, self._ws = self._ws, None
        self._cancel_keepalive()
        if self._receive_task is not None:
            self._receive_task.cancel()
            self._receive_task = None
        if ws is not None:
            await self._close_quietly(ws)

    def _cancel_keepalive(self) -> None:
        if self._keepalive_task is not None:
            self._keepalive_task.cancel()
            self._keepalive_task = None

    async def _close_quietly(self, ws: Any) -> None:
        try:
            await ws.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing Deepgram socket: {e}")

    def _emit(self, event: TranscriptEvent) -> None:
        if not self._closed:
            self._events.put_nowait(event)
