"""Detached speech synthesis for assistant replies."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from src.core.session import ClientChannel, VoiceSession, now_ms
from src.logging_config import get_logger, mask_session_id, preview
from src.observability.latency import LatencyRecord, LatencySink
from src.observability.metrics import TTS_FAILURES
from src.services.tts.protocol import TTSService

logger: Any = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class TurnTiming:
    """Timestamps (epoch ms) of the turn that produced a reply."""

    query: str
    final_received_at: float
    llm_start_at: float
    llm_end_at: float


class SynthesisDispatcher:
    """Runs one synthesis task per reply without blocking the query queue.

    Tasks for different turns may overlap and finish in any order; each
    writes its audio as a single binary frame when ready.
    """

    def __init__(
        self,
        session: VoiceSession,
        channel: ClientChannel,
        tts: TTSService,
        latency: LatencySink,
    ) -> None:
        self._session = session
        self._channel = channel
        self._tts = tts
        self._latency = latency
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def dispatch(self, text: str, timing: TurnTiming) -> asyncio.Task[None]:
        task = asyncio.create_task(
            self._synthesize(text, timing),
            name=f"tts-{self._session.session_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every dispatched synthesis to finish."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _synthesize(self, text: str, timing: TurnTiming) -> None:
        session_id = self._session.session_id
        self._latency.record(
            LatencyRecord.build(
                session_id=session_id,
                query=timing.query,
                final_received_at=timing.final_received_at,
                llm_start_at=timing.llm_start_at,
                llm_end_at=timing.llm_end_at,
                tts_start_at=now_ms(),
            )
        )

        try:
            audio = await self._tts.synthesize(text)
        except Exception as e:
            TTS_FAILURES.inc()
            logger.error(f"TTS failed for session {mask_session_id(session_id)}: {e}")
            await self._channel.send_error(f"TTS failed: {e}")
            return

        if audio and await self._channel.send_bytes(audio):
            logger.debug(f"Sent {len(audio)} bytes of audio for '{preview(text)}'")
