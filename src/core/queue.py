"""FIFO query queue and turn processing for one voice session.

Final transcripts become queries that are answered strictly one at a time,
in arrival order. Conversation history is read-modify-written per turn with
no other concurrency control, so the single-worker rule is what keeps it
consistent.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

from src.core.dispatcher import SynthesisDispatcher, TurnTiming
from src.core.session import ClientChannel, Query, VoiceSession, now_ms
from src.logging_config import get_logger, mask_session_id, preview
from src.observability.metrics import TURN_TOTAL
from src.services.history.protocol import HistoryStore
from src.services.llm.protocol import LLMService, Message, Role

logger: Any = get_logger(__name__)

DEFAULT_HISTORY_LIMIT = 200


class QueueState(Enum):
    """Worker state of a session's query queue."""

    IDLE = auto()
    PROCESSING = auto()
    CLOSED = auto()


@dataclass(frozen=True, slots=True)
class TurnResult:
    """Reply text plus the history that was persisted for the turn."""

    reply: str
    history: list[Message]


def cap_history(messages: list[Message], limit: int) -> list[Message]:
    """Keep only the most recent ``limit`` messages."""
    if limit <= 0:
        return []
    return messages[-limit:]


class TurnProcessor:
    """Answers one query: history → model → client text → detached synthesis → history."""

    def __init__(
        self,
        session: VoiceSession,
        channel: ClientChannel,
        llm: LLMService,
        history: HistoryStore,
        dispatcher: SynthesisDispatcher,
        *,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self._session = session
        self._channel = channel
        self._llm = llm
        self._history = history
        self._dispatcher = dispatcher
        self._history_limit = history_limit

    async def process(self, query: Query) -> TurnResult | None:
        """Run one turn. Errors are reported to the client; never raised.

        Returns None when the turn was aborted before a reply was produced.
        """
        session_id = self._session.session_id
        logger.info(f"Turn for session {mask_session_id(session_id)}: '{preview(query.text)}'")

        try:
            prior = await self._history.load(session_id)
            messages = [*prior, Message(role=Role.USER, content=query.text)]

            llm_start_at = now_ms()
            reply = await self._llm.complete(messages)
            llm_end_at = now_ms()
        except Exception as e:
            TURN_TOTAL.labels(outcome="error").inc()
            logger.error(f"Turn failed for session {mask_session_id(session_id)}: {e}")
            await self._channel.send_error(str(e) or type(e).__name__)
            return None

        reply = reply or ""
        await self._channel.send_json({"type": "assistant", "text": reply})

        speak_text = reply.strip()
        if speak_text:
            self._dispatcher.dispatch(
                speak_text,
                TurnTiming(
                    query=query.text,
                    final_received_at=query.received_at,
                    llm_start_at=llm_start_at,
                    llm_end_at=llm_end_at,
                ),
            )

        updated = cap_history(
            [*messages, Message(role=Role.ASSISTANT, content=reply)],
            self._history_limit,
        )
        try:
            await self._history.save(session_id, updated)
        except Exception as e:
            logger.error(f"Failed to save history for session {mask_session_id(session_id)}: {e}")
            await self._channel.send_error(f"Failed to save history: {e}")

        TURN_TOTAL.labels(outcome="replied" if speak_text else "empty").inc()
        return TurnResult(reply=reply, history=updated)


class QueryQueue:
    """Single-consumer FIFO of finalized queries.

    ``enqueue_final`` starts a worker when idle; the worker keeps draining
    until the queue is empty. A second worker never starts while one is in
    flight.
    """

    def __init__(self, session: VoiceSession, processor: TurnProcessor) -> None:
        self._session = session
        self._processor = processor
        self._worker: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def state(self) -> QueueState:
        if self._closed:
            return QueueState.CLOSED
        if self._session.in_flight:
            return QueueState.PROCESSING
        return QueueState.IDLE

    @property
    def pending(self) -> list[str]:
        return [q.text for q in self._session.pending]

    def enqueue_final(self, text: str, *, received_at: float | None = None) -> bool:
        """Queue a final transcript. Empty or whitespace-only text is ignored."""
        query_text = (text or "").strip()
        if not query_text or self._closed:
            return False

        if received_at is None:
            received_at = self._session.last_final_at or now_ms()
        self._session.pending.append(Query(text=query_text, received_at=received_at))

        if not self._session.in_flight:
            self._session.in_flight = True
            self._worker = asyncio.create_task(
                self._drain(), name=f"turns-{self._session.session_id}"
            )
        return True

    def clear(self) -> int:
        """Drop pending queries. A turn already running is left to finish."""
        dropped = len(self._session.pending)
        self._session.pending.clear()
        return dropped

    def close(self) -> None:
        """Stop accepting queries and discard what is pending."""
        self._closed = True
        self.clear()

    async def wait_idle(self) -> None:
        """Wait until the current worker (if any) has drained the queue."""
        while self._worker is not None and not self._worker.done():
            await asyncio.shield(self._worker)

    async def _drain(self) -> None:
        try:
            while self._session.pending and not self._closed:
                query = self._session.pending.popleft()
                await self._processor.process(query)
        finally:
            self._session.in_flight = False
