"""Tests for the per-session query queue and turn processor."""

from __future__ import annotations

import asyncio

import pytest

from src.core.dispatcher import SynthesisDispatcher
from src.core.queue import (
    DEFAULT_HISTORY_LIMIT,
    QueryQueue,
    QueueState,
    TurnProcessor,
    cap_history,
)
from src.core.session import ClientChannel, Query, SessionState, VoiceSession
from src.services.history.exceptions import HistoryStoreError
from src.services.llm.protocol import Message, Role


@pytest.fixture
def session() -> VoiceSession:
    return VoiceSession(session_id="s1", state=SessionState.ACTIVE)


@pytest.fixture
def channel(client_socket) -> ClientChannel:
    return ClientChannel(client_socket)


@pytest.fixture
def dispatcher(session, channel, fake_tts, fake_latency) -> SynthesisDispatcher:
    return SynthesisDispatcher(session, channel, fake_tts, fake_latency)


@pytest.fixture
def processor(session, channel, fake_llm, fake_history, dispatcher) -> TurnProcessor:
    return TurnProcessor(session, channel, fake_llm, fake_history, dispatcher)


@pytest.fixture
def queue(session, processor) -> QueryQueue:
    return QueryQueue(session, processor)


class TestCapHistory:
    """Tests for history capping."""

    def test_keeps_most_recent(self) -> None:
        messages = [Message(role=Role.USER, content=str(i)) for i in range(10)]
        capped = cap_history(messages, 3)
        assert [m.content for m in capped] == ["7", "8", "9"]

    def test_short_history_unchanged(self) -> None:
        messages = [Message(role=Role.USER, content="hi")]
        assert cap_history(messages, DEFAULT_HISTORY_LIMIT) == messages

    def test_non_positive_limit(self) -> None:
        messages = [Message(role=Role.USER, content="hi")]
        assert cap_history(messages, 0) == []


class TestTurnProcessor:
    """Tests for a single turn."""

    @pytest.mark.asyncio
    async def test_turn_sends_reply_and_persists(
        self, processor, fake_llm, fake_history, client_socket, dispatcher
    ) -> None:
        """A turn emits assistant text, dispatches audio and saves history."""
        fake_llm.replies = ["Sure, what time?"]

        result = await processor.process(Query(text="book a table for two", received_at=1000.0))
        await dispatcher.wait_idle()

        assert result is not None
        assert result.reply == "Sure, what time?"
        assert client_socket.events_of("assistant") == [
            {"type": "assistant", "text": "Sure, what time?"}
        ]
        assert client_socket.audio() == [b"audio:Sure, what time?"]

        _, saved = fake_history.saves[-1]
        assert [(m.role, m.content) for m in saved] == [
            (Role.USER, "book a table for two"),
            (Role.ASSISTANT, "Sure, what time?"),
        ]

    @pytest.mark.asyncio
    async def test_turn_includes_prior_history(self, processor, fake_llm, fake_history) -> None:
        fake_history.store["s1"] = [
            Message(role=Role.USER, content="hello"),
            Message(role=Role.ASSISTANT, content="hi there"),
        ]

        await processor.process(Query(text="how are you", received_at=0.0))

        sent = fake_llm.calls[0]
        assert [m.content for m in sent] == ["hello", "hi there", "how are you"]

    @pytest.mark.asyncio
    async def test_empty_reply_skips_synthesis(
        self, processor, fake_llm, fake_tts, fake_history, client_socket
    ) -> None:
        """Whitespace-only replies are shown but never synthesized."""
        fake_llm.replies = ["   "]

        result = await processor.process(Query(text="hmm", received_at=0.0))

        assert result is not None
        assert client_socket.events_of("assistant") == [{"type": "assistant", "text": "   "}]
        assert fake_tts.texts == []
        assert len(fake_history.saves) == 1

    @pytest.mark.asyncio
    async def test_model_failure_reports_error(
        self, processor, fake_llm, fake_history, client_socket
    ) -> None:
        fake_llm.replies = [RuntimeError("model down")]

        result = await processor.process(Query(text="hello", received_at=0.0))

        assert result is None
        assert client_socket.events_of("error") == [{"type": "error", "message": "model down"}]
        assert client_socket.events_of("assistant") == []
        assert fake_history.saves == []

    @pytest.mark.asyncio
    async def test_history_load_failure_aborts_turn(
        self, processor, fake_llm, fake_history, client_socket
    ) -> None:
        fake_history.load_error = HistoryStoreError("redis unavailable")

        result = await processor.process(Query(text="hello", received_at=0.0))

        assert result is None
        assert fake_llm.calls == []
        assert client_socket.events_of("error")[0]["message"] == "redis unavailable"

    @pytest.mark.asyncio
    async def test_history_save_failure_keeps_reply(
        self, processor, fake_history, client_socket, dispatcher
    ) -> None:
        """The reply is still delivered when history cannot be written."""
        fake_history.save_error = HistoryStoreError("redis unavailable")

        result = await processor.process(Query(text="hello", received_at=0.0))
        await dispatcher.wait_idle()

        assert result is not None
        assert client_socket.events_of("assistant") == [
            {"type": "assistant", "text": "reply to hello"}
        ]
        assert "redis unavailable" in client_socket.events_of("error")[0]["message"]
        assert client_socket.audio() == [b"audio:reply to hello"]

    @pytest.mark.asyncio
    async def test_persisted_history_is_capped(
        self, processor, fake_history
    ) -> None:
        """Stored history never exceeds the limit however long the session."""
        fake_history.store["s1"] = [
            Message(role=Role.USER if i % 2 == 0 else Role.ASSISTANT, content=f"m{i}")
            for i in range(250)
        ]

        result = await processor.process(Query(text="latest", received_at=0.0))

        assert result is not None
        _, saved = fake_history.saves[-1]
        assert len(saved) == DEFAULT_HISTORY_LIMIT
        assert saved[-2] == Message(role=Role.USER, content="latest")
        assert saved[-1] == Message(role=Role.ASSISTANT, content="reply to latest")

    @pytest.mark.asyncio
    async def test_custom_history_limit(
        self, session, channel, fake_llm, fake_history, dispatcher
    ) -> None:
        processor = TurnProcessor(
            session, channel, fake_llm, fake_history, dispatcher, history_limit=4
        )
        for i in range(5):
            await processor.process(Query(text=f"q{i}", received_at=0.0))

        _, saved = fake_history.saves[-1]
        assert [m.content for m in saved] == ["q3", "reply to q3", "q4", "reply to q4"]


class TestQueryQueue:
    """Tests for FIFO admission and the single worker."""

    @pytest.mark.asyncio
    async def test_empty_final_not_enqueued(self, queue, fake_llm) -> None:
        assert queue.enqueue_final("") is False
        assert queue.enqueue_final("   \n\t") is False

        await queue.wait_idle()
        assert queue.pending == []
        assert queue.state == QueueState.IDLE
        assert fake_llm.calls == []

    @pytest.mark.asyncio
    async def test_text_is_trimmed(self, queue, fake_llm) -> None:
        assert queue.enqueue_final("  hello  ") is True
        await queue.wait_idle()
        assert fake_llm.queries == ["hello"]

    @pytest.mark.asyncio
    async def test_back_to_back_finals_processed_in_order(
        self, queue, fake_llm, client_socket, dispatcher
    ) -> None:
        """Two finals before the first reply are answered in arrival order."""
        gate = asyncio.Event()
        fake_llm.gates["hello"] = gate

        queue.enqueue_final("hello")
        queue.enqueue_final("how are you")
        await asyncio.sleep(0)

        assert queue.state == QueueState.PROCESSING
        assert queue.pending == ["how are you"]
        assert fake_llm.queries == ["hello"]

        gate.set()
        await queue.wait_idle()
        await dispatcher.wait_idle()

        assert fake_llm.queries == ["hello", "how are you"]
        assert [e["text"] for e in client_socket.events_of("assistant")] == [
            "reply to hello",
            "reply to how are you",
        ]
        assert queue.state == QueueState.IDLE

    @pytest.mark.asyncio
    async def test_single_turn_in_flight(self, queue, fake_llm, wait_until) -> None:
        gates = {text: asyncio.Event() for text in ("a", "b", "c")}
        fake_llm.gates.update(gates)

        for text in ("a", "b", "c"):
            queue.enqueue_final(text)

        for text in ("a", "b", "c"):
            await wait_until(lambda t=text: fake_llm.queries[-1:] == [t])
            assert fake_llm.active == 1
            gates[text].set()

        await queue.wait_idle()
        assert fake_llm.max_active == 1
        assert fake_llm.queries == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_order_independent_of_synthesis(
        self, queue, fake_llm, fake_tts, client_socket, dispatcher
    ) -> None:
        """A stalled synthesis never holds back the next model call."""
        tts_gate = asyncio.Event()
        fake_tts.gates["reply to first"] = tts_gate

        queue.enqueue_final("first")
        queue.enqueue_final("second")
        await queue.wait_idle()

        assert fake_llm.queries == ["first", "second"]
        assert dispatcher.in_flight >= 1

        await asyncio.sleep(0.01)
        assert client_socket.audio() == [b"audio:reply to second"]

        tts_gate.set()
        await dispatcher.wait_idle()
        assert client_socket.audio() == [b"audio:reply to second", b"audio:reply to first"]

    @pytest.mark.asyncio
    async def test_failed_turn_does_not_stall_queue(
        self, queue, fake_llm, client_socket
    ) -> None:
        fake_llm.replies = [RuntimeError("model down"), "Recovered"]

        queue.enqueue_final("first")
        await queue.wait_idle()
        assert client_socket.events_of("error") == [{"type": "error", "message": "model down"}]
        assert queue.state == QueueState.IDLE

        queue.enqueue_final("second")
        await queue.wait_idle()
        assert client_socket.events_of("assistant") == [{"type": "assistant", "text": "Recovered"}]

    @pytest.mark.asyncio
    async def test_received_at_defaults_to_last_final(self, queue, session, fake_latency, dispatcher) -> None:
        session.last_final_at = 1234.0
        queue.enqueue_final("hello")
        await queue.wait_idle()
        await dispatcher.wait_idle()

        assert fake_latency.records[0].final_received_at == 1234.0

    @pytest.mark.asyncio
    async def test_clear_drops_pending_only(self, queue, fake_llm) -> None:
        """Clearing leaves the running turn to finish and discards the rest."""
        gate = asyncio.Event()
        fake_llm.gates["a"] = gate

        queue.enqueue_final("a")
        queue.enqueue_final("b")
        queue.enqueue_final("c")
        await asyncio.sleep(0)

        assert queue.clear() == 2
        assert queue.pending == []

        gate.set()
        await queue.wait_idle()
        assert fake_llm.queries == ["a"]

    @pytest.mark.asyncio
    async def test_closed_queue_rejects_queries(self, queue, fake_llm) -> None:
        queue.close()

        assert queue.state == QueueState.CLOSED
        assert queue.enqueue_final("hello") is False
        await queue.wait_idle()
        assert fake_llm.calls == []

    @pytest.mark.asyncio
    async def test_close_stops_worker_after_current_turn(self, queue, fake_llm) -> None:
        gate = asyncio.Event()
        fake_llm.gates["a"] = gate

        queue.enqueue_final("a")
        queue.enqueue_final("b")
        await asyncio.sleep(0)

        queue.close()
        gate.set()
        await queue.wait_idle()

        assert fake_llm.queries == ["a"]
