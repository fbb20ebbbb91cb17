"""Tests for detached speech synthesis."""

from __future__ import annotations

import asyncio

import pytest

from src.core.dispatcher import SynthesisDispatcher, TurnTiming
from src.core.session import ClientChannel, VoiceSession
from src.services.tts.exceptions import TTSConnectionError


@pytest.fixture
def session() -> VoiceSession:
    return VoiceSession(session_id="s1")


@pytest.fixture
def channel(client_socket) -> ClientChannel:
    return ClientChannel(client_socket)


@pytest.fixture
def dispatcher(session, channel, fake_tts, fake_latency) -> SynthesisDispatcher:
    return SynthesisDispatcher(session, channel, fake_tts, fake_latency)


def _timing(query: str = "hello") -> TurnTiming:
    return TurnTiming(
        query=query,
        final_received_at=1000.0,
        llm_start_at=1010.0,
        llm_end_at=1500.0,
    )


class TestSynthesisDispatcher:
    """Tests for SynthesisDispatcher."""

    @pytest.mark.asyncio
    async def test_sends_single_audio_frame(self, dispatcher, client_socket) -> None:
        await dispatcher.dispatch("Sure, what time?", _timing())

        assert client_socket.audio() == [b"audio:Sure, what time?"]
        assert client_socket.events() == []

    @pytest.mark.asyncio
    async def test_records_latency_before_synthesis(
        self, dispatcher, fake_latency, fake_tts
    ) -> None:
        """The latency record is written even when synthesis then fails."""
        fake_tts.error = TTSConnectionError("network down")

        await dispatcher.dispatch("hi", _timing("book a table"))

        assert len(fake_latency.records) == 1
        record = fake_latency.records[0]
        assert record.session_id == "s1"
        assert record.query == "book a table"
        assert record.llm_duration_ms == 490.0
        assert record.query_to_tts_start_ms == record.tts_start_at - 1000.0

    @pytest.mark.asyncio
    async def test_failure_reports_error(self, dispatcher, fake_tts, client_socket) -> None:
        fake_tts.error = TTSConnectionError("network down")

        await dispatcher.dispatch("hi", _timing())

        assert client_socket.events() == [{"type": "error", "message": "TTS failed: network down"}]
        assert client_socket.audio() == []

    @pytest.mark.asyncio
    async def test_closed_client_drops_audio(self, dispatcher, channel, client_socket) -> None:
        channel.mark_closed()

        await dispatcher.dispatch("hi", _timing())

        assert client_socket.frames == []

    @pytest.mark.asyncio
    async def test_tasks_complete_in_any_order(
        self, dispatcher, fake_tts, client_socket
    ) -> None:
        """Overlapping syntheses write audio as each finishes."""
        slow = asyncio.Event()
        fake_tts.gates["first"] = slow

        dispatcher.dispatch("first", _timing("one"))
        dispatcher.dispatch("second", _timing("two"))
        assert dispatcher.in_flight == 2

        await asyncio.sleep(0.01)
        assert client_socket.audio() == [b"audio:second"]
        assert dispatcher.in_flight == 1

        slow.set()
        await dispatcher.wait_idle()
        assert client_socket.audio() == [b"audio:second", b"audio:first"]
        assert dispatcher.in_flight == 0
