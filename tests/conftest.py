"""Shared pytest fixtures for Voicebridge tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from src.config import Settings
from src.core.capabilities import Capabilities
from src.observability.latency import LatencyRecord
from src.services.llm.protocol import Message, Role
from src.services.stt.protocol import SpeechError, TranscriptEvent


def build_settings(**overrides) -> Settings:
    """Create a Settings object with safe test defaults."""
    base = {
        "deepgram_api_key": "test-deepgram-key",
        "groq_api_key": "test-groq-key",
        "elevenlabs_api_key": "test-elevenlabs-key",
        "redis_url": "redis://localhost:6379/15",
    }
    base.update(overrides)
    return Settings(**base)


@pytest.fixture
def settings_factory(tmp_path: Path) -> Callable[..., Settings]:
    """Return a factory to build Settings with overrides.

    File outputs (latency log, bookings CSV) default into the test's tmp dir.
    """

    def factory(**overrides) -> Settings:
        base = {
            "latency_log_path": str(tmp_path / "latency.jsonl"),
            "bookings_csv_path": str(tmp_path / "bookings.csv"),
        }
        base.update(overrides)
        return build_settings(**base)

    return factory


@pytest.fixture
def settings(settings_factory: Callable[..., Settings]) -> Settings:
    """Default Settings fixture."""
    return settings_factory()


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """Poll a predicate on the running loop until it holds."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(0.005)

    return _wait


# =============================================================================
# Capability Fakes
# =============================================================================


class FakeClientSocket:
    """Records frames written through a ClientChannel."""

    def __init__(self) -> None:
        self.frames: list[str | bytes] = []
        self.fail = False

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.frames.append(data)

    async def send_bytes(self, data: bytes) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.frames.append(data)

    def events(self) -> list[dict[str, Any]]:
        return [json.loads(f) for f in self.frames if isinstance(f, str)]

    def events_of(self, kind: str) -> list[dict[str, Any]]:
        return [e for e in self.events() if e.get("type") == kind]

    def audio(self) -> list[bytes]:
        return [f for f in self.frames if isinstance(f, bytes)]


class FakeLLM:
    """Scripted language model.

    ``replies`` are consumed in order (an Exception entry is raised); when
    exhausted the reply echoes the query. ``gates`` holds an Event per query
    text that must be set before that call returns.
    """

    def __init__(self, replies: list[str | Exception] | None = None) -> None:
        self.replies = list(replies or [])
        self.gates: dict[str, asyncio.Event] = {}
        self.queries: list[str] = []
        self.calls: list[list[Message]] = []
        self.active = 0
        self.max_active = 0

    async def complete(self, messages: list[Message]) -> str:
        query = next(m.content for m in reversed(messages) if m.role == Role.USER)
        self.calls.append(list(messages))
        self.queries.append(query)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            gate = self.gates.get(query)
            if gate is not None:
                await gate.wait()
            if self.replies:
                reply = self.replies.pop(0)
                if isinstance(reply, Exception):
                    raise reply
                return reply
            return f"reply to {query}"
        finally:
            self.active -= 1

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        pass


class FakeTTS:
    """Synthesis fake returning ``b"audio:" + text``; optionally gated or failing."""

    media_type = "audio/mpeg"

    def __init__(self) -> None:
        self.texts: list[str] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.error: Exception | None = None
        self.closed = False

    async def synthesize(self, text: str) -> bytes:
        self.texts.append(text)
        gate = self.gates.get(text)
        if gate is not None:
            await gate.wait()
        if self.error is not None:
            raise self.error
        return b"audio:" + text.encode()

    async def close(self) -> None:
        self.closed = True

    async def health_check(self) -> bool:
        return True


class FakeHistory:
    """In-memory history store with injectable failures."""

    def __init__(self) -> None:
        self.store: dict[str, list[Message]] = {}
        self.saves: list[tuple[str, list[Message]]] = []
        self.load_error: Exception | None = None
        self.save_error: Exception | None = None
        self.healthy = True
        self.closed = False

    async def load(self, session_id: str) -> list[Message]:
        if self.load_error is not None:
            raise self.load_error
        return list(self.store.get(session_id, []))

    async def save(self, session_id: str, messages: list[Message]) -> None:
        if self.save_error is not None:
            raise self.save_error
        self.saves.append((session_id, list(messages)))
        self.store[session_id] = list(messages)

    async def close(self) -> None:
        self.closed = True

    async def health_check(self) -> bool:
        return self.healthy


class FakeLatencySink:
    def __init__(self) -> None:
        self.records: list[LatencyRecord] = []
        self.closed = False

    def record(self, record: LatencyRecord) -> None:
        self.records.append(record)

    def close(self) -> None:
        self.closed = True


class FakeSpeechSocket:
    """Speech socket that replays one scripted batch of events per audio frame."""

    def __init__(
        self,
        script: list[list[TranscriptEvent]] | None = None,
        connect_ok: bool = True,
    ) -> None:
        self.script = list(script or [])
        self.connect_ok = connect_ok
        self.audio: list[bytes] = []
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.closed = False
        self._connected = False
        self._queue: asyncio.Queue[TranscriptEvent | None] = asyncio.Queue()

    @property
    def connected(self) -> bool:
        return self._connected

    def emit(self, event: TranscriptEvent) -> None:
        self._queue.put_nowait(event)

    async def connect(self) -> bool:
        self.connect_calls += 1
        if not self.connect_ok:
            self.emit(SpeechError("Speech recognition connect failed"))
            return False
        self._connected = True
        return True

    async def send_audio(self, audio: bytes) -> bool:
        self.audio.append(audio)
        if self.script:
            for event in self.script.pop(0):
                self.emit(event)
        return True

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self._connected = False

    async def close(self) -> None:
        self.closed = True
        self._connected = False
        self._queue.put_nowait(None)

    async def events(self) -> AsyncIterator[TranscriptEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event


class SpeechFactory:
    """Builds one FakeSpeechSocket per session and keeps them for inspection."""

    def __init__(self) -> None:
        self.script: list[list[TranscriptEvent]] = []
        self.connect_ok = True
        self.sockets: list[FakeSpeechSocket] = []

    def __call__(self) -> FakeSpeechSocket:
        socket = FakeSpeechSocket(script=self.script, connect_ok=self.connect_ok)
        self.sockets.append(socket)
        return socket


@pytest.fixture
def client_socket() -> FakeClientSocket:
    return FakeClientSocket()


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def fake_tts() -> FakeTTS:
    return FakeTTS()


@pytest.fixture
def fake_history() -> FakeHistory:
    return FakeHistory()


@pytest.fixture
def fake_latency() -> FakeLatencySink:
    return FakeLatencySink()


@pytest.fixture
def speech_factory() -> SpeechFactory:
    return SpeechFactory()


@pytest.fixture
def capabilities(
    speech_factory: SpeechFactory,
    fake_llm: FakeLLM,
    fake_tts: FakeTTS,
    fake_history: FakeHistory,
    fake_latency: FakeLatencySink,
) -> Capabilities:
    """Capabilities wired entirely to in-memory fakes."""
    return Capabilities(
        speech_factory=speech_factory,
        llm=fake_llm,
        tts=fake_tts,
        history=fake_history,
        latency=fake_latency,
    )


# =============================================================================
# FastAPI Test Client Fixtures
# =============================================================================


@pytest.fixture
def test_client(settings: Settings, capabilities: Capabilities) -> Generator:
    """FastAPI TestClient with test settings and fake capabilities."""
    from fastapi.testclient import TestClient

    from src.config import get_settings
    from src.main import create_app

    app = create_app(settings=settings, capabilities=capabilities)
    app.dependency_overrides[get_settings] = lambda: settings

    with TestClient(app) as client:
        yield client
