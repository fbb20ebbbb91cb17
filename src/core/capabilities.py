"""Process-wide external capabilities shared by every session."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from typing import Any

from src.config import Settings
from src.logging_config import get_logger
from src.observability.latency import LatencyLogSink, LatencySink
from src.services.history import HistoryStore, RedisHistoryStore
from src.services.llm import GroqService, LLMService
from src.services.stt import DeepgramSocket, SpeechSocket
from src.services.tts import TTSService, create_tts_service

logger: Any = get_logger(__name__)


@dataclass
class Capabilities:
    """Clients constructed once at startup and injected into sessions.

    Speech recognition needs one upstream socket per session, so it is
    provided as a factory; everything else is shared read-only.
    """

    speech_factory: Callable[[], SpeechSocket]
    llm: LLMService
    tts: TTSService
    history: HistoryStore
    latency: LatencySink

    @classmethod
    def from_settings(cls, settings: Settings) -> Capabilities:
        return cls(
            speech_factory=partial(DeepgramSocket, settings),
            llm=GroqService(settings=settings),
            tts=create_tts_service(settings),
            history=RedisHistoryStore(settings=settings),
            latency=LatencyLogSink(settings.latency_log_path),
        )

    async def close(self) -> None:
        """Close shared clients; one failing close does not skip the rest."""
        for name, service in (("llm", self.llm), ("tts", self.tts), ("history", self.history)):
            try:
                await service.close()
            except Exception as e:
                logger.error(f"Error closing {name} capability: {e}")
        try:
            self.latency.close()
        except Exception as e:
            logger.error(f"Error closing latency capability: {e}")
