"""Deepgram Aura TTS over the REST speak endpoint."""

from __future__ import annotations

from typing import Any
from urllib.parse import urlencode

import httpx

from src.config import Settings, get_settings
from src.logging_config import get_logger
from src.services.tts.exceptions import TTSConnectionError, TTSSynthesisError

logger: Any = get_logger(__name__)

DEEPGRAM_SPEAK_URL = "https://api.deepgram.com/v1/speak"


class DeepgramTTSService:
    """Deepgram Aura TTS returning a WAV (linear16) payload."""

    media_type = "audio/wav"

    def __init__(
        self,
        settings: Settings | None = None,
        model: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._model = model or self._settings.deepgram_tts_model
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy initialization of the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    @property
    def url(self) -> str:
        params = {
            "model": self._model,
            "encoding": "linear16",
            "sample_rate": self._settings.audio_sample_rate,
            "container": "wav",
        }
        return f"{DEEPGRAM_SPEAK_URL}?{urlencode(params)}"

    async def synthesize(self, text: str) -> bytes:
        text = text.strip()
        if not text:
            raise TTSSynthesisError("No text provided to Deepgram TTS")

        try:
            response = await self.client.post(
                self.url,
                headers={
                    "Authorization": f"Token {self._settings.deepgram_api_key.get_secret_value()}",
                },
                json={"text": text},
            )
        except httpx.HTTPError as e:
            logger.error(f"Deepgram TTS request failed: {e}")
            raise TTSConnectionError(f"Deepgram TTS connection failed: {e}") from e

        if response.status_code >= 400:
            raise TTSSynthesisError(
                f"REST TTS failed: {response.status_code} {response.reason_phrase} {response.text}"
            )

        if not response.content:
            raise TTSSynthesisError("No audio received from Deepgram")
        return response.content

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def health_check(self) -> bool:
        return bool(self._settings.deepgram_api_key.get_secret_value())
