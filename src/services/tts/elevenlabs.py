"""ElevenLabs TTS service returning a single MP3 payload."""

from __future__ import annotations

import asyncio
import io
from typing import Any

from src.config import Settings, get_settings
from src.logging_config import get_logger
from src.services.tts.exceptions import TTSConnectionError, TTSSynthesisError

logger: Any = get_logger(__name__)


class ElevenLabsTTSService:
    """ElevenLabs TTS service; the SDK client is blocking, so calls run in a thread."""

    media_type = "audio/mpeg"

    def __init__(
        self,
        settings: Settings | None = None,
        voice_id: str | None = None,
        model_id: str | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._voice_id = voice_id or self._settings.elevenlabs_voice_id
        self._model_id = model_id or self._settings.elevenlabs_model_id
        self._output_format = self._settings.elevenlabs_output_format
        self._client = None

    def _get_client(self):
        if self._client is None:
            if not self._settings.elevenlabs_api_key:
                raise TTSConnectionError("ElevenLabs API key is not configured")
            from elevenlabs import ElevenLabs

            self._client = ElevenLabs(
                api_key=self._settings.elevenlabs_api_key.get_secret_value()
            )
        return self._client

    async def synthesize(self, text: str) -> bytes:
        text = text.strip()
        if not text:
            raise TTSSynthesisError("No text provided to ElevenLabs TTS")

        try:
            audio = await asyncio.to_thread(self._synthesize_to_mp3, text)
        except TTSConnectionError:
            raise
        except Exception as e:
            logger.error(f"ElevenLabs synthesis error: {e}")
            raise TTSConnectionError(f"ElevenLabs connection failed: {e}") from e

        if not audio:
            raise TTSSynthesisError("No audio received from ElevenLabs")
        return audio

    def _synthesize_to_mp3(self, text: str) -> bytes:
        client = self._get_client()

        audio_chunks = client.text_to_speech.convert(
            text=text,
            voice_id=self._voice_id,
            model_id=self._model_id,
            output_format=self._output_format,
        )

        buffer = io.BytesIO()
        for chunk in audio_chunks:
            buffer.write(chunk)
        return buffer.getvalue()

    async def close(self) -> None:
        self._client = None

    async def health_check(self) -> bool:
        return bool(self._settings.elevenlabs_api_key)
