"""Text-to-Speech services (ElevenLabs, Deepgram Aura).

Provides TTS capabilities for spoken replies:
- ElevenLabsTTSService: MP3 via the ElevenLabs SDK
- DeepgramTTSService: WAV via Deepgram's REST speak endpoint
"""

from src.config import Settings
from src.services.tts.deepgram import DeepgramTTSService
from src.services.tts.elevenlabs import ElevenLabsTTSService
from src.services.tts.exceptions import (
    TTSConnectionError,
    TTSServiceError,
    TTSSynthesisError,
)
from src.services.tts.protocol import TTSService


def create_tts_service(settings: Settings) -> TTSService:
    """Build the TTS service selected by ``settings.tts_provider``."""
    if settings.tts_provider == "deepgram":
        return DeepgramTTSService(settings=settings)
    return ElevenLabsTTSService(settings=settings)


__all__ = [
    # Services
    "ElevenLabsTTSService",
    "DeepgramTTSService",
    "create_tts_service",
    # Protocol
    "TTSService",
    # Exceptions
    "TTSServiceError",
    "TTSSynthesisError",
    "TTSConnectionError",
]
