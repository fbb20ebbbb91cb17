"""Speech-to-Text services (Deepgram live socket)."""

from src.services.stt.deepgram import DeepgramSocket, parse_transcript_events
from src.services.stt.exceptions import STTConnectionError, STTServiceError
from src.services.stt.protocol import (
    Final,
    Interim,
    SpeechError,
    SpeechSocket,
    TranscriptEvent,
    UtteranceEnd,
)

__all__ = [
    "DeepgramSocket",
    "parse_transcript_events",
    "SpeechSocket",
    "TranscriptEvent",
    "Interim",
    "Final",
    "UtteranceEnd",
    "SpeechError",
    "STTServiceError",
    "STTConnectionError",
]
