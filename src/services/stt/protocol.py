"""STT (Speech-to-Text) socket protocol and transcript event types."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True, slots=True)
class Interim:
    """Provisional transcript for a segment still being spoken."""

    text: str


@dataclass(frozen=True, slots=True)
class Final:
    """Transcript that will not be revised for its segment.

    Text is never empty after trimming; empty finals are dropped upstream.
    """

    text: str


@dataclass(frozen=True, slots=True)
class UtteranceEnd:
    """End-of-utterance hint. Not used for queue admission."""

    raw: dict


@dataclass(frozen=True, slots=True)
class SpeechError:
    """Recoverable upstream failure reported on the event channel."""

    message: str


TranscriptEvent = Interim | Final | UtteranceEnd | SpeechError


class SpeechSocket(Protocol):
    """Protocol for a per-session streaming speech-recognition connection."""

    async def connect(self) -> bool:
        """Open the upstream connection if absent. Returns True when connected."""
        ...

    async def send_audio(self, audio: bytes) -> bool:
        """Forward raw PCM audio without blocking on a reconnect; True if written now."""
        ...

    async def disconnect(self) -> None:
        """Close the upstream connection; the event channel stays open."""
        ...

    async def close(self) -> None:
        """Disconnect and end the event channel."""
        ...

    def events(self) -> AsyncIterator[TranscriptEvent]:
        """Iterate transcript events until the socket is closed."""
        ...

    @property
    def connected(self) -> bool:
        """Whether an upstream connection is currently held."""
        ...
