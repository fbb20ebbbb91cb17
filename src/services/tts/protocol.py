"""TTS (Text-to-Speech) service protocol."""

from __future__ import annotations

from typing import Protocol


class TTSService(Protocol):
    """Protocol for TTS (Text-to-Speech) service implementations."""

    @property
    def media_type(self) -> str:
        """Container of the returned audio (e.g. audio/mpeg, audio/wav)."""
        ...

    async def synthesize(self, text: str) -> bytes:
        """Synthesize text to one complete audio payload.

        Raises:
            TTSSynthesisError: Empty text or empty audio
            TTSConnectionError: Provider unreachable or not configured
        """
        ...

    async def close(self) -> None:
        """Close any open connections and clean up resources."""
        ...

    async def health_check(self) -> bool:
        """Check if the service is operational."""
        ...
