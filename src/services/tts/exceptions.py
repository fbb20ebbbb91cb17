"""Custom exceptions for TTS services."""


class TTSServiceError(Exception):
    """Base exception for TTS service errors."""

    pass


class TTSSynthesisError(TTSServiceError):
    """Raised when synthesis fails or produces no audio."""

    pass


class TTSConnectionError(TTSServiceError):
    """Raised when the TTS provider is unreachable or not configured."""

    pass
