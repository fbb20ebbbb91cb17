"""Custom exceptions for STT services."""


class STTServiceError(Exception):
    """Base exception for STT service errors."""

    pass


class STTConnectionError(STTServiceError):
    """Raised when the upstream recognition socket cannot be opened."""

    pass
