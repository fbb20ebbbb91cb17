"""Errors raised by the language-model capability.

Any of these aborts the current turn: the turn processor reports the message
to the client and moves on to the next queued query.
"""


class LLMServiceError(Exception):
    """Base exception for model call failures."""


class LLMRateLimitError(LLMServiceError):
    """Provider throttled the request; ``retry_after`` is in seconds."""

    def __init__(self, message: str, retry_after: float = 60.0):
        super().__init__(message)
        self.retry_after = retry_after


class LLMConnectionError(LLMServiceError):
    """Provider unreachable (DNS, TLS, timeout)."""


class LLMAuthenticationError(LLMServiceError):
    """Provider rejected the configured API key."""
