"""Custom exceptions for history storage."""


class HistoryStoreError(Exception):
    """Raised when the history backend cannot be read or written."""

    pass
