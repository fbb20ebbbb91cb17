"""Conversation history store protocol."""

from __future__ import annotations

from typing import Protocol

from src.services.llm.protocol import Message


class HistoryStore(Protocol):
    """Per-session conversation history keyed by session id."""

    async def load(self, session_id: str) -> list[Message]:
        """Return stored messages in order (empty for an unknown session)."""
        ...

    async def save(self, session_id: str, messages: list[Message]) -> None:
        """Replace the stored messages for a session."""
        ...

    async def close(self) -> None:
        """Release connections."""
        ...

    async def health_check(self) -> bool:
        """Check if the store is reachable."""
        ...
