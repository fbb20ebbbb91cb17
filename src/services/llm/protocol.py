"""LLM service protocol and data types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol


class Role(str, Enum):
    """Message role in conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True, slots=True)
class Message:
    """A single message in conversation history."""

    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        """Build a message from its stored form; null content becomes ''."""
        return cls(role=Role(data["role"]), content=data.get("content") or "")


class LLMService(Protocol):
    """Protocol for LLM service implementations."""

    async def complete(self, messages: list[Message]) -> str:
        """Return the assistant reply for a conversation.

        Tool calls are resolved internally. Returns an empty string when no
        content is produced within the retry budget.
        """
        ...

    async def health_check(self) -> bool:
        """Check if the service is operational."""
        ...

    async def close(self) -> None:
        """Release client resources."""
        ...
