"""LLM services (Groq)."""

from src.services.llm.exceptions import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMRateLimitError,
    LLMServiceError,
)
from src.services.llm.groq import GroqService
from src.services.llm.protocol import LLMService, Message, Role
from src.services.llm.tools import TOOL_DEFINITIONS, ToolRegistry

__all__ = [
    # Protocol and types
    "LLMService",
    "Message",
    "Role",
    # Implementation
    "GroqService",
    # Tools
    "ToolRegistry",
    "TOOL_DEFINITIONS",
    # Exceptions
    "LLMServiceError",
    "LLMRateLimitError",
    "LLMConnectionError",
    "LLMAuthenticationError",
]
