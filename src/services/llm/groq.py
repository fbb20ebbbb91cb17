"""Groq LLM service implementation with tool calling."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import groq
from groq import AsyncGroq

from src.config import Settings, get_settings
from src.logging_config import get_logger
from src.prompts import load_system_prompt
from src.services.llm.exceptions import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMRateLimitError,
    LLMServiceError,
)
from src.services.llm.protocol import Message, Role
from src.services.llm.tools import ToolRegistry, parse_arguments

logger: Any = get_logger(__name__)


class GroqService:
    """Groq chat completion service that resolves tool calls before replying."""

    def __init__(
        self,
        settings: Settings | None = None,
        model: str | None = None,
        tools: ToolRegistry | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._model = model or self._settings.llm_model
        self._tools = tools or ToolRegistry(self._settings.bookings_csv_path)
        self._system_prompt = load_system_prompt(self._settings.system_prompt_path)
        self._max_attempts = max(1, self._settings.llm_max_attempts)
        self._client: AsyncGroq | None = None

    @property
    def client(self) -> AsyncGroq:
        """Lazy initialization of AsyncGroq client."""
        if self._client is None:
            self._client = AsyncGroq(
                api_key=self._settings.groq_api_key.get_secret_value(),
                timeout=30.0,
                max_retries=2,
            )
        return self._client

    async def complete(self, messages: list[Message]) -> str:
        """Get a complete (non-streaming) reply for the conversation.

        Each attempt either returns content, resolves the requested tool calls
        and loops with their results appended, or retries when the model
        returned neither. An exhausted budget yields an empty reply.

        Raises:
            LLMRateLimitError: When rate limit exceeded
            LLMConnectionError: When API unreachable
            LLMAuthenticationError: When API key invalid
            LLMServiceError: For other API errors
        """
        api_messages = self._format_messages(messages)

        for attempt in range(1, self._max_attempts + 1):
            response = await self._create(api_messages)

            if not response.choices:
                logger.debug(f"Groq returned no choices (attempt {attempt})")
                continue

            message = response.choices[0].message
            if message.content:
                return message.content

            tool_calls = message.tool_calls or []
            if not tool_calls:
                logger.debug(f"Groq returned no content or tool calls (attempt {attempt})")
                continue

            api_messages.append({
                "role": Role.ASSISTANT.value,
                "content": None,
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.function.name,
                            "arguments": tc.function.arguments,
                        },
                    }
                    for tc in tool_calls
                ],
            })

            for tc in tool_calls:
                args = parse_arguments(tc.function.arguments)
                result = await asyncio.to_thread(self._tools.call, tc.function.name, args)
                logger.debug(f"Tool {tc.function.name} -> success={result.get('success')}")
                api_messages.append({
                    "role": Role.TOOL.value,
                    "content": json.dumps(result),
                    "tool_call_id": tc.id,
                })

        logger.warning(f"No reply after {self._max_attempts} attempts, returning empty reply")
        return ""

    async def _create(self, api_messages: list[dict]) -> Any:
        try:
            return await self.client.chat.completions.create(
                messages=api_messages,  # type: ignore[arg-type]
                model=self._model,
                temperature=self._settings.llm_temperature,
                top_p=self._settings.llm_top_p,
                max_tokens=self._settings.llm_max_tokens,
                tools=self._tools.definitions,  # type: ignore[arg-type]
                tool_choice="auto",
                stream=False,
            )

        except groq.RateLimitError as e:
            logger.warning(f"Groq rate limit hit: {e}")
            raise LLMRateLimitError(
                "Rate limit exceeded",
                retry_after=self._extract_retry_after(e),
            ) from e

        except groq.APIConnectionError as e:
            logger.error(f"Groq connection error: {e.__cause__}")
            raise LLMConnectionError("Failed to connect to Groq API") from e

        except groq.AuthenticationError as e:
            logger.error("Groq authentication failed")
            raise LLMAuthenticationError("Invalid Groq API key") from e

        except groq.APIStatusError as e:
            logger.error(f"Groq API error: {e.status_code} - {e.message}")
            raise LLMServiceError(f"Groq API error: {e.status_code}") from e

    def _format_messages(self, messages: list[Message]) -> list[dict]:
        """Format messages for Groq API, prepending the system prompt if absent."""
        api_messages = [m.to_dict() for m in messages]
        if not any(m.role == Role.SYSTEM for m in messages):
            api_messages.insert(0, {"role": Role.SYSTEM.value, "content": self._system_prompt})
        return api_messages

    def _extract_retry_after(self, error: groq.RateLimitError) -> float:
        """Extract retry-after from rate limit error."""
        if hasattr(error, "response") and error.response:
            retry_after = error.response.headers.get("retry-after")
            if retry_after:
                try:
                    return float(retry_after)
                except ValueError:
                    pass
        return 60.0

    async def health_check(self) -> bool:
        """Check if Groq API is reachable."""
        try:
            response = await self.client.chat.completions.create(
                messages=[{"role": "user", "content": "hi"}],
                model=self._model,
                max_tokens=1,
            )
            return bool(response.choices)
        except Exception as e:
            logger.warning(f"Groq health check failed: {e}")
            return False

    async def close(self) -> None:
        """Close the client connection."""
        if self._client:
            await self._client.close()
            self._client = None
