"""Redis-backed conversation history.

Each session's history is one JSON array under ``session:<id>:messages``,
rewritten on every turn with a sliding expiry.
"""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from src.config import Settings, get_settings
from src.logging_config import get_logger, mask_session_id
from src.services.history.exceptions import HistoryStoreError
from src.services.llm.protocol import Message

logger: Any = get_logger(__name__)


def history_key(session_id: str) -> str:
    return f"session:{session_id}:messages"


class RedisHistoryStore:
    """History store over ``redis.asyncio``."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: redis.Redis | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._ttl = self._settings.redis_ttl_seconds
        self._max_messages = self._settings.history_max_messages
        self._client = client

    @property
    def client(self) -> redis.Redis:
        """Lazy initialization of the Redis client."""
        if self._client is None:
            self._client = redis.from_url(self._settings.redis_url, decode_responses=True)
        return self._client

    async def load(self, session_id: str) -> list[Message]:
        try:
            data = await self.client.get(history_key(session_id))
        except RedisError as e:
            raise HistoryStoreError(f"Failed to load history: {e}") from e

        if not data:
            return []

        try:
            return [Message.from_dict(item) for item in json.loads(data)]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(
                f"Discarding unreadable history for session {mask_session_id(session_id)}: {e}"
            )
            return []

    async def save(self, session_id: str, messages: list[Message]) -> None:
        payload = json.dumps([m.to_dict() for m in messages[-self._max_messages:]])
        try:
            await self.client.set(history_key(session_id), payload, ex=self._ttl)
        except RedisError as e:
            raise HistoryStoreError(f"Failed to save history: {e}") from e

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def health_check(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.warning(f"Redis health check failed: {e}")
            return False
