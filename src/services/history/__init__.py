"""Conversation history storage (Redis)."""

from src.services.history.exceptions import HistoryStoreError
from src.services.history.protocol import HistoryStore
from src.services.history.redis_store import RedisHistoryStore, history_key

__all__ = [
    "HistoryStore",
    "RedisHistoryStore",
    "HistoryStoreError",
    "history_key",
]
