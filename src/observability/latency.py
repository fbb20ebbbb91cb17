"""Per-turn latency records.

One record is written when synthesis starts for a reply. Records are
append-only and best-effort: a failed write is logged and dropped.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from src.logging_config import LATENCY_EXTRA_KEY, get_logger
from src.observability.metrics import record_turn_latency

logger: Any = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class LatencyRecord:
    """Timings for one completed turn (epoch milliseconds)."""

    session_id: str
    query: str
    final_received_at: float
    llm_start_at: float
    llm_end_at: float
    tts_start_at: float
    query_to_tts_start_ms: float
    llm_duration_ms: float
    ts: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    @classmethod
    def build(
        cls,
        *,
        session_id: str,
        query: str,
        final_received_at: float,
        llm_start_at: float,
        llm_end_at: float,
        tts_start_at: float,
    ) -> LatencyRecord:
        """Create a record with derived durations clamped at zero."""
        return cls(
            session_id=session_id,
            query=query,
            final_received_at=final_received_at,
            llm_start_at=llm_start_at,
            llm_end_at=llm_end_at,
            tts_start_at=tts_start_at,
            query_to_tts_start_ms=max(0.0, tts_start_at - final_received_at),
            llm_duration_ms=max(0.0, llm_end_at - llm_start_at),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class LatencySink(Protocol):
    """Fire-and-forget destination for latency records."""

    def record(self, record: LatencyRecord) -> None:
        """Store a record. Must never raise or block the event loop."""
        ...

    def close(self) -> None:
        """Flush pending records."""
        ...


class LatencyLogSink:
    """Appends latency records as JSON lines and observes Prometheus histograms.

    Lines go through a dedicated Loguru file handler with ``enqueue=True``,
    so the disk write happens on Loguru's worker thread. The handler is
    added on the first record.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._token = f"{id(self):x}"
        self._handler_id: int | None = None
        self._writer = logger.bind(**{LATENCY_EXTRA_KEY: self._token})

    @property
    def path(self) -> Path:
        return self._path

    def record(self, record: LatencyRecord) -> None:
        try:
            record_turn_latency(record.query_to_tts_start_ms, record.llm_duration_ms)
            if self._handler_id is None:
                self._handler_id = self._add_handler()
            self._writer.info(json.dumps(record.to_dict(), ensure_ascii=False))
        except Exception as e:
            logger.debug(f"Dropping latency record: {e}")

    def close(self) -> None:
        handler_id, self._handler_id = self._handler_id, None
        if handler_id is not None:
            # Blocks until the worker thread has written everything queued
            try:
                logger.remove(handler_id)
            except ValueError:
                logger.debug("Latency log handler was already removed")

    def _add_handler(self) -> int:
        token = self._token
        return logger.add(
            self._path,
            format="{message}",
            level="INFO",
            filter=lambda r: r["extra"].get(LATENCY_EXTRA_KEY) == token,
            enqueue=True,
            encoding="utf-8",
        )
