"""Observability module for metrics and latency telemetry."""

from src.observability.latency import LatencyLogSink, LatencyRecord, LatencySink
from src.observability.metrics import (
    ACTIVE_SESSIONS,
    LLM_DURATION,
    QUERY_TO_TTS_START,
    STT_RECONNECTS,
    TTS_FAILURES,
    TURN_TOTAL,
    record_turn_latency,
)

__all__ = [
    "ACTIVE_SESSIONS",
    "TURN_TOTAL",
    "STT_RECONNECTS",
    "TTS_FAILURES",
    "QUERY_TO_TTS_START",
    "LLM_DURATION",
    "record_turn_latency",
    "LatencyRecord",
    "LatencySink",
    "LatencyLogSink",
]
