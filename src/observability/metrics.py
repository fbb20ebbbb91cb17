"""Prometheus metrics for the voice bridge.

Provides metrics for monitoring session load, turn outcomes, and latency.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

# =============================================================================
# Counters
# =============================================================================

TURN_TOTAL = Counter(
    "voicebridge_turn_total",
    "Query turns processed, by outcome",
    ["outcome"],
)

STT_RECONNECTS = Counter(
    "voicebridge_stt_reconnects_total",
    "Speech recognition reconnects after a failed audio send",
)

TTS_FAILURES = Counter(
    "voicebridge_tts_failures_total",
    "Speech synthesis failures",
)

# =============================================================================
# Gauges
# =============================================================================

ACTIVE_SESSIONS = Gauge(
    "voicebridge_active_sessions",
    "Currently connected client sessions",
)

# =============================================================================
# Histograms
# =============================================================================

QUERY_TO_TTS_START = Histogram(
    "voicebridge_query_to_tts_start_seconds",
    "Time from final transcript to synthesis start",
    buckets=[0.1, 0.25, 0.5, 0.75, 1.0, 1.5, 2.0, 3.0, 5.0, 10.0],
)

LLM_DURATION = Histogram(
    "voicebridge_llm_duration_seconds",
    "Language-model call duration",
    buckets=[0.1, 0.25, 0.5, 0.75, 1.0, 1.5, 2.0, 3.0, 5.0, 10.0],
)

# =============================================================================
# Helper Functions
# =============================================================================


def record_turn_latency(query_to_tts_start_ms: float, llm_duration_ms: float) -> None:
    """Observe one completed turn's latencies (milliseconds)."""
    QUERY_TO_TTS_START.observe(query_to_tts_start_ms / 1000)
    LLM_DURATION.observe(llm_duration_ms / 1000)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_content_type() -> str:
    """Get Prometheus content type header."""
    return CONTENT_TYPE_LATEST
