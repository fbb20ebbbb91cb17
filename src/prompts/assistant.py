"""System prompt for the voice booking assistant."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from src.logging_config import get_logger

logger: Any = get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = """You are a friendly voice assistant that helps callers make bookings.

## Guidelines
- Be concise - replies are spoken aloud, keep them to 1-2 sentences
- Use natural, conversational language without lists or markdown
- Collect the caller's name, email and booking date before saving a booking
- Use get_present_date to resolve relative dates like "tomorrow" or "next Friday"
- Read the booking details back and confirm them before calling store_on_csv
- If a tool reports a failure, apologise briefly and ask for the missing detail
"""


def load_system_prompt(path: str | Path | None = None) -> str:
    """Return the prompt file's contents, or the built-in prompt.

    A missing, unreadable or empty file falls back to DEFAULT_SYSTEM_PROMPT.
    """
    if path:
        try:
            text = Path(path).read_text(encoding="utf-8").strip()
            if text:
                return text
        except OSError as e:
            logger.warning(f"Could not read system prompt {path}: {e}")
    return DEFAULT_SYSTEM_PROMPT.strip()
