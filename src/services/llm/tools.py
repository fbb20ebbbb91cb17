"""Tools the assistant can call during a turn.

Tool results are plain dicts serialized back to the model as JSON.
A tool never raises out of ``ToolRegistry.call``; failures come back as
``{"success": False, "error": ...}``.
"""

from __future__ import annotations

import csv
import json
from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import Any

from src.logging_config import get_logger

logger: Any = get_logger(__name__)

BOOKING_CSV_HEADERS = ["name", "email", "date"]

TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "get_present_date",
            "description": "Get current date in YYYY-MM-DD format",
            "parameters": {"type": "object", "properties": {}, "required": []},
        },
    },
    {
        "type": "function",
        "function": {
            "name": "store_on_csv",
            "description": "Store booking details to CSV",
            "parameters": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "User name"},
                    "email": {"type": "string", "description": "User email"},
                    "date": {"type": "string", "description": "Booking date YYYY-MM-DD"},
                },
                "required": ["name", "email", "date"],
            },
        },
    },
]


def get_present_date(today: Callable[[], date] = date.today) -> str:
    return today().isoformat()


def store_on_csv(path: str | Path, name: str, email: str, booking_date: str) -> None:
    """Append a booking row, writing the header when the file is new."""
    file_path = Path(path)
    is_new = not file_path.exists()
    with file_path.open("a", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        if is_new:
            writer.writerow(BOOKING_CSV_HEADERS)
        writer.writerow([name, email, booking_date])


def parse_arguments(raw: str | None) -> dict[str, Any]:
    """Decode tool-call arguments; anything malformed is treated as no arguments."""
    try:
        args = json.loads(raw or "{}")
    except ValueError:
        return {}
    return args if isinstance(args, dict) else {}


class ToolRegistry:
    """Dispatches model tool calls by name."""

    def __init__(self, bookings_csv_path: str | Path = "bookings.csv") -> None:
        self._bookings_csv_path = Path(bookings_csv_path)

    @property
    def definitions(self) -> list[dict[str, Any]]:
        return TOOL_DEFINITIONS

    def call(self, name: str, args: dict[str, Any]) -> dict[str, Any]:
        try:
            if name == "get_present_date":
                return {"success": True, "date": get_present_date()}

            if name == "store_on_csv":
                user = args.get("name") or args.get("user") or args.get("username") or args.get("full_name")
                email = args.get("email")
                booking_date = args.get("date") or args.get("booking_date")
                if not user or not email or not booking_date:
                    return {"success": False, "error": "Missing required fields (name, email, date)"}
                store_on_csv(self._bookings_csv_path, user, email, booking_date)
                logger.info(f"Stored booking for {booking_date}")
                return {"success": True, "message": "Booking saved successfully"}

            return {"success": False, "error": f"Unknown tool: {name}"}

        except Exception as e:
            logger.error(f"Tool {name} failed: {e}")
            return {"success": False, "error": str(e)}
