"""Logging configuration using Loguru.

Console output always; rotating files when running in production.
Session tokens and utterances are user data: log them through
``mask_session_id`` and ``preview``.
"""

import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"

# Records bound with this key belong to the latency log, not the application log
LATENCY_EXTRA_KEY = "latency_sink"


def exclude_latency_records(record) -> bool:
    return LATENCY_EXTRA_KEY not in record["extra"]


def setup_logging(
    level: str = "INFO",
    log_dir: str = "logs",
    enable_file: bool = True,
) -> None:
    """Configure application logging.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for log files (shared with the latency log)
        enable_file: Whether to enable file logging
    """
    logger.remove()

    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=level,
        colorize=True,
        filter=exclude_latency_records,
        backtrace=True,
        # Variable values in tracebacks only outside production
        diagnose=not enable_file,
    )

    if enable_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_path / "voicebridge_{time:YYYY-MM-DD}.log",
            format=FILE_FORMAT,
            level=level,
            rotation="100 MB",
            retention="14 days",
            compression="gz",
            enqueue=True,
            diagnose=False,
            filter=exclude_latency_records,
        )

        logger.add(
            log_path / "errors_{time:YYYY-MM-DD}.log",
            format=FILE_FORMAT + "\n{exception}",
            level="ERROR",
            rotation="50 MB",
            retention="30 days",
            compression="gz",
            enqueue=True,
            diagnose=False,
            filter=exclude_latency_records,
        )

    logger.info(f"Logging initialized at {level} level")


def get_logger(name: str) -> "logger":
    """Get a logger instance with the given name.

    Usage:
        from src.logging_config import get_logger
        logger = get_logger(__name__)
        logger.info("Message")
    """
    return logger.bind(name=name)


def mask_session_id(session_id: str) -> str:
    """Shorten a client-supplied session token for logging: abcdef123456 -> abcd…3456."""
    if not session_id or len(session_id) <= 8:
        return session_id or "-"
    return f"{session_id[:4]}…{session_id[-4:]}"


def preview(text: str, limit: int = 50) -> str:
    """Truncate utterance/reply text before it goes into a log line."""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."
