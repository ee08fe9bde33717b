"""Logging setup for guidance sessions and the replay runner."""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

ROOT_LOGGER_NAME = "capture_guidance"


class CloudLoggingFormatter(logging.Formatter):
    """Formatter that emits one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "severity": record.levelname,
            "message": record.getMessage(),
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "logger": record.name,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        context = getattr(record, "context", None)
        if context:
            log_entry.update(context)

        return json.dumps(log_entry)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for interactive use."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        short_name = record.name.rsplit(".", 1)[-1]

        msg = (
            f"{color}[{timestamp}] {record.levelname:8s}{self.RESET} "
            f"{short_name}: {record.getMessage()}"
        )

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


class _SessionContextFilter(logging.Filter):
    """Attach the session id to every record passing through the handler."""

    def __init__(self, session_id: str):
        super().__init__()
        self.session_id = session_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.context = {"session_id": self.session_id}
        return True


def setup_logging(
    level: int = logging.INFO,
    session_id: Optional[str] = None,
    cloud_logging: bool = False,
) -> logging.Logger:
    """Configure the package logger.

    Args:
        level: Logging level.
        session_id: Capture session id added to structured records.
        cloud_logging: If True, emit JSON lines instead of coloured text.

    Returns:
        The configured ``capture_guidance`` logger.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)

    # Repeated setup must not stack handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    if cloud_logging:
        handler.setFormatter(CloudLoggingFormatter())
    else:
        handler.setFormatter(ConsoleFormatter())

    if session_id:
        handler.addFilter(_SessionContextFilter(session_id))

    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Get a logger under the package namespace.

    Args:
        name: Logger name (prefixed with 'capture_guidance.' when needed).

    Returns:
        Logger instance.
    """
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
