"""
Structured logging configuration for the Up-N-Down server.

Provides:
- JSONFormatter for production (machine-readable logs)
- Human-readable formatter for development
- Contextual logging (request_id, player_id, room_code)

The gateway sets the context variables around each inbound message, so any
log line emitted while an action runs carries who sent it and for which room.
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Iterator, Optional

# Context variables for message-scoped data
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
player_id_var: ContextVar[Optional[str]] = ContextVar("player_id", default=None)
room_code_var: ContextVar[Optional[str]] = ContextVar("room_code", default=None)

CONTEXT_FIELDS = ("request_id", "player_id", "room_code")


def _context_value(record: logging.LogRecord, name: str) -> Optional[str]:
    """Explicit `extra` on the record wins over the ambient context variable."""
    value = getattr(record, name, None)
    if value:
        return str(value)
    return {
        "request_id": request_id_var,
        "player_id": player_id_var,
        "room_code": room_code_var,
    }[name].get()


@contextmanager
def log_context(
    request_id: Optional[str] = None,
    player_id: Optional[str] = None,
    room_code: Optional[str] = None,
) -> Iterator[None]:
    """Bind message context for the duration of a block."""
    tokens = [
        (request_id_var, request_id_var.set(request_id)),
        (player_id_var, player_id_var.set(player_id)),
        (room_code_var, room_code_var.set(room_code)),
    ]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


class JSONFormatter(logging.Formatter):
    """
    Format logs as JSON for production log aggregation.

    One object per line with timestamp, level, logger and message, plus any
    context fields that are set.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Log record to format.

        Returns:
            JSON-formatted log string.
        """
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in CONTEXT_FIELDS:
            value = _context_value(record, name)
            if value:
                log_data[name] = value

        # Add source location for errors
        if record.levelno >= logging.ERROR:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Colourised single-line formatter for local runs."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record with colours and message context.

        Args:
            record: Log record to format.

        Returns:
            Single-line log string.
        """
        color = self.COLORS.get(record.levelname, "")
        reset = self.RESET if color else ""
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]

        context_parts = []
        request_id = _context_value(record, "request_id")
        if request_id:
            context_parts.append(f"req={request_id[:8]}")
        player_id = _context_value(record, "player_id")
        if player_id:
            context_parts.append(f"player={player_id[:8]}")
        room_code = _context_value(record, "room_code")
        if room_code:
            context_parts.append(f"room={room_code}")

        context = f" [{', '.join(context_parts)}]" if context_parts else ""
        output = f"{timestamp} {color}{record.levelname:8}{reset} {record.name}{context} - {record.getMessage()}"

        if record.exc_info:
            output += "\n" + self.formatException(record.exc_info)

        return output


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        environment: Environment name (production uses JSON, else human-readable).
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    if environment == "production":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(DevelopmentFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level)

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Logging configured: level={level}, environment={environment}")


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that automatically includes context.

    Usage:
        logger = get_logger(__name__)
        logger.with_context(room_code="K7Q2ZD", player_id="123").info("Player joined")
    """

    def __init__(self, logger: logging.Logger, extra: Optional[dict] = None):
        """
        Initialize context logger.

        Args:
            logger: Base logger instance.
            extra: Extra context to include in all messages.
        """
        super().__init__(logger, extra or {})

    def with_context(self, **kwargs) -> "ContextLogger":
        """
        Create a new logger with additional context.

        Args:
            **kwargs: Context key-value pairs to add, e.g. room_code.

        Returns:
            New ContextLogger with combined context.
        """
        return ContextLogger(self.logger, {**self.extra, **kwargs})

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        """
        Merge adapter context into the record extras.

        Args:
            msg: Log message.
            kwargs: Keyword arguments of the logging call.

        Returns:
            Processed message and kwargs.
        """
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """
    Get a context-aware logger.

    Args:
        name: Logger name (typically __name__).

    Returns:
        ContextLogger instance.
    """
    return ContextLogger(logging.getLogger(name))
