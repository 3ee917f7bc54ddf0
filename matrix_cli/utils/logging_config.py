"""
Logging configuration with structured logging support.

This module provides a centralized logging configuration that supports:
- JSON structured logging for scripting and log collection
- Human-readable colored logging for interactive use
- Quieting the chatty protocol library loggers

All log output goes to stderr; stdout is reserved for command output.
"""

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from pythonjsonlogger import jsonlogger

from .. import __version__


class StructuredFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with additional context."""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]):
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = datetime.now(timezone.utc).isoformat()
        log_record['service'] = 'matrix-cli'
        log_record['version'] = __version__

        # Add room context if available
        room_id = getattr(record, 'room_id', None)
        if room_id:
            log_record['room_id'] = room_id


class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def __init__(self, fmt: str, use_color: bool = True):
        super().__init__(fmt)
        self.use_color = use_color

    def format(self, record):
        if not self.use_color:
            return super().format(record)
        original = record.levelname
        record.levelname = f"{self.COLORS.get(original, '')}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def setup_logging(log_level: str = "WARNING", log_format: str = "text") -> None:
    """
    Set up application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format ('json' for structured logging, 'text' for human-readable)
    """
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if log_format == "json" else structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    if log_format == "json":
        handler.setFormatter(StructuredFormatter('%(asctime)s %(name)s %(levelname)s %(message)s'))
    else:
        use_color = sys.stderr.isatty() and not os.getenv('NO_COLOR')
        handler.setFormatter(ColoredFormatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s', use_color))

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        handlers=[handler],
        force=True,
    )

    # Reduce noise from the protocol stack; nio logs every request at INFO
    logging.getLogger('nio').setLevel(logging.WARNING)
    logging.getLogger('aiohttp').setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured structured logger.

    Args:
        name: Logger name (typically __name__)
    """
    return structlog.get_logger(name)
