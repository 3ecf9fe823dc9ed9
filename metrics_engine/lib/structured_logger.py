"""Structured Logger with JSON Formatting.

Provides structured logging with JSON output for machine-readable logs.
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from metrics_engine.lib.distributed_tracing import get_correlation_id

# Attributes every LogRecord carries; anything else was passed via extra=
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord('', logging.INFO, '', 0, '', (), None)).keys()
) | {'message', 'asctime'}

# Never log sensitive data
SENSITIVE_KEYS = frozenset({'password', 'token', 'secret', 'webhook_url', 'authorization'})


# Every logger created through StructuredLogger, by name
_structured_loggers: Dict[str, logging.Logger] = {}

# Level set by set_log_level; None means LOG_LEVEL from the environment
_level_override: Optional[int] = None


def _env_level() -> int:
    return getattr(logging, os.getenv('LOG_LEVEL', 'INFO').upper(), logging.INFO)


def set_log_level(level: Optional[str]) -> None:
    """Apply level to every structured logger, existing and future.

    Args:
        level: Level name (DEBUG, INFO, ...); unknown names mean INFO.
            None drops the override and falls back to LOG_LEVEL.
    """
    global _level_override
    if level is None:
        _level_override = None
    else:
        _level_override = getattr(logging, str(level).upper(), logging.INFO)
    resolved = _env_level() if _level_override is None else _level_override
    for logger in _structured_loggers.values():
        logger.setLevel(resolved)


def _scrub(context: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in context.items() if k.lower() not in SENSITIVE_KEYS}


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'request_id': get_correlation_id()
        }

        # Add context fields passed through extra=
        extra = {
            key: value for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and not key.startswith('_')
        }
        log_data.update(_scrub(extra))

        # Add exception info if present
        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None
            }

        return json.dumps(log_data, default=str)


class StructuredLogger:
    """Structured logger with JSON formatting.

    Usage:
        logger = StructuredLogger(__name__)
        logger.info("Metric stored", metric_name="cpu_usage", value=42.0)
        logger.error("Aggregation failed", exc_info=True, time_window="1h")
    """

    def __init__(self, name: str):
        """Initialize structured logger.

        Args:
            name: Logger name (typically module name)
        """
        self.logger = logging.getLogger(name)

        # Engine settings win over LOG_LEVEL (default INFO)
        self.logger.setLevel(_env_level() if _level_override is None else _level_override)
        _structured_loggers[name] = self.logger

        # Remove existing handlers to avoid duplicates
        self.logger.handlers.clear()

        # Add JSON formatter
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
        self.logger.addHandler(handler)

        # Prevent propagation to avoid duplicate logs
        self.logger.propagate = os.getenv('LOG_PROPAGATE', 'false').lower() == 'true'

    def info(self, message: str, **extra: Any) -> None:
        """Log INFO level message.

        Args:
            message: Log message
            **extra: Additional context (metric_name, duration_ms, etc.)
        """
        self.logger.info(message, extra=extra)

    def warning(self, message: str, exc_info: bool = False, **extra: Any) -> None:
        """Log WARNING level message.

        Args:
            message: Log message
            exc_info: Include exception traceback
            **extra: Additional context
        """
        self.logger.warning(message, exc_info=exc_info, extra=extra)

    def error(self, message: str, exc_info: bool = False, **extra: Any) -> None:
        """Log ERROR level message.

        Args:
            message: Log message
            exc_info: Include exception traceback
            **extra: Additional context
        """
        self.logger.error(message, exc_info=exc_info, extra=extra)

    def debug(self, message: str, **extra: Any) -> None:
        """Log DEBUG level message.

        Args:
            message: Log message
            **extra: Additional context
        """
        self.logger.debug(message, extra=extra)

    def log_event(self, event: str, level: str = 'INFO', context: Optional[Dict[str, Any]] = None) -> None:
        """Log structured event.

        Args:
            event: Event name (e.g., "retention.sweep", "notification.sent")
            level: Log level (INFO, WARNING, ERROR, DEBUG)
            context: Additional context dictionary (filtered for sensitive data)

        Example:
            logger.log_event("retention.sweep", context={"raw_deleted": 120})
        """
        level_no = getattr(logging, level.upper(), logging.INFO)
        self.logger.log(level_no, event, extra={'event': event, **_scrub(context or {})})
