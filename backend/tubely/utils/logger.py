"""
Structured Logging Configuration Module for Tubely

Configures application-wide logging once at startup. Records are written to
stdout either as compact JSON objects (the default, for log shippers) or as
plain text lines for local development. Uvicorn's loggers are routed through the
same formatter and chatty third-party loggers are turned down.

Features:
- JSONFormatter: One JSON object per record, with ``extra`` fields preserved
- setup_logging: Root logger, uvicorn and third-party logger configuration
- add_log_context: LoggerAdapter that stamps fields such as video_id on every line

Usage:
    from tubely.utils.logger import add_log_context, setup_logging

    setup_logging(log_level="INFO", json_logs=True)

    logger = logging.getLogger(__name__)
    log = add_log_context(logger, video_id="abc", owner_id="user1")
    log.info("Staging upload")
"""

import json
import logging
import sys
import traceback

from datetime import datetime, timezone
from typing import Any, Dict, Optional


# =============================================================================
# Constants
# =============================================================================

# Log level mapping from string to logging constants
LOG_LEVEL_MAP: Dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Third-party loggers to reduce verbosity
THIRD_PARTY_LOGGERS: list = [
    "motor",
    "pymongo",
    "boto3",
    "botocore",
    "s3transfer",
    "urllib3",
    "httpx",
    "httpcore",
    "multipart",
    "python_multipart",
    "asyncio",
]


# =============================================================================
# JSON Formatting
# =============================================================================


class LogJSONEncoder(json.JSONEncoder):
    """
    JSON encoder that never fails on a log record.

    Datetimes become ISO 8601 strings, bytes are decoded leniently and anything
    else unknown is rendered with str().
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, bytes):
            return obj.decode("utf-8", errors="replace")
        if isinstance(obj, (set, frozenset)):
            return list(obj)
        try:
            return str(obj)
        except Exception:
            return f"<non-serializable: {type(obj).__name__}>"


class JSONFormatter(logging.Formatter):
    """
    Logging formatter that renders each LogRecord as a single JSON object.

    Example output:
        {
            "timestamp": "2025-01-15T10:30:45.123456+00:00",
            "level": "INFO",
            "logger": "tubely.services.upload_service",
            "message": "Video stored",
            "extra": {"video_id": "5b2f...", "owner_id": "user1", "asset_key": "landscape/..."}
        }

    Attributes:
        include_extra_fields: Whether to include non-standard record attributes
        include_source_location: Whether to include file, line and function
    """

    # Standard LogRecord attributes to exclude from extra fields
    RESERVED_ATTRS: frozenset = frozenset(
        {
            "args",
            "asctime",
            "created",
            "exc_info",
            "exc_text",
            "filename",
            "funcName",
            "levelname",
            "levelno",
            "lineno",
            "message",
            "module",
            "msecs",
            "msg",
            "name",
            "pathname",
            "process",
            "processName",
            "relativeCreated",
            "stack_info",
            "thread",
            "threadName",
            "taskName",
            "color_message",
        }
    )

    def __init__(
        self,
        include_extra_fields: bool = True,
        include_source_location: bool = False,
    ) -> None:
        super().__init__()
        self.include_extra_fields = include_extra_fields
        self.include_source_location = include_source_location

    def format(self, record: logging.LogRecord) -> str:
        """
        Format a LogRecord as a JSON string.

        Args:
            record: The LogRecord to format

        Returns:
            Compact JSON representation of the record
        """
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
                timespec="microseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": self._format_message(record),
        }

        if self.include_source_location:
            log_entry["source"] = {
                "filename": record.filename,
                "lineno": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_entry["exception"] = self._format_exception(record)

        if record.stack_info:
            log_entry["stack_info"] = record.stack_info

        if self.include_extra_fields:
            extra_fields = {
                key: value
                for key, value in record.__dict__.items()
                if not key.startswith("_") and key not in self.RESERVED_ATTRS
            }
            if extra_fields:
                log_entry["extra"] = extra_fields

        try:
            return json.dumps(
                log_entry, cls=LogJSONEncoder, ensure_ascii=False, separators=(",", ":")
            )
        except (TypeError, ValueError) as e:
            return json.dumps(
                {
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "level": "ERROR",
                    "logger": "JSONFormatter",
                    "message": f"Failed to serialize log record: {e}",
                    "original_message": str(record.msg),
                },
                ensure_ascii=False,
            )

    @staticmethod
    def _format_message(record: logging.LogRecord) -> str:
        try:
            return record.getMessage()
        except Exception:
            return str(record.msg)

    @staticmethod
    def _format_exception(record: logging.LogRecord) -> Dict[str, Any]:
        exc_type, exc_value, _ = record.exc_info
        return {
            "type": exc_type.__name__ if exc_type else "Unknown",
            "message": str(exc_value) if exc_value else "",
            "traceback": "".join(traceback.format_exception(*record.exc_info)),
        }


class StandardFormatter(logging.Formatter):
    """
    Human-readable formatter for local development.

    Format: [TIMESTAMP] LEVEL logger_name: message
    """

    DEFAULT_FORMAT: str = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
    DEFAULT_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None) -> None:
        super().__init__(
            fmt=fmt or self.DEFAULT_FORMAT,
            datefmt=datefmt or self.DEFAULT_DATE_FORMAT,
        )


# =============================================================================
# Application Logging Setup
# =============================================================================


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    third_party_level: str = "WARNING",
) -> None:
    """
    Configure application-wide logging.

    Should be called once at application startup. It configures:
    - Root logger with a single stdout handler
    - JSON or plain text formatting
    - Uvicorn loggers using the same formatter
    - Reduced verbosity for third-party libraries

    Args:
        log_level: Application log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: If True, output JSON format; if False, output plain text
        third_party_level: Log level for third-party libraries (default WARNING)

    Example:
        setup_logging(log_level="DEBUG", json_logs=False)
    """
    level_str = log_level.upper()
    level = LOG_LEVEL_MAP.get(level_str, logging.INFO)

    if json_logs:
        formatter: logging.Formatter = JSONFormatter(
            include_extra_fields=True,
            include_source_location=level <= logging.DEBUG,
        )
    else:
        formatter = StandardFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    _configure_uvicorn_logging(formatter, level)
    _configure_third_party_loggers(LOG_LEVEL_MAP.get(third_party_level.upper(), logging.WARNING))

    logging.getLogger(__name__).info(
        "Logging configured: level=%s, json=%s", level_str, json_logs
    )


def _configure_uvicorn_logging(formatter: logging.Formatter, level: int) -> None:
    """Route uvicorn's loggers through the application formatter."""
    for name, stream in (
        ("uvicorn", sys.stdout),
        ("uvicorn.access", sys.stdout),
        ("uvicorn.error", sys.stderr),
    ):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.setLevel(level)
        uvicorn_logger.propagate = False
        uvicorn_logger.handlers.clear()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(formatter)
        uvicorn_logger.addHandler(handler)


def _configure_third_party_loggers(level: int) -> None:
    for logger_name in THIRD_PARTY_LOGGERS:
        logging.getLogger(logger_name).setLevel(level)


# =============================================================================
# Context Enrichment
# =============================================================================


class ContextLoggerAdapter(logging.LoggerAdapter):
    """
    LoggerAdapter that merges its context into each call's ``extra`` dict.

    Fields passed explicitly in ``extra`` win over the adapter's context.
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(kwargs.get("extra") or {})
        for key, value in self.extra.items():
            extra.setdefault(key, value)
        kwargs["extra"] = extra
        return msg, kwargs


def add_log_context(logger: logging.Logger, **kwargs: Any) -> ContextLoggerAdapter:
    """
    Wrap a logger so that every message carries the given context fields.

    Args:
        logger: Base logger to wrap
        **kwargs: Context fields, e.g. ``video_id`` and ``owner_id``

    Returns:
        ContextLoggerAdapter including the context in all log output

    Example:
        log = add_log_context(logger, video_id="abc", owner_id="user1")
        log.info("Upload staged")
        log.error("Upload failed", extra={"asset_key": "other/x.mp4"})
    """
    return ContextLoggerAdapter(logger, kwargs)


__all__ = [
    "ContextLoggerAdapter",
    "JSONFormatter",
    "LOG_LEVEL_MAP",
    "StandardFormatter",
    "add_log_context",
    "setup_logging",
]
