"""
Logging configuration for srht-export.

Provides a human-readable console formatter and a JSON formatter for log
aggregation, plus a context manager that tags records with the service and
resource currently being processed.
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any

# Record attributes that formatters surface when present
CONTEXT_FIELDS = ("service", "resource", "status_code", "duration_ms")


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Produces one JSON object per line, suitable for log aggregation systems.
    """

    def __init__(
        self,
        include_exc_info: bool = True,
        extra_fields: dict[str, Any] | None = None,
    ):
        super().__init__()
        self.include_exc_info = include_exc_info
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        log_data.update(self.extra_fields)

        for name in CONTEXT_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if self.include_exc_info and record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_data, ensure_ascii=False)


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable formatter for console output.

    Colors the level name on terminals and appends service/resource context.
    """

    COLORS = {
        "DEBUG": "\033[36m",      # Cyan
        "INFO": "\033[32m",       # Green
        "WARNING": "\033[33m",    # Yellow
        "ERROR": "\033[31m",      # Red
        "CRITICAL": "\033[35m",   # Magenta
        "RESET": "\033[0m",
    }

    def __init__(self, use_colors: bool = True, stream: Any = None):
        super().__init__()
        stream = stream if stream is not None else sys.stderr
        self.use_colors = use_colors and hasattr(stream, "isatty") and stream.isatty()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for human reading."""
        levelname = record.levelname
        if self.use_colors:
            color = self.COLORS.get(levelname, self.COLORS["RESET"])
            levelname = f"{color}{levelname:8}{self.COLORS['RESET']}"
        else:
            levelname = f"{levelname:8}"

        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%H:%M:%S")
        message = record.getMessage()

        extra_info = []
        if hasattr(record, "service"):
            extra_info.append(f"service={record.service}")
        if hasattr(record, "resource"):
            extra_info.append(f"resource={record.resource}")
        if hasattr(record, "duration_ms"):
            extra_info.append(f"duration={record.duration_ms:.0f}ms")

        if extra_info:
            message = f"{message} [{', '.join(extra_info)}]"

        exc_text = ""
        if record.exc_info:
            exc_text = "\n" + "".join(traceback.format_exception(*record.exc_info))

        return f"{timestamp} {levelname} {record.name}: {message}{exc_text}"


def setup_structured_logging(
    level: int = logging.INFO,
    json_format: bool = False,
    log_file: str | None = None,
    service_name: str = "srht-export",
) -> logging.Logger:
    """
    Setup logging for the application.

    Logs go to stderr so that followed build logs on stdout stay clean.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, use JSON formatter; otherwise human-readable
        log_file: Optional file path for log output
        service_name: Name reported in JSON records

    Returns:
        Configured logger for the srht_client package
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter: logging.Formatter = StructuredFormatter(
            extra_fields={"app": service_name}
        )
    else:
        formatter = HumanReadableFormatter(use_colors=True)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)

    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(
            StructuredFormatter() if json_format else HumanReadableFormatter(use_colors=False)
        )
        file_handler.setLevel(level)
        root_logger.addHandler(file_handler)

    # urllib3 connection chatter is noise at DEBUG
    logging.getLogger("urllib3").setLevel(max(level, logging.INFO))

    logger = logging.getLogger("srht_client")
    logger.setLevel(level)
    logger.debug(f"Logging configured (json={json_format}, file={log_file})")

    return logger


class LogContext:
    """
    Context manager for adding structured context to logs.

    Example:
        with LogContext(service="git.sr.ht"):
            logger.info("Cloning repositories")
    """

    def __init__(self, **kwargs):
        self.context = kwargs
        self.old_factory = None

    def __enter__(self):
        """Add context to log records."""
        self.old_factory = logging.getLogRecordFactory()
        old_factory = self.old_factory
        context = self.context

        def record_factory(*args, **kwargs):
            record = old_factory(*args, **kwargs)
            for key, value in context.items():
                setattr(record, key, value)
            return record

        logging.setLogRecordFactory(record_factory)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Restore original log record factory."""
        if self.old_factory:
            logging.setLogRecordFactory(self.old_factory)


def log_api_call(
    logger: logging.Logger,
    method: str,
    url: str,
    status_code: int,
    duration_ms: float,
) -> None:
    """
    Log an API call with structured information.

    Successful calls are logged at DEBUG; client errors at WARNING and
    server errors at ERROR.
    """
    extra = {
        "status_code": status_code,
        "duration_ms": duration_ms,
    }

    level = logging.DEBUG
    if status_code >= 500:
        level = logging.ERROR
    elif status_code >= 400:
        level = logging.WARNING

    logger.log(
        level,
        f"{method} {url} -> {status_code} ({duration_ms:.0f}ms)",
        extra=extra,
    )
