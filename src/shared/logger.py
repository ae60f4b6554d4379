"""
Structured JSON Logging Configuration

Structured logging for the chargeback archiver. Every line is one JSON object
so log aggregation (CloudWatch, ELK, Splunk) can filter on topic, partition,
offset or chargeback id without regex parsing.

EXAMPLE OUTPUT:
{
  "timestamp": "2024-03-15T10:30:00.123Z",
  "level": "ERROR",
  "service": "chargeback-archiver",
  "logger": "src.consumer.consumer",
  "message": "Failed to decode chargeback record, skipping",
  "extra": {"topic": "chargebacks", "partition": 2, "offset": 57, "fault": "decode"}
}
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Root of every module logger in this project (src.consumer.consumer, ...)
PACKAGE_LOGGER = "src"

_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "message", "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "taskName", "correlation_id",
}


# ==============================================================================
# JSON FORMATTER
# ==============================================================================


class JSONFormatter(logging.Formatter):
    """
    Log formatter that outputs one JSON object per record.

    Fields: timestamp (ISO 8601, UTC), level, service, logger, message,
    correlation_id (chargeback id, when known), exception, and every extra
    field passed to the logger under "extra".
    """

    def __init__(self, service_name: str = "chargeback-archiver", include_extra: bool = True):
        super().__init__()
        self.service_name = service_name
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self._format_timestamp(record.created),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if getattr(record, "correlation_id", None) is not None:
            log_data["correlation_id"] = record.correlation_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self.include_extra:
            extra_fields = {
                k: v
                for k, v in record.__dict__.items()
                if k not in _STANDARD_ATTRS and not k.startswith("_")
            }
            if extra_fields:
                log_data["extra"] = extra_fields

        return json.dumps(log_data, default=str)

    @staticmethod
    def _format_timestamp(created: float) -> str:
        dt = datetime.fromtimestamp(created, tz=timezone.utc)
        return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


# ==============================================================================
# PLAIN TEXT FORMATTER (for development)
# ==============================================================================


class PlainTextFormatter(logging.Formatter):
    """
    Human-readable log formatter for local development.

    Format: [2024-03-15 10:30:00] INFO [chargeback-archiver] Chargeback archived
    """

    def __init__(self, service_name: str = "chargeback-archiver"):
        super().__init__(
            fmt=f"[%(asctime)s] %(levelname)s [{service_name}] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


# ==============================================================================
# LOGGER SETUP
# ==============================================================================


def setup_logger(
    name: str,
    service_name: str,
    log_level: str = "INFO",
    log_format: str = "json",
) -> logging.Logger:
    """
    Set up structured logging for the archiver.

    The handler is attached to the project's package logger so that every
    module logger (logging.getLogger(__name__)) inherits it.

    Args:
        name: Logger name to return (usually __name__ of the caller)
        service_name: Service identifier written on every line
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format ("json" or "text")

    Returns:
        The logger called name
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Prevent duplicate handlers if already configured
    if package_logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    if log_format.lower() == "json":
        formatter: logging.Formatter = JSONFormatter(service_name=service_name)
    else:
        formatter = PlainTextFormatter(service_name=service_name)

    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)
    package_logger.propagate = False

    if not name.startswith(PACKAGE_LOGGER + ".") and name != PACKAGE_LOGGER and not logger.handlers:
        logger.addHandler(console_handler)

    return logger


# ==============================================================================
# RECORD CONTEXT ADAPTER
# ==============================================================================


class RecordLogAdapter(logging.LoggerAdapter):
    """
    Logger adapter that adds Kafka record context to every line.

    The record's topic, partition and offset are merged into each call's
    extra fields; once the record is decoded, the chargeback id is added as
    correlation_id.

    Example:
        >>> log = RecordLogAdapter(logger, {"topic": "chargebacks", "partition": 2, "offset": 57})
        >>> log = log.with_chargeback("CB123")
        >>> log.info("Chargeback archived", extra={"key": "year=2024/..."})
    """

    def process(self, msg: str, kwargs: dict) -> tuple:
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs

    def with_chargeback(self, chargeback_id: Optional[str]) -> "RecordLogAdapter":
        """Return a copy of this adapter that also carries the chargeback id."""
        context = dict(self.extra)
        context["correlation_id"] = chargeback_id
        return RecordLogAdapter(self.logger, context)
