"""
JSON logging for vault, factory and pool records.

Library modules only create module loggers and attach an ``event`` name plus
structured fields through ``extra``. Nothing is emitted until an embedding
application calls :func:`setup_logging`, which installs
:class:`CustomJsonFormatter` on a console handler and, when ``log_file`` is
given, a size-rotated file handler.

    from flypemaxi.core.logging_config import setup_logging

    setup_logging(level="DEBUG", log_file="/var/log/flypemaxi/vaults.json")

``FLYPE_LOG_LEVEL`` and ``FLYPE_LOG_FILE`` supply the defaults.
"""

import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO

from pythonjsonlogger import jsonlogger

DEFAULT_FORMAT = "%(timestamp)s %(level)s %(name)s %(message)s"
ROTATE_BYTES = 50 * 1024 * 1024
ROTATE_BACKUPS = 5


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Adds UTC timestamp, environment, service and call site to every record."""

    def __init__(
        self,
        fmt: str = DEFAULT_FORMAT,
        timestamp: bool = True,
        environment: Optional[str] = None,
        service_name: str = "flypemaxi",
    ):
        super().__init__(fmt=fmt)
        self.timestamp = timestamp
        self.environment = environment or "production"
        self.service_name = service_name

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if self.timestamp and not log_record.get("timestamp"):
            stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
            log_record["timestamp"] = stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")
        log_record["level"] = log_record.get("level") or record.levelname.lower()
        log_record.update(
            environment=self.environment,
            service=self.service_name,
            source={
                "function": record.funcName,
                "module": record.module,
                "line": record.lineno,
            },
        )


def _file_handler(log_file: str, max_bytes: int, backup_count: int) -> Optional[logging.Handler]:
    path = Path(log_file)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        return logging.handlers.RotatingFileHandler(
            filename=str(path), maxBytes=max_bytes, backupCount=backup_count
        )
    except OSError as exc:
        logging.getLogger(__name__).warning(
            "Log file unavailable, continuing without it",
            extra={"event": "logging.file_unavailable", "log_file": log_file, "error": str(exc)},
        )
        return None


def setup_logging(
    name: str = "flypemaxi",
    log_file: Optional[str] = None,
    level: Optional[str] = None,
    environment: str = "production",
    enable_console: bool = True,
    enable_file: bool = True,
    max_bytes: int = ROTATE_BYTES,
    backup_count: int = ROTATE_BACKUPS,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Configure ``name`` to emit JSON records and return it.

    Existing handlers on the logger are replaced, so calling this twice does
    not duplicate output. The service field is the top-level part of ``name``.

    Args:
        name: Logger to configure; ``flypemaxi`` covers every library module
        log_file: Rotating JSON file, defaulting to ``FLYPE_LOG_FILE``
        level: Level name, defaulting to ``FLYPE_LOG_LEVEL`` or INFO
        environment: Value of the ``environment`` field
        enable_console: Attach a stream handler
        enable_file: Attach the file handler when a log file is known
        stream: Console stream, stdout when omitted
    """
    level_value = getattr(logging, (level or os.getenv("FLYPE_LOG_LEVEL", "INFO")).upper())
    log_file = log_file or os.getenv("FLYPE_LOG_FILE")
    formatter = CustomJsonFormatter(
        environment=environment, service_name=name.split(".")[0]
    )

    handlers: List[logging.Handler] = []
    if enable_console:
        handlers.append(logging.StreamHandler(stream or sys.stdout))
    if enable_file and log_file:
        handler = _file_handler(log_file, max_bytes, backup_count)
        if handler is not None:
            handlers.append(handler)

    logger = logging.getLogger(name)
    logger.setLevel(level_value)
    logger.handlers = []
    for handler in handlers:
        handler.setLevel(level_value)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def get_logger(name: str, log_file: Optional[str] = None, level: Optional[str] = None) -> logging.Logger:
    """Return ``name``, configuring it with :func:`setup_logging` the first time."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    return setup_logging(name=name, log_file=log_file, level=level)
