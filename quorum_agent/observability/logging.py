"""
Structured Logging

Configures the agent's logger tree. Console output is plain text, colored or
JSON; the optional log file is always JSON and rotates by size.

Every agent operation (start, stop, update-config...) runs inside
``operation_context``. Records logged meanwhile, from any module or task, carry
the operation's name and ID, so one restart can be followed across the lock,
the config store and the supervisor.
"""

import contextvars
import json
import logging
import sys
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from logging.handlers import RotatingFileHandler
from typing import Iterator, Optional

ROOT_LOGGER_NAME = "quorum_agent"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Console output formats."""

    JSON = "json"
    TEXT = "text"
    COLORED = "colored"


@dataclass
class LogConfig:
    """Logging configuration."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.TEXT
    output_file: Optional[str] = None
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5
    hostname: Optional[str] = None


@dataclass(frozen=True)
class Operation:
    name: str
    operation_id: str


current_operation: contextvars.ContextVar[Optional[Operation]] = contextvars.ContextVar(
    'current_operation', default=None
)

# Attributes every LogRecord has; anything else was passed through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    'message',
    'asctime',
    'operation',
    'operation_id',
    'host',
}


class OperationFilter(logging.Filter):
    """Stamp records with the running operation and this agent's host."""

    def __init__(self, hostname: Optional[str] = None):
        super().__init__()
        self.hostname = hostname

    def filter(self, record):
        operation = current_operation.get()
        record.operation = operation.name if operation else None
        record.operation_id = operation.operation_id if operation else None
        record.host = self.hostname
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "host": getattr(record, 'host', None),
            "operation": getattr(record, 'operation', None),
            "operation_id": getattr(record, 'operation_id', None),
        }

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith('_')
        }
        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """``time - logger - LEVEL - message``, with the operation ID when one is running."""

    def __init__(self):
        super().__init__('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    def format(self, record):
        text = super().format(record)
        operation_id = getattr(record, 'operation_id', None)
        if operation_id:
            first_line, newline, rest = text.partition("\n")
            text = f"{first_line} [{operation_id}]{newline}{rest}"
        return text


class ColoredFormatter(logging.Formatter):
    """Short colored lines for a terminal."""

    LEVEL_COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[1;31m',
    }
    RESET = '\033[0m'

    def format(self, record):
        color = self.LEVEL_COLORS.get(record.levelname, '')
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        logger_name = record.name
        if logger_name.startswith(ROOT_LOGGER_NAME + "."):
            logger_name = logger_name[len(ROOT_LOGGER_NAME) + 1 :]

        line = f"{timestamp} {color}{record.levelname[0]}{self.RESET} {logger_name}: {record.getMessage()}"

        operation = getattr(record, 'operation', None)
        if operation:
            line += f" {color}({operation} {record.operation_id[-8:]}){self.RESET}"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


def _build_formatter(log_format: LogFormat) -> logging.Formatter:
    if log_format == LogFormat.JSON:
        return JSONFormatter()
    if log_format == LogFormat.COLORED:
        return ColoredFormatter()
    return TextFormatter()


def setup_logging(config: LogConfig) -> logging.Logger:
    """Configure the agent's logger tree; safe to call more than once."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    level = getattr(logging, LogLevel(config.level).value)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.addFilter(OperationFilter(config.hostname))
    console_handler.setFormatter(_build_formatter(LogFormat(config.format)))
    logger.addHandler(console_handler)

    if config.output_file:
        file_handler = RotatingFileHandler(
            config.output_file, maxBytes=config.max_file_size, backupCount=config.backup_count
        )
        file_handler.setLevel(level)
        file_handler.addFilter(OperationFilter(config.hostname))
        file_handler.setFormatter(JSONFormatter())
        logger.addHandler(file_handler)

    logger.propagate = False

    # Reduce noise from the AWS SDK
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('boto3').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    return logger


@contextmanager
def operation_context(name: str, operation_id: str = None) -> Iterator[str]:
    """Tag every record logged inside the block with the operation and one ID."""
    operation_id = operation_id or f"{name}-{uuid.uuid4().hex[:12]}"
    token = current_operation.set(Operation(name, operation_id))
    try:
        yield operation_id
    finally:
        current_operation.reset(token)
