"""Structured logging configuration using structlog."""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5
RETENTION_DAYS = 30

# Chatty third-party loggers that would otherwise flood the operator output
NOISY_LOGGERS = ("kubernetes.client.rest", "urllib3", "httpx", "httpcore")

VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _cleanup_old_logs(log_file: Path) -> None:
    """Delete rotated log files older than RETENTION_DAYS."""
    log_dir = log_file.parent
    if not log_dir.exists():
        return
    cutoff = datetime.now() - timedelta(days=RETENTION_DAYS)
    for rotated in log_dir.glob(f"{log_file.name}*"):
        try:
            if datetime.fromtimestamp(rotated.stat().st_mtime) < cutoff:
                rotated.unlink()
        except OSError:
            pass  # Ignore errors during cleanup


def _setup_file_logging(log_file: Path) -> None:
    """Attach a rotating JSON file handler to the root logger."""
    log_file.parent.mkdir(parents=True, exist_ok=True)
    _cleanup_old_logs(log_file)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=MAX_LOG_SIZE,
        backupCount=BACKUP_COUNT,
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=_shared_processors(),
        )
    )
    logging.getLogger().addHandler(file_handler)


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    log_file: Path | None = None,
) -> None:
    """Configure structured logging for the operator.

    Inside a cluster the operator logs JSON lines to stdout so that the
    node's log collector can parse them. Locally the structlog console
    renderer is friendlier. A rotating file handler is added only when
    ``log_file`` is given.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR).
        json_output: Render console logs as JSON.
        log_file: Optional path of a rotating JSON log file.

    Raises:
        ValueError: If ``level`` is not a known level name.
    """
    level_name = level.upper()
    if level_name not in VALID_LEVELS:
        raise ValueError(f"log level must be one of: {', '.join(VALID_LEVELS)}")
    log_level = logging.getLevelName(level_name)

    shared_processors = _shared_processors()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    if json_output:
        console_formatter = structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=shared_processors,
        )
    else:
        console_formatter = structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=True),
            foreign_pre_chain=shared_processors,
        )
    console_handler.setFormatter(console_formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Let handlers filter
    root_logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    if log_file is not None:
        _setup_file_logging(log_file)


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """Get a configured logger with optional initial context.

    Args:
        name: Logger name. If None, uses the calling module's name.
        **initial_context: Initial context variables to bind to the logger.

    Returns:
        A bound structlog logger.
    """
    logger: structlog.BoundLogger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger
