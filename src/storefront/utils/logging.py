"""Logging configuration shared by the storefront client engine and the shopping service."""

import logging
import logging.handlers
import os
import sys
from pathlib import Path

import structlog

_LEVELS = {
    "production": "INFO",
    "staging": "INFO",
    "development": "DEBUG",
    "test": "WARNING",
}

# Libraries that log every request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "protean", "asyncio")


def current_environment() -> str:
    return (os.getenv("ENV") or os.getenv("ENVIRONMENT") or os.getenv("PROTEAN_ENV") or "development").lower()


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", _LEVELS.get(current_environment(), "INFO"))


def setup_stdlib_logging(log_dir: str | Path | None = "logs", log_file_prefix: str = "storefront") -> None:
    """Console logging, plus rotating ``<prefix>.log`` and ``<prefix>_error.log`` when ``log_dir`` is given."""
    log_level = get_log_level()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    root_logger.addHandler(console_handler)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        for filename, level in ((f"{log_file_prefix}.log", log_level), (f"{log_file_prefix}_error.log", logging.ERROR)):
            handler = logging.handlers.RotatingFileHandler(
                filename=log_dir / filename,
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
            handler.setLevel(level)
            root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_structlog() -> None:
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if current_environment() in ("production", "staging"):
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stdout.isatty(),
                exception_formatter=structlog.dev.RichTracebackFormatter(max_frames=4),
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging(log_dir: str | Path | None = "logs", log_file_prefix: str = "storefront") -> None:
    """Configure stdlib handlers and the structlog processor chain."""
    setup_stdlib_logging(log_dir, log_file_prefix)
    setup_structlog()


def log_context(**kwargs):
    """Attach ``kwargs`` to every log line emitted inside the ``with`` block.

    Context variables are task-local, so a sync running in a scheduled task
    never leaks its context into other tasks.
    """
    return structlog.contextvars.bound_contextvars(**kwargs)
