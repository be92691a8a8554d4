"""
Logging setup for the check-in engine.

JSON-structured output, a per-thread (per-task) context filter carrying the acting
person and the teammate under review, and decorators that wrap application
operations and repository calls with start/finish/failure lines.
"""

from __future__ import annotations

import inspect
import json
import logging
import logging.config
import os
import time
from collections.abc import Callable
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from types import TracebackType
from typing import Any, ParamSpec, TypeVar, cast

P = ParamSpec("P")
R = TypeVar("R")

LOGGER_ROOT = "checkins"

# Record attributes copied into the JSON payload when present
CONTEXT_FIELDS = ("actor_id", "teammate_id", "check_in_id", "snapshot_id", "request_id", "operation")


class StructuredFormatter(logging.Formatter):
    """Render log records as single-line JSON documents."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        event = getattr(record, "event", None)
        if event is not None:
            log_entry["event"] = event

        if record.exc_info:
            exc_type, exc_value, exc_tb = record.exc_info
            if exc_type is not None and exc_value is not None:
                log_entry["exception"] = {
                    "type": exc_type.__name__,
                    "message": str(exc_value),
                    "traceback": self.formatException((exc_type, exc_value, exc_tb)),
                }

        return json.dumps(log_entry, ensure_ascii=False, default=str)


_context_var: ContextVar[dict[str, Any]] = ContextVar("checkins_log_context", default={})


class ContextFilter(logging.Filter):
    """
    Attach the current logging context to every record.

    The context lives in a ``ContextVar``, so each thread or task sees only
    what it set itself. Values are never mutated in place; every change
    stores a fresh dict.
    """

    @property
    def context(self) -> dict[str, Any]:
        return _context_var.get()

    def set_context(self, **kwargs: Any) -> Token[dict[str, Any]]:
        return _context_var.set({**_context_var.get(), **kwargs})

    def clear_context(self) -> None:
        _context_var.set({})

    def reset(self, token: Token[dict[str, Any]]) -> None:
        _context_var.reset(token)

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.context.items():
            setattr(record, key, value)
        return True


context_filter = ContextFilter()


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    structured: bool = True,
    enable_console: bool = True,
    max_file_size: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Configure the ``checkins`` logger hierarchy via ``dictConfig``.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path; a rotating handler is added when set
        structured: JSON output on the console when True, plain text otherwise
        enable_console: Whether to write to stdout
        max_file_size: Rotation threshold in bytes for the file handler
        backup_count: Number of rotated files to keep

    Example:
        >>> setup_logging(level="DEBUG", log_file="./logs/checkins.log")
    """
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {"()": StructuredFormatter},
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "filters": {"context": {"()": lambda: context_filter}},
        "handlers": {},
        "loggers": {
            LOGGER_ROOT: {"level": level, "handlers": [], "propagate": False},
            "sqlalchemy.engine": {"level": "WARNING", "handlers": [], "propagate": False},
            "uvicorn.access": {"level": "WARNING", "handlers": [], "propagate": False},
        },
        "root": {"level": level, "handlers": []},
    }

    handler_configs = cast(dict[str, dict[str, Any]], config["handlers"])
    logger_configs = cast(dict[str, dict[str, Any]], config["loggers"])
    root_config = cast(dict[str, Any], config["root"])
    handler_names: list[str] = []

    if enable_console:
        handler_configs["console"] = {
            "class": "logging.StreamHandler",
            "level": level,
            "formatter": "structured" if structured else "standard",
            "filters": ["context"],
            "stream": "ext://sys.stdout",
        }
        handler_names.append("console")

    if log_file:
        handler_configs["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "structured",
            "filters": ["context"],
            "filename": log_file,
            "maxBytes": max_file_size,
            "backupCount": backup_count,
            "encoding": "utf-8",
        }
        handler_names.append("file")

    for logger_config in logger_configs.values():
        logger_config["handlers"] = list(handler_names)
    root_config["handlers"] = list(handler_names)

    logging.config.dictConfig(config)


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger namespaced under ``checkins``.

    Example:
        >>> get_logger("finalization").name
        'checkins.finalization'
    """
    if name == LOGGER_ROOT or name.startswith(f"{LOGGER_ROOT}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_ROOT}.{name}")


def set_context(**kwargs: Any) -> None:
    """
    Set logging context variables.

    Example:
        >>> set_context(actor_id=12, teammate_id=40)
    """
    context_filter.set_context(**kwargs)


def clear_context() -> None:
    context_filter.clear_context()


class LogContext:
    """Temporarily extend the logging context; restores the previous one on exit."""

    def __init__(self, **kwargs: Any):
        self.context: dict[str, Any] = {k: v for k, v in kwargs.items() if v is not None}
        self._token: Token[dict[str, Any]] | None = None

    def __enter__(self) -> LogContext:
        self._token = context_filter.set_context(**self.context)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            context_filter.reset(self._token)
            self._token = None


def log_operation(
    operation: str, logger: logging.Logger | None = None
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Log the start, success and failure of an application operation.

    When the wrapped function takes an ``actor`` argument its value is copied
    into the context as ``actor_id`` so every line emitted inside the call
    carries it.

    Example:
        >>> @log_operation("acknowledge_snapshot")
        ... def acknowledge(session, actor, snapshot_id):
        ...     pass
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        signature = inspect.signature(func)
        takes_actor = "actor" in signature.parameters

        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            func_logger = logger or get_logger(func.__module__)
            actor = None
            if takes_actor:
                try:
                    actor = signature.bind_partial(*args, **kwargs).arguments.get("actor")
                except TypeError:
                    actor = None

            with LogContext(operation=operation, actor_id=actor):
                func_logger.info(f"Starting {operation}")
                try:
                    result = func(*args, **kwargs)
                    func_logger.info(f"Completed {operation} successfully")
                    return result
                except Exception as e:
                    func_logger.error(f"Failed {operation}: {str(e)}", exc_info=True)
                    raise

        return wrapper

    return decorator


def log_database_operation(operation: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Log a repository call with its duration.

    Example:
        >>> @log_database_operation("insert_check_in")
        ... def create(self, **fields):
        ...     pass
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            logger = get_logger("database")

            with LogContext(operation=f"db_{operation}"):
                logger.debug(f"Starting database operation: {operation}")
                started = time.perf_counter()
                try:
                    result = func(*args, **kwargs)
                    logger.debug(
                        f"Database operation {operation} completed in "
                        f"{time.perf_counter() - started:.3f}s"
                    )
                    return result
                except Exception as e:
                    logger.error(
                        f"Database operation {operation} failed after "
                        f"{time.perf_counter() - started:.3f}s: {str(e)}",
                        exc_info=True,
                    )
                    raise

        return wrapper

    return decorator


def configure_development_logging():
    setup_logging(
        level="DEBUG", log_file="./logs/development.log", structured=False, enable_console=True
    )


def configure_production_logging():
    setup_logging(
        level="INFO", log_file="./logs/production.log", structured=True, enable_console=True
    )


def configure_test_logging():
    setup_logging(level="WARNING", log_file=None, structured=False, enable_console=False)


def auto_configure_logging():
    """Pick a logging profile from the ``ENVIRONMENT`` variable."""
    env = os.getenv("ENVIRONMENT", "development").lower()

    if env == "production":
        configure_production_logging()
    elif env == "test":
        configure_test_logging()
    else:
        configure_development_logging()

    get_logger(__name__).info(f"Logging configured for {env} environment")


if not logging.getLogger().handlers:
    auto_configure_logging()
