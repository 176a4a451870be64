"""Logging setup for WebExtract.

Request-scoped fields (request id, method, path) live in a ContextVar, so
concurrent requests and background run threads never see each other's
context. Per-call fields such as ``run_id`` and ``node_id`` are passed
through ``log_with_context`` and merged on top.
"""

import json
import logging
import sys
import traceback
from contextvars import ContextVar, Token
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

_log_context: ContextVar[Dict[str, Any]] = ContextVar("webextract_log_context", default={})


class StructuredFormatter(logging.Formatter):
    """Renders each record as one JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info)
            }

        log_entry.update(getattr(record, "extra_fields", {}))
        return json.dumps(log_entry, default=str)


class LogContextFilter(logging.Filter):
    """Adds the caller's context fields to each record; per-call fields win."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.extra_fields = {**_log_context.get(), **getattr(record, "extra_fields", {})}
        return True


_context_filter = LogContextFilter()


DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(module)s:%(funcName)s:%(lineno)d] - %(message)s"

# Third-party loggers that are too chatty at INFO.
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
    "asyncio": logging.WARNING,
    "httpx": logging.WARNING,
    "openai": logging.WARNING,
}


def _add_handler(root_logger: logging.Logger, handler: logging.Handler, formatter: logging.Formatter) -> None:
    handler.setFormatter(formatter)
    handler.addFilter(_context_filter)
    root_logger.addHandler(handler)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    structured: bool = False,
    max_size: int = 10 * 1024 * 1024,
    backup_count: int = 5
) -> logging.Logger:
    """
    Replace the root handlers with a console handler and, optionally, a rotating file.

    Args:
        level: Root logging level name
        log_file: Path of the rotating log file; no file handler when omitted
        log_format: Format string for plain-text output
        structured: Emit one JSON object per record instead of plain text
        max_size: Bytes before the log file rotates
        backup_count: Rotated files to keep

    Returns:
        The root logger
    """
    if structured:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(fmt=log_format or DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    _add_handler(root_logger, logging.StreamHandler(sys.stdout), formatter)

    if log_file:
        from logging.handlers import RotatingFileHandler

        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        _add_handler(root_logger, RotatingFileHandler(log_file, maxBytes=max_size, backupCount=backup_count),
                     formatter)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_logging_context() -> Dict[str, Any]:
    return dict(_log_context.get())


def set_logging_context(**kwargs) -> Token:
    """Add fields to the current context; pass the token to ``clear_logging_context`` to undo."""
    return _log_context.set({**_log_context.get(), **kwargs})


def clear_logging_context(token: Optional[Token] = None) -> None:
    """Restore the context saved in ``token``, or drop every field when none is given."""
    if token is None:
        _log_context.set({})
    else:
        _log_context.reset(token)


def log_with_context(logger: logging.Logger, level: int, message: str, **context):
    """Log ``message`` with extra fields for this call only."""
    logger.log(level, message, extra={"extra_fields": context})
