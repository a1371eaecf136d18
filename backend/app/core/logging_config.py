"""
Logging for the Library Management API

Production writes one JSON object per line so the records can be shipped to a
log aggregator as-is. Every other environment gets short readable lines on
stdout and, when LOG_FILE is set, a detailed rotating file.

Each record is stamped with the request id and the authenticated user id of
the request being served (see RequestLoggingMiddleware and get_current_user).
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

from app.core.config import settings

LOGGER_NAME = "library"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024

_request_id: ContextVar[str] = ContextVar("request_id", default="")
_user_id: ContextVar[str] = ContextVar("user_id", default="")

# LogRecord attributes that are not "extra" fields
_STANDARD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


def generate_request_id() -> str:
    return uuid.uuid4().hex[:12]


def get_request_id() -> str:
    return _request_id.get()


def set_request_id(request_id: str) -> None:
    _request_id.set(request_id)


def get_user_id() -> str:
    return _user_id.get()


def set_user_id(user_id: str) -> None:
    _user_id.set(user_id)


def clear_log_context() -> None:
    _request_id.set("")
    _user_id.set("")


class StructuredFormatter(logging.Formatter):
    """One JSON document per record"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.utcnow().isoformat(timespec="milliseconds") + "Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        if get_request_id():
            entry["request_id"] = get_request_id()
        if get_user_id():
            entry["user_id"] = get_user_id()

        entry.update({
            key: value for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        })

        if record.exc_info and record.exc_info[0]:
            entry["exc_type"] = record.exc_info[0].__name__
            entry["exc"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ReadableFormatter(logging.Formatter):
    """Plain text with the request and user ids filled in"""

    def format(self, record: logging.LogRecord) -> str:
        record.request_id = get_request_id() or "-"
        record.user_id = get_user_id() or "-"
        return super().format(record)


class LibraryLogger(logging.Logger):
    """Logger with helpers for the events the API reports on"""

    def log_request(self, method: str, path: str, status_code: int, duration_ms: float, **fields) -> None:
        if status_code >= 500:
            level = logging.ERROR
        elif status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO
        self.log(
            level,
            f"{method} {path} -> {status_code} in {duration_ms:.1f}ms",
            extra={"event": "http", "method": method, "path": path,
                   "status": status_code, "duration_ms": round(duration_ms, 2), **fields},
        )

    def log_auth_event(self, event: str, success: bool, user_email: Optional[str] = None,
                       reason: Optional[str] = None, **fields) -> None:
        outcome = "ok" if success else "failed"
        parts = [f"[Auth] {event} {outcome}"]
        if user_email:
            parts.append(user_email)
        if reason:
            parts.append(f"({reason})")
        self.log(
            logging.INFO if success else logging.WARNING,
            " ".join(parts),
            extra={"event": "auth", "auth_event": event, "success": success,
                   "email": user_email, "reason": reason, **fields},
        )

    def log_job_event(self, job_name: str, event: str, **fields) -> None:
        summary = ", ".join(f"{k}={v}" for k, v in fields.items())
        self.info(
            f"[{job_name}] {event}" + (f": {summary}" if summary else ""),
            extra={"event": "job", "job": job_name, "job_event": event, **fields},
        )

    def log_error_with_context(self, error: Exception, context: Optional[str] = None, **fields) -> None:
        self.error(
            f"[{context or 'Error'}] {type(error).__name__}: {error}",
            exc_info=error,
            extra={"event": "error", "error_type": type(error).__name__, "context": context, **fields},
        )


def _rotating_file(formatter: logging.Formatter, backups: int) -> logging.Handler:
    path = Path(settings.LOG_FILE)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(path, maxBytes=LOG_FILE_MAX_BYTES, backupCount=backups)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def _build_handlers(structured: bool) -> List[logging.Handler]:
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)

    if structured:
        formatter = StructuredFormatter()
        console.setFormatter(formatter)
        handlers = [console]
        if settings.LOG_FILE:
            handlers.append(_rotating_file(formatter, backups=10))
        return handlers

    console.setFormatter(ReadableFormatter("%(levelname)-8s | %(message)s"))
    handlers = [console]
    if settings.LOG_FILE:
        detailed = ReadableFormatter(
            "%(asctime)s | %(levelname)-8s | [%(request_id)s] [%(user_id)s] | "
            "%(module)s.%(funcName)s:%(lineno)d | %(message)s"
        )
        handlers.append(_rotating_file(detailed, backups=5))
    return handlers


def setup_logging() -> LibraryLogger:
    """Configure the application logger for the current environment"""
    logging.setLoggerClass(LibraryLogger)
    app_logger = logging.getLogger(LOGGER_NAME)
    app_logger.__class__ = LibraryLogger
    app_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    app_logger.propagate = False

    app_logger.handlers.clear()
    structured = settings.is_production()
    for handler in _build_handlers(structured):
        app_logger.addHandler(handler)

    for noisy in ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine", "aiosmtplib"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app_logger.debug(f"Logging ready (env={settings.ENVIRONMENT}, json={structured})")
    return app_logger


logger: LibraryLogger = setup_logging()


__all__ = [
    "logger",
    "setup_logging",
    "get_request_id",
    "set_request_id",
    "get_user_id",
    "set_user_id",
    "clear_log_context",
    "generate_request_id",
    "LibraryLogger",
]
