"""
Logging configuration.

JSON output in production, a human-readable line elsewhere. The signed-in
user's email and a request id are attached through contextvars so every log
line emitted while handling a request carries them.
"""

import json
import logging
import sys
from contextvars import ContextVar
from typing import Optional

_user_email: ContextVar[Optional[str]] = ContextVar("user_email", default=None)
_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def set_log_context(user_email: Optional[str] = None, request_id: Optional[str] = None):
    if user_email is not None:
        _user_email.set(user_email)
    if request_id is not None:
        _request_id.set(request_id)


def clear_log_context():
    _user_email.set(None)
    _request_id.set(None)


def _context_fields() -> dict:
    fields = {}
    user = _user_email.get()
    if user:
        fields["user"] = user
    request_id = _request_id.get()
    if request_id:
        fields["request_id"] = request_id
    return fields


class StructuredFormatter(logging.Formatter):
    """JSON log formatter with context fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_context_fields())
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


class HumanReadableFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        parts = [
            f"[{self.formatTime(record, self.datefmt)}]",
            f"{record.levelname:8s}",
            f"{record.name}:",
            record.getMessage(),
        ]
        ctx = _context_fields()
        if ctx:
            parts.append("[" + ", ".join(f"{k}={v}" for k, v in ctx.items()) + "]")

        msg = " ".join(parts)
        if record.exc_info and record.exc_info[1]:
            msg += "\n" + self.formatException(record.exc_info)
        return msg


def configure_logging(environment: str = "development", log_level: str = "INFO"):
    """Install a single stdout handler on the root logger."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if environment == "production":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanReadableFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    root_logger.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
