"""
JSON log lines for the relay.

Each record becomes one JSON object carrying the request's correlation id plus
any relay context passed through extra= (event, message, phone, endpoint, HTTP
status). Phone numbers are masked to their last four digits before they reach
the log stream.
"""
import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

from whatsrelay.utils.timestamps import format_timestamp

correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

EXTRA_FIELDS = ("event_id", "message_id", "phone", "endpoint", "status_code")
NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx", "aiosqlite")


def get_correlation_id() -> Optional[str]:
    return correlation_id_ctx.get()


def set_correlation_id(cid: str) -> None:
    correlation_id_ctx.set(cid)


def generate_correlation_id() -> str:
    """New correlation id, uuid4 hex."""
    return uuid.uuid4().hex


def mask_phone(phone: Any) -> str:
    """'15551234567@c.us' -> '***4567'. Anything without digits is fully masked."""
    digits = "".join(ch for ch in str(phone).split("@", 1)[0] if ch.isdigit())
    return f"***{digits[-4:]}" if digits else "***"


class StructuredJsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": format_timestamp(datetime.fromtimestamp(record.created, tz=timezone.utc)),
            "level": record.levelname,
            "correlation_id": get_correlation_id(),
            "module": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        for key in EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is None:
                continue
            entry[key] = mask_phone(value) if key == "phone" else value

        return json.dumps(entry, default=str)


def configure_structured_logging(log_level: str = "INFO") -> None:
    """Route all logging through one stdout JSON handler. Call once at startup."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for handler in root.handlers[:]:
        root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
