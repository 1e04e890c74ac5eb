"""Process-wide logging setup for Aquamarket.

:func:`configure_logging` installs one stderr handler on the root logger,
either plain text or one JSON object per line.  Both formats carry the
correlation id of the request being served, taken from
:data:`REQUEST_ID_CTX`: the HTTP middleware sets it per request and the
``sweep`` command sets it per run.

Modules log through their own ``logging.getLogger(__name__)`` and tag
notable lines with ``extra={"event": events.X}``; the JSON format lifts
``event`` to a top-level key so log queries can filter on it.

Environment fallbacks (read at call time)::

    LOG_LEVEL   DEBUG | INFO | WARNING | ERROR | CRITICAL   (default INFO)
    LOG_FORMAT  text | json                                 (default text)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

__all__ = ["configure_logging", "JsonFormatter", "REQUEST_ID_CTX", "RequestContextFilter"]

logger = logging.getLogger(__name__)

#: Correlation id of the request or sweep being handled; ``"-"`` otherwise.
#: Tasks spawned while handling a request (the detached audit and
#: notification writes) inherit it.
REQUEST_ID_CTX: ContextVar[str] = ContextVar("request_id", default="-")

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_FORMATS = ("text", "json")

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(request_id)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty below WARNING unless the process runs at DEBUG.
_QUIET_LOGGERS = ("aiosqlite", "asyncio", "httpx", "httpcore", "uvicorn.access")

# Attribute names every LogRecord has; anything else came from ``extra=``.
_STANDARD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
    "request_id",
}


class RequestContextFilter(logging.Filter):
    """Stamp ``record.request_id`` from :data:`REQUEST_ID_CTX`."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.request_id = REQUEST_ID_CTX.get()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    ``ts``, ``level``, ``logger``, ``request_id``, ``event`` and ``message``
    are always present (``event`` may be ``null``).  Other ``extra=`` keys
    go under ``extra`` and a traceback, if any, under ``exc_info``::

        {"ts": "2026-10-18T12:34:56.789Z", "level": "INFO",
         "logger": "aquamarket.service.base", "request_id": "a3f2b1c0",
         "event": "LISTING_TRANSITION", "message": "Listing 3f2a...: active -> paused by owner 7"}
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        created = datetime.fromtimestamp(record.created, tz=UTC)
        extra = {key: value for key, value in record.__dict__.items() if key not in _STANDARD_ATTRS}
        payload: dict[str, Any] = {
            "ts": created.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", REQUEST_ID_CTX.get()),
            "event": extra.pop("event", None),
            "message": record.getMessage(),
        }
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _resolve(value: str | None, env_var: str, default: str, allowed: tuple[str, ...]) -> str:
    raw = value or os.environ.get(env_var) or default
    for candidate in allowed:
        if candidate.lower() == raw.strip().lower():
            return candidate
    raise ValueError(f"Unknown {env_var} {raw!r}. Must be one of: {', '.join(allowed)}")


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Configure the root logger.

    Args:
        level: Level name; falls back to ``$LOG_LEVEL``, then ``INFO``.
        fmt: ``text`` or ``json``; falls back to ``$LOG_FORMAT``, then ``text``.
        force: Replace existing root handlers.  Without it, a root logger
            that already has handlers (uvicorn, pytest) only gets its level
            changed.

    Raises:
        ValueError: Unknown level or format.
    """
    resolved_level = _resolve(level, "LOG_LEVEL", "INFO", _LEVELS)
    resolved_fmt = _resolve(fmt, "LOG_FORMAT", "text", _FORMATS)

    root = logging.getLogger()
    root.setLevel(resolved_level)
    if root.handlers and not force:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(RequestContextFilter())
    if resolved_fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(fmt=_TEXT_FORMAT, datefmt=_DATE_FORMAT))
    root.handlers.clear()
    root.addHandler(handler)

    quiet_level = logging.NOTSET if resolved_level == "DEBUG" else logging.WARNING
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
