"""
Logging setup for the switch.

Both formatters report the emitting thread: the tick thread, the
per-job delivery threads and the front-end threads all log through the
same root logger. Web requests add their request ID.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from .context import RequestContext, generate_request_id, get_request_id

# Attributes every LogRecord has; anything else came in through `extra=`
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

REQUEST_ID_HEADER = b"x-request-id"


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, UTC)


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line.

    {"time": "2025-03-01T09:12:44.120Z", "level": "WARNING",
     "logger": "deadman.timer", "thread": "deadman-tick",
     "message": "Warning timer expired: ...", "request_id": "req-..."}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "time": _record_time(record).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        request_id = get_request_id()
        if request_id:
            entry["request_id"] = request_id
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update((k, v) for k, v in vars(record).items() if k not in _STANDARD_ATTRS)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """Compact terminal line: time, level, thread, logger, message."""

    def format(self, record: logging.LogRecord) -> str:
        when = _record_time(record).astimezone().strftime("%H:%M:%S")
        request_id = get_request_id()
        prefix = f"[{request_id[:12]}] " if request_id else ""
        line = f"{when} {record.levelname:<8} {record.threadName} {record.name}: {prefix}{record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    log_file: Path | None = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Replace the root handlers.

    Args:
        level: Log level name
        json_format: JSON on stderr. None picks JSON unless stderr is a TTY.
        log_file: Also write JSON lines here, rotated at max_bytes
        max_bytes: Rotation size for log_file
        backup_count: Rotated files kept
    """
    if json_format is None:
        json_format = not sys.stderr.isatty()

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(JSONFormatter() if json_format else HumanFormatter())
    root.addHandler(stream)

    if log_file is not None:
        log_file = Path(log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        rotating = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        rotating.setFormatter(JSONFormatter())
        root.addHandler(rotating)


class CorrelationIdMiddleware:
    """
    ASGI middleware: one request ID per HTTP request.

    Reuses the caller's X-Request-ID when present, otherwise generates one.
    The ID is set for the request's log lines and echoed on the response.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        incoming = dict(scope.get("headers", [])).get(REQUEST_ID_HEADER)
        request_id = incoming.decode("latin-1") if incoming else generate_request_id()

        async def send_with_request_id(message):
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((REQUEST_ID_HEADER, request_id.encode("latin-1")))
                message = {**message, "headers": headers}
            await send(message)

        with RequestContext(request_id=request_id):
            await self.app(scope, receive, send_with_request_id)
