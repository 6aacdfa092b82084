"""Structured JSON logging to standard output."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any


class JsonFormatter(logging.Formatter):
    """Render log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        moment = datetime.fromtimestamp(record.created, tz=timezone.utc).astimezone()
        payload: dict[str, Any] = {
            "level": record.levelname.lower(),
            "time": moment.isoformat(timespec="milliseconds"),
            "message": record.getMessage(),
        }
        payload.update(getattr(record, "fields", {}) or {})
        return json.dumps(payload, default=str)


class _StdoutHandler(logging.StreamHandler):
    """Stream handler that always writes to the current sys.stdout."""

    def __init__(self) -> None:
        super().__init__(sys.stdout)

    @property
    def stream(self):
        return sys.stdout

    @stream.setter
    def stream(self, value) -> None:
        pass


_logger = logging.getLogger("auctionhouse")
if not _logger.handlers:
    _handler = _StdoutHandler()
    _handler.setFormatter(JsonFormatter())
    _logger.addHandler(_handler)
_logger.setLevel(logging.INFO)
_logger.propagate = False


def info(message: str, **kwargs: Any) -> None:
    """Log an informational message with extra fields."""
    _logger.info(message, extra={"fields": kwargs})


def error(message: str, err: BaseException | None, **kwargs: Any) -> None:
    """Log an error message, attaching the error under the "error" key."""
    fields = dict(kwargs)
    if err is not None:
        fields["error"] = str(err)
    _logger.error(message, extra={"fields": fields})