"""Logging setup with request-id propagation.

Every record emitted while a request is being handled carries that
request's id, which makes the process's own log stream line up with what
the collector receives.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

from trackwire.correlation import current_request


class RequestIdFilter(logging.Filter):
    """Inject ``request_id`` into every ``LogRecord`` before formatting."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = current_request()
        record.request_id = context.request_id if context is not None else None
        return True


class _JsonFormatter(logging.Formatter):
    """Render logs as compact JSON for machine-readable ingestion."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object | None] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        if record.exc_info is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def setup_logging(level: int | str = logging.INFO, json_output: bool = False) -> None:
    """Configure root logging once with a request-aware stdout handler.

    Handlers added afterwards (such as the capture handler installed by
    ``Tracker.instrument_logging``) are left to the caller.
    """

    root_logger: logging.Logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.filters.clear()

    handler = logging.StreamHandler(stream=sys.stdout)
    if json_output:
        formatter: logging.Formatter = _JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s request_id=%(request_id)s %(message)s",
        )
    handler.setFormatter(formatter)

    request_filter = RequestIdFilter()
    handler.addFilter(request_filter)
    root_logger.addFilter(request_filter)
    root_logger.addHandler(handler)


__all__ = ["RequestIdFilter", "setup_logging"]
