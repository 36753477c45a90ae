"""Log interception via an extra ``logging.Handler``.

The handler is attached explicitly (see ``Tracker.instrument_logging``)
rather than by replacing logging entry points. Other handlers on the same
logger keep receiving every record untouched.

Sharp edge: attached to the root logger it observes every library in the
process, not only code running under a tracked request. Records are still
only attributed when a request (or the batch buffer) is there to take them.
Only records that pass the logger's effective level reach the handler.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import UTC, datetime

from trackwire.correlation import EventSink, capture_suppressed
from trackwire.models.events import LogEvent

_OWN_NAMESPACE = "trackwire"


def render_value(value: object) -> str:
    """Best-effort string form of one log argument. Never raises."""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value)
    except (TypeError, ValueError, RecursionError):
        pass
    try:
        return str(value)
    except Exception:  # noqa: BLE001
        return object.__repr__(value)


def render_message(record: logging.LogRecord) -> str:
    """Space-join the arguments of a log call into one message string.

    ``%``-style string messages are interpolated as logging normally would;
    when interpolation fails, or the message is not a string, each argument
    is rendered on its own. A lone mapping argument is only consumed by
    named placeholders; without one it is rendered alongside the message.
    """
    named_args = isinstance(record.args, Mapping) and bool(record.args)
    if isinstance(record.msg, str) and (not named_args or "%(" in record.msg):
        try:
            return record.getMessage()
        except (TypeError, ValueError, KeyError):
            pass

    if isinstance(record.args, tuple):
        parts: list[object] = [record.msg, *record.args]
    elif record.args:
        parts = [record.msg, record.args]
    else:
        parts = [record.msg]
    return " ".join(render_value(part) for part in parts)


def _is_own_record(name: str) -> bool:
    return name == _OWN_NAMESPACE or name.startswith(f"{_OWN_NAMESPACE}.")


class LogCaptureHandler(logging.Handler):
    """Turns every record it sees into a :class:`LogEvent` for ``sink``."""

    def __init__(
        self,
        sink: EventSink,
        *,
        capture_own_logs: bool = False,
        level: int = logging.NOTSET,
    ) -> None:
        super().__init__(level)
        self._sink = sink
        self._capture_own_logs = capture_own_logs
        self._exception_formatter = logging.Formatter()

    def emit(self, record: logging.LogRecord) -> None:
        if capture_suppressed():
            return
        if not self._capture_own_logs and _is_own_record(record.name):
            return
        try:
            message = render_message(record)
            if record.exc_info:
                message = f"{message}\n{self._exception_formatter.formatException(record.exc_info)}"
            event = LogEvent(
                level=record.levelname.lower(),
                message=message,
                logger=record.name,
                timestamp=datetime.fromtimestamp(record.created, UTC),
            )
            self._sink.record_log(event)
        except Exception:  # noqa: BLE001
            self.handleError(record)


__all__ = ["LogCaptureHandler", "render_message", "render_value"]
