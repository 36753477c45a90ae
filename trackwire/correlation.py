"""Attribution of captured events to the unit of work that produced them.

The active request travels in a ``contextvars.ContextVar``. asyncio copies
the current context into every task it creates, so a log line or outbound
call made anywhere under a request handler (including in tasks it spawns)
resolves to that request alone. Concurrent requests never see each other's
events.
"""

from __future__ import annotations

import contextvars
import logging
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Protocol

from trackwire import metrics
from trackwire.buffer import EventBuffer
from trackwire.models.events import IncomingRequestEvent, LogEvent, OutboundCallEvent

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RequestContext:
    """State for one in-flight inbound request."""

    event: IncomingRequestEvent
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: float = field(default_factory=time.monotonic)
    finalized: bool = False

    def claim_finalization(self) -> bool:
        """Check-and-set the finalized flag. Only the first caller gets True.

        There is no await between the check and the set, so on a single event
        loop no other trigger can slip in between.
        """
        if self.finalized:
            return False
        self.finalized = True
        return True

    def age_s(self, now: float | None = None) -> float:
        return (time.monotonic() if now is None else now) - self.started_at

    def elapsed_ms(self) -> float:
        return round(self.age_s() * 1000, 3)


_ACTIVE_REQUEST: contextvars.ContextVar[RequestContext | None] = contextvars.ContextVar(
    "trackwire_active_request",
    default=None,
)


def current_request() -> RequestContext | None:
    return _ACTIVE_REQUEST.get()


@contextmanager
def request_scope(context: RequestContext) -> Iterator[RequestContext]:
    """Make ``context`` the attribution target for the enclosed code."""
    token = _ACTIVE_REQUEST.set(context)
    try:
        yield context
    finally:
        _ACTIVE_REQUEST.reset(token)


# Set while the collector client is talking to the collector. Anything logged
# by the HTTP stack during those calls describes tracking itself.
_CAPTURE_SUPPRESSED: contextvars.ContextVar[bool] = contextvars.ContextVar(
    "trackwire_capture_suppressed",
    default=False,
)


def capture_suppressed() -> bool:
    return _CAPTURE_SUPPRESSED.get()


@contextmanager
def suppress_capture() -> Iterator[None]:
    """Drop every event raised by the enclosed code, in this task only."""
    token = _CAPTURE_SUPPRESSED.set(True)
    try:
        yield
    finally:
        _CAPTURE_SUPPRESSED.reset(token)


class ContextRegistry:
    """Open request contexts, keyed by request id."""

    def __init__(self) -> None:
        self._open: dict[str, RequestContext] = {}

    def __len__(self) -> int:
        return len(self._open)

    def __contains__(self, context: object) -> bool:
        return isinstance(context, RequestContext) and context.request_id in self._open

    def open(self, method: str, path: str) -> RequestContext:
        context = RequestContext(event=IncomingRequestEvent(method=method, path=path))
        self._open[context.request_id] = context
        metrics.OPEN_CONTEXTS.set(len(self._open))
        return context

    def close(self, context: RequestContext) -> None:
        self._open.pop(context.request_id, None)
        metrics.OPEN_CONTEXTS.set(len(self._open))

    def expired(self, max_age_s: float) -> list[RequestContext]:
        """Contexts that have been open longer than ``max_age_s``."""
        now = time.monotonic()
        return [ctx for ctx in self._open.values() if ctx.age_s(now) > max_age_s]


class EventSink(Protocol):
    def record_log(self, event: LogEvent) -> None: ...

    def record_call(self, event: OutboundCallEvent) -> None: ...


class RequestCorrelator:
    """Per-request strategy: events join the record of the request that caused them."""

    def record_log(self, event: LogEvent) -> None:
        context = self._target("log")
        if context is not None:
            context.event.logs.append(event)

    def record_call(self, event: OutboundCallEvent) -> None:
        context = self._target("external")
        if context is not None:
            context.event.calls.append(event)

    @staticmethod
    def _target(kind: str) -> RequestContext | None:
        if capture_suppressed():
            return None
        context = current_request()
        if context is None or context.finalized:
            metrics.EVENTS_DROPPED_TOTAL.labels(kind=kind).inc()
            return None
        metrics.EVENTS_CAPTURED_TOTAL.labels(kind=kind).inc()
        return context


class BatchCorrelator:
    """Global batching strategy: every event lands in one shared buffer."""

    def __init__(self, buffer: EventBuffer) -> None:
        self._buffer = buffer

    def record_log(self, event: LogEvent) -> None:
        if capture_suppressed():
            return
        metrics.EVENTS_CAPTURED_TOTAL.labels(kind="log").inc()
        self._buffer.append(event)

    def record_call(self, event: OutboundCallEvent) -> None:
        if capture_suppressed():
            return
        metrics.EVENTS_CAPTURED_TOTAL.labels(kind="external").inc()
        self._buffer.append(event)


__all__ = [
    "BatchCorrelator",
    "ContextRegistry",
    "EventSink",
    "RequestContext",
    "RequestCorrelator",
    "capture_suppressed",
    "current_request",
    "request_scope",
    "suppress_capture",
]
