"""Shared event buffer used by global batching."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable

from trackwire import metrics
from trackwire.models.events import IncomingRequestEvent, LogEvent, OutboundCallEvent

BufferedEvent = LogEvent | OutboundCallEvent | IncomingRequestEvent


class EventBuffer:
    """Ordered queue of events awaiting transmission.

    Only touched from the event-loop thread, so appends and drains never
    interleave. Whatever :meth:`drain` hands out must come back through
    :meth:`requeue` if it could not be delivered.
    """

    def __init__(self) -> None:
        self._events: deque[BufferedEvent] = deque()

    def __len__(self) -> int:
        return len(self._events)

    def append(self, event: BufferedEvent) -> None:
        self._events.append(event)
        metrics.BUFFERED_EVENTS.set(len(self._events))

    def drain(self) -> list[BufferedEvent]:
        batch = list(self._events)
        self._events.clear()
        metrics.BUFFERED_EVENTS.set(0)
        return batch

    def requeue(self, batch: Iterable[BufferedEvent]) -> None:
        """Put a failed batch back in front of anything appended since."""
        self._events.extendleft(reversed(list(batch)))
        metrics.BUFFERED_EVENTS.set(len(self._events))

    def snapshot(self) -> list[BufferedEvent]:
        return list(self._events)


__all__ = ["BufferedEvent", "EventBuffer"]
