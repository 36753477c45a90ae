"""Sealing request records and flushing the shared buffer.

Per-request mode posts each request's record on its own, at most once, and
does not retry. Batch mode defers everything to :class:`BatchFlusher`, which
puts a failed batch back at the head of the buffer.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from trackwire import metrics
from trackwire.buffer import EventBuffer
from trackwire.collector import CollectorClient
from trackwire.correlation import ContextRegistry, RequestContext
from trackwire.errors import TransmissionError
from trackwire.models.events import RequestOutcome

logger = logging.getLogger(__name__)


class RequestFinalizer:
    def __init__(
        self,
        registry: ContextRegistry,
        collector: CollectorClient,
        *,
        buffer: EventBuffer | None = None,
    ) -> None:
        self._registry = registry
        self._collector = collector
        self._buffer = buffer

    async def finalize(
        self,
        context: RequestContext,
        *,
        response: Any,
        status: int,
        outcome: RequestOutcome = "completed",
    ) -> bool:
        """Seal and ship ``context``'s record. Returns False if it was already sealed."""
        if not context.claim_finalization():
            return False

        event = context.event
        event.response = response
        event.status = status
        event.duration_ms = context.elapsed_ms()
        event.outcome = outcome
        metrics.EVENTS_CAPTURED_TOTAL.labels(kind="incoming").inc()

        try:
            if self._buffer is not None:
                self._buffer.append(event)
            else:
                await self._collector.send_events([event])
        except TransmissionError as exc:
            logger.warning(
                "Dropping record for %s %s: %s", event.method, event.path, exc
            )
        finally:
            self._registry.close(context)
        return True

    async def sweep_abandoned(self, max_age_s: float) -> int:
        """Finalize contexts open longer than ``max_age_s`` as abandoned."""
        swept = 0
        for context in self._registry.expired(max_age_s):
            # Already-sealed contexts are mid-transmission and close themselves.
            if await self.finalize(context, response=None, status=0, outcome="abandoned"):
                swept += 1
                metrics.ABANDONED_REQUESTS_TOTAL.inc()
        if swept:
            logger.info("Evicted %d abandoned request context(s)", swept)
        return swept


class BatchFlusher:
    def __init__(self, buffer: EventBuffer, collector: CollectorClient) -> None:
        self._buffer = buffer
        self._collector = collector
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def flush(self) -> int:
        """Send everything buffered as one batch. Returns the number of events sent.

        A no-op while a previous flush is still awaiting the collector or when
        nothing is buffered.
        """
        if self._in_flight or not len(self._buffer):
            return 0

        self._in_flight = True
        batch = self._buffer.drain()
        try:
            await self._collector.send_events(batch)
        except TransmissionError as exc:
            self._buffer.requeue(batch)
            logger.warning("Requeued batch of %d event(s): %s", len(batch), exc)
            return 0
        except asyncio.CancelledError:
            self._buffer.requeue(batch)
            raise
        finally:
            self._in_flight = False
        return len(batch)


__all__ = ["BatchFlusher", "RequestFinalizer"]
