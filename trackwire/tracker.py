"""Wiring of the interception, correlation and delivery components.

A :class:`Tracker` is built once per process from :class:`TrackSettings`.
Building it validates the credential; nothing is instrumented until the
caller asks for it::

    tracker = Tracker.from_options(tracking_url="http://collector:3000", api_key=KEY)
    app = FastAPI(lifespan=tracker.lifespan)
    tracker.instrument_app(app)
    tracker.instrument_logging()
    client = tracker.http_client(timeout=5.0)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import httpx
from starlette.applications import Starlette

from trackwire.buffer import EventBuffer
from trackwire.collector import CollectorClient
from trackwire.config import TrackSettings, load_settings
from trackwire.correlation import BatchCorrelator, ContextRegistry, EventSink, RequestCorrelator
from trackwire.finalizer import BatchFlusher, RequestFinalizer
from trackwire.gate import PolicyCache, PolicyGate
from trackwire.interceptors.http_client import TrackingTransport, build_tracked_client
from trackwire.interceptors.log_capture import LogCaptureHandler
from trackwire.middleware import TrackingMiddleware
from trackwire.scheduler import TrackScheduler

logger = logging.getLogger(__name__)


class Tracker:
    def __init__(
        self,
        settings: TrackSettings,
        *,
        collector_http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.settings = settings
        self.collector = CollectorClient(
            settings.tracking_url,
            settings.api_key,
            timeout_s=settings.request_timeout_s,
            http_client=collector_http_client,
        )
        self.registry = ContextRegistry()
        self.buffer: EventBuffer | None = None
        self.flusher: BatchFlusher | None = None
        self.sink: EventSink
        if settings.mode == "batch":
            self.buffer = EventBuffer()
            self.sink = BatchCorrelator(self.buffer)
            self.flusher = BatchFlusher(self.buffer, self.collector)
        else:
            self.sink = RequestCorrelator()
        self.gate = PolicyGate(
            self.collector,
            cache=PolicyCache(settings.policy_cache_ttl_s),
            clock=clock,
        )
        self.finalizer = RequestFinalizer(self.registry, self.collector, buffer=self.buffer)
        self.scheduler = TrackScheduler()
        self._log_handlers: dict[str, tuple[logging.Logger, LogCaptureHandler]] = {}

    @classmethod
    def from_options(cls, **options: Any) -> Tracker:
        """Build from keyword options; raises ``ConfigurationError`` on a bad credential."""
        return cls(load_settings(**options))

    @property
    def batch_mode(self) -> bool:
        return self.flusher is not None

    # ── Instrumentation ──────────────────────────────────────────────

    def instrument_app(self, app: Starlette) -> None:
        app.add_middleware(TrackingMiddleware, tracker=self)

    def instrument_logging(self, target: logging.Logger | None = None) -> LogCaptureHandler:
        """Attach the capture handler to ``target`` (root by default). Idempotent."""
        target = target or logging.getLogger()
        existing = self._log_handlers.get(target.name)
        if existing is not None:
            return existing[1]
        handler = LogCaptureHandler(self.sink, capture_own_logs=self.settings.capture_own_logs)
        target.addHandler(handler)
        self._log_handlers[target.name] = (target, handler)
        logger.debug("Log capture attached to %r", target.name)
        return handler

    def uninstrument_logging(self) -> None:
        for target, handler in self._log_handlers.values():
            target.removeHandler(handler)
        self._log_handlers.clear()

    def wrap_transport(self, inner: httpx.AsyncBaseTransport | None = None) -> TrackingTransport:
        return TrackingTransport(
            self.sink,
            excluded_url=self.settings.track_endpoint,
            inner=inner,
            max_body_bytes=self.settings.max_body_bytes,
        )

    def http_client(
        self,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        **client_kwargs: Any,
    ) -> httpx.AsyncClient:
        """An ``httpx.AsyncClient`` whose calls are captured as outbound events."""
        return build_tracked_client(
            self.sink,
            excluded_url=self.settings.track_endpoint,
            max_body_bytes=self.settings.max_body_bytes,
            transport=transport,
            **client_kwargs,
        )

    # ── Lifecycle ────────────────────────────────────────────────────

    async def sweep(self) -> int:
        return await self.finalizer.sweep_abandoned(self.settings.context_max_age_s)

    def start(self) -> None:
        """Register periodic jobs and start the scheduler. Needs a running loop."""
        if self.scheduler.running:
            return
        if self.flusher is not None:
            self.scheduler.add_heartbeat(
                "batch_flush", self.settings.send_interval_s, self.flusher.flush
            )
        self.scheduler.add_heartbeat("context_sweep", self.settings.sweep_interval_s, self.sweep)
        self.scheduler.start()

    async def stop(self) -> None:
        """Stop periodic jobs, make a last flush attempt and release the collector client."""
        self.scheduler.stop()
        if self.flusher is not None:
            sent = await self.flusher.flush()
            if self.buffer:
                logger.warning("Shutting down with %d unsent event(s)", len(self.buffer))
            elif sent:
                logger.info("Flushed %d event(s) on shutdown", sent)
        self.uninstrument_logging()
        await self.collector.aclose()

    @asynccontextmanager
    async def lifespan(self, app: Starlette | None = None) -> AsyncIterator[None]:
        """Usable directly as ``FastAPI(lifespan=tracker.lifespan)``."""
        self.start()
        try:
            yield
        finally:
            await self.stop()


__all__ = ["Tracker"]
