"""Outbound call interception for ``httpx`` clients.

:class:`TrackingTransport` wraps whatever transport a client would have used
and reports one :class:`OutboundCallEvent` per request, success or failure.
The wrapped call's outcome reaches the caller unchanged: responses are
returned as-is (with their body already read) and exceptions are re-raised.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import timedelta
from typing import Any

import httpx

from trackwire.correlation import EventSink
from trackwire.models.events import OutboundCallEvent

logger = logging.getLogger(__name__)


def decode_body(content: bytes, content_type: str | None, max_bytes: int) -> Any:
    """JSON when the body parses as JSON, otherwise (truncated) text."""
    if not content:
        return None
    if content_type and "json" in content_type and len(content) <= max_bytes:
        try:
            return json.loads(content)
        except ValueError:
            pass
    return content[:max_bytes].decode("utf-8", errors="replace")


class TrackingTransport(httpx.AsyncBaseTransport):
    def __init__(
        self,
        sink: EventSink,
        *,
        excluded_url: str,
        inner: httpx.AsyncBaseTransport | None = None,
        max_body_bytes: int = 65_536,
    ) -> None:
        self._sink = sink
        self._excluded_url = excluded_url
        self._inner = inner or httpx.AsyncHTTPTransport()
        self._max_body_bytes = max_body_bytes

    def is_excluded(self, url: str) -> bool:
        """Calls to the collector's ingestion endpoint are never captured."""
        return self._excluded_url in url

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if self.is_excluded(url):
            return await self._inner.handle_async_request(request)

        started = time.monotonic()
        try:
            response = await self._inner.handle_async_request(request)
            await response.aread()
            # The body is consumed here, so httpx never gets to stamp this itself.
            response.elapsed = timedelta(seconds=time.monotonic() - started)
        except Exception as exc:
            self._record(
                request,
                started,
                status=0,
                error=str(exc) or type(exc).__name__,
            )
            raise

        self._record(
            request,
            started,
            status=response.status_code,
            body=decode_body(
                response.content,
                response.headers.get("content-type"),
                self._max_body_bytes,
            ),
        )
        return response

    def _record(
        self,
        request: httpx.Request,
        started: float,
        *,
        status: int,
        body: Any = None,
        error: str | None = None,
    ) -> None:
        event = OutboundCallEvent(
            method=request.method.lower(),
            url=str(request.url),
            status=status,
            duration_ms=round((time.monotonic() - started) * 1000, 3),
            response=body,
            error=error,
        )
        try:
            self._sink.record_call(event)
        except Exception:
            logger.exception("Failed to record outbound call to %s", event.url)

    async def aclose(self) -> None:
        await self._inner.aclose()


def build_tracked_client(
    sink: EventSink,
    *,
    excluded_url: str,
    max_body_bytes: int = 65_536,
    transport: httpx.AsyncBaseTransport | None = None,
    **client_kwargs: Any,
) -> httpx.AsyncClient:
    """An ``httpx.AsyncClient`` whose every request is reported to ``sink``."""
    tracking = TrackingTransport(
        sink,
        excluded_url=excluded_url,
        inner=transport,
        max_body_bytes=max_body_bytes,
    )
    return httpx.AsyncClient(transport=tracking, **client_kwargs)


__all__ = ["TrackingTransport", "build_tracked_client", "decode_body"]
