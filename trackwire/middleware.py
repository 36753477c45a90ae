"""ASGI adapter: gates each HTTP request and seals its record exactly once.

A request's record can be sealed by whichever of these happens first:

* the gate rejects the request and the middleware answers with a JSON error,
* the app sends its final ``http.response.body`` message,
* the app returns (or raises) without having finished a response.

Later triggers find the context already finalized and do nothing.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from trackwire.correlation import request_scope
from trackwire.interceptors.http_client import decode_body

if TYPE_CHECKING:
    from trackwire.tracker import Tracker

logger = logging.getLogger(__name__)


def request_target(scope: Scope) -> str:
    path: str = scope["path"]
    query = scope.get("query_string", b"")
    if query:
        return f"{path}?{query.decode('latin-1')}"
    return path


class _ResponseCapture:
    """Collects status and (bounded) body from outgoing ASGI messages."""

    def __init__(self, max_bytes: int) -> None:
        self._max_bytes = max_bytes
        self._chunks = bytearray()
        self._content_type: str | None = None
        self.status: int | None = None
        self.complete = False

    def observe(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.status = message["status"]
            self._content_type = Headers(raw=message.get("headers", [])).get("content-type")
        elif message["type"] == "http.response.body":
            room = self._max_bytes - len(self._chunks)
            if room > 0:
                self._chunks.extend(message.get("body", b"")[:room])
            if not message.get("more_body", False):
                self.complete = True

    def body(self) -> Any:
        return decode_body(bytes(self._chunks), self._content_type, self._max_bytes)


class TrackingMiddleware:
    def __init__(self, app: ASGIApp, tracker: Tracker) -> None:
        self.app = app
        self.tracker = tracker

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        tracker = self.tracker
        path = request_target(scope)
        context = tracker.registry.open(scope["method"], path)

        with request_scope(context):
            decision = await tracker.gate.evaluate(path)
            if not decision.allowed:
                status = decision.status or 403
                body = decision.error_body()
                await tracker.finalizer.finalize(
                    context, response=body, status=status, outcome="rejected"
                )
                response = JSONResponse(body, status_code=status)
                await response(scope, receive, send)
                return

            capture = _ResponseCapture(tracker.settings.max_body_bytes)

            async def tracking_send(message: Message) -> None:
                capture.observe(message)
                await send(message)
                if capture.complete:
                    await tracker.finalizer.finalize(
                        context, response=capture.body(), status=capture.status or 0
                    )

            try:
                await self.app(scope, receive, tracking_send)
            except Exception:
                await tracker.finalizer.finalize(
                    context,
                    response=capture.body(),
                    status=500 if capture.status is None else capture.status,
                    outcome="error",
                )
                raise

            # App returned without completing a body: seal with what was seen.
            await tracker.finalizer.finalize(
                context, response=capture.body(), status=capture.status or 0
            )


__all__ = ["TrackingMiddleware", "request_target"]
