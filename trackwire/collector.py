"""HTTP client for the remote collector.

One ``httpx.AsyncClient`` serves ingestion (``/api/track``), policy lookup
(``/api/config``) and rate checks (``/api/requestCount``). Every call suspends
the caller until it completes; none of them retry.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx
from pydantic import ValidationError

from trackwire import metrics
from trackwire.correlation import suppress_capture
from trackwire.errors import PolicyFetchError, TransmissionError
from trackwire.models.events import EventsPayload, IncomingRequestEvent, LogEvent, OutboundCallEvent
from trackwire.models.policy import Policy, RateCheck

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-track-api-key"


class CollectorClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout_s: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout_s = timeout_s
        # Injected clients are owned by the caller; keep it uninstrumented.
        self._owns_http_client = http_client is None
        self._http = http_client or self._new_client()

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=httpx.Timeout(self._timeout_s))

    @property
    def _client(self) -> httpx.AsyncClient:
        # An owned client closed by a previous shutdown is reopened on demand.
        if self._owns_http_client and self._http.is_closed:
            self._http = self._new_client()
        return self._http

    @property
    def track_endpoint(self) -> str:
        return f"{self._base_url}/api/track"

    @property
    def _headers(self) -> dict[str, str]:
        return {API_KEY_HEADER: self._api_key}

    async def send_events(
        self,
        events: Sequence[LogEvent | OutboundCallEvent | IncomingRequestEvent],
    ) -> None:
        """Post ``{"events": [...]}``; raise :class:`TransmissionError` on any failure."""
        body = EventsPayload(events=list(events)).to_wire()
        try:
            with suppress_capture():
                response = await self._client.post(
                    self.track_endpoint, json=body, headers=self._headers
                )
        except httpx.HTTPError as exc:
            metrics.TRANSMISSIONS_TOTAL.labels(outcome="failed").inc()
            raise TransmissionError(f"track request failed: {exc!r}") from exc

        if not response.is_success:
            metrics.TRANSMISSIONS_TOTAL.labels(outcome="failed").inc()
            raise TransmissionError(
                f"collector rejected {len(events)} event(s) with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        metrics.TRANSMISSIONS_TOTAL.labels(outcome="sent").inc()
        logger.debug("Transmitted %d event(s)", len(events))

    async def fetch_policy(self, path: str) -> Policy:
        data = await self._get_json("/api/config", path)
        try:
            return Policy.model_validate(data)
        except ValidationError as exc:
            raise PolicyFetchError(f"malformed policy for {path!r}: {exc}") from exc

    async def fetch_rate_check(self, path: str) -> RateCheck:
        data = await self._get_json("/api/requestCount", path)
        try:
            return RateCheck.model_validate(data)
        except ValidationError as exc:
            raise PolicyFetchError(f"malformed rate check for {path!r}: {exc}") from exc

    async def _get_json(self, endpoint: str, path: str) -> Any:
        url = f"{self._base_url}{endpoint}"
        try:
            with suppress_capture():
                response = await self._client.get(
                    url, params={"path": path}, headers=self._headers
                )
        except httpx.HTTPError as exc:
            raise PolicyFetchError(f"GET {endpoint} failed: {exc!r}") from exc

        if not response.is_success:
            raise PolicyFetchError(
                f"GET {endpoint} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise PolicyFetchError(f"GET {endpoint} returned a non-JSON body") from exc

    async def aclose(self) -> None:
        if self._owns_http_client and not self._http.is_closed:
            await self._http.aclose()


__all__ = ["API_KEY_HEADER", "CollectorClient"]
