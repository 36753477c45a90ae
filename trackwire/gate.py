"""Admission control driven by policy fetched from the collector.

Rules are evaluated in order and the first match wins:

1. tracer disabled                 -> 400 "Tracer disabled"
2. API enabled by config           -> 403 "API Enabled by config"
3. local time outside the schedule -> 403 "Outside schedule window"
4. rate check reports ``blocked``  -> 429 "Rate limit exceeded"

If the collector cannot be reached or answers with something unusable, the
request is let through un-gated.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime

from trackwire import metrics
from trackwire.collector import CollectorClient
from trackwire.errors import PolicyFetchError
from trackwire.models.policy import GateDecision, Policy

logger = logging.getLogger(__name__)

TRACER_DISABLED = "Tracer disabled"
API_ENABLED = "API Enabled by config"
OUTSIDE_SCHEDULE = "Outside schedule window"
RATE_LIMITED = "Rate limit exceeded"


def local_hhmm(now: datetime) -> str:
    return f"{now.hour:02d}:{now.minute:02d}"


class PolicyCache:
    """Per-path policies kept for ``ttl_s`` seconds. A TTL of 0 disables caching."""

    def __init__(self, ttl_s: float, *, monotonic: Callable[[], float] = time.monotonic) -> None:
        self._ttl_s = ttl_s
        self._monotonic = monotonic
        self._entries: dict[str, tuple[float, Policy]] = {}

    @property
    def enabled(self) -> bool:
        return self._ttl_s > 0

    def get(self, path: str) -> Policy | None:
        if not self.enabled:
            return None
        entry = self._entries.get(path)
        if entry is None:
            return None
        stored_at, policy = entry
        if self._monotonic() - stored_at > self._ttl_s:
            del self._entries[path]
            return None
        return policy

    def put(self, path: str, policy: Policy) -> None:
        if self.enabled:
            self._entries[path] = (self._monotonic(), policy)

    def clear(self) -> None:
        self._entries.clear()


class PolicyGate:
    def __init__(
        self,
        collector: CollectorClient,
        *,
        cache: PolicyCache | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._collector = collector
        self._cache = cache or PolicyCache(0)
        self._clock = clock

    async def evaluate(self, path: str) -> GateDecision:
        try:
            policy = await self._policy_for(path)
            decision = await self._decide(path, policy)
        except PolicyFetchError as exc:
            metrics.POLICY_FETCH_FAILURES_TOTAL.inc()
            logger.error("Tracking error: policy lookup for %s failed: %s", path, exc)
            decision = GateDecision.allow()

        metrics.GATE_DECISIONS_TOTAL.labels(
            decision="allow" if decision.allowed else str(decision.status)
        ).inc()
        return decision

    async def _policy_for(self, path: str) -> Policy:
        cached = self._cache.get(path)
        if cached is not None:
            return cached
        policy = await self._collector.fetch_policy(path)
        self._cache.put(path, policy)
        return policy

    async def _decide(self, path: str, policy: Policy) -> GateDecision:
        if not policy.tracer_enabled:
            return GateDecision.reject(400, TRACER_DISABLED)

        if policy.api_enabled:
            return GateDecision.reject(403, API_ENABLED)

        schedule = policy.schedule
        if schedule is not None and schedule.enabled:
            if not schedule.contains(local_hhmm(self._clock())):
                return GateDecision.reject(403, OUTSIDE_SCHEDULE)

        limit = policy.request_limit
        if limit is not None and limit.enabled:
            rate = await self._collector.fetch_rate_check(path)
            if rate.blocked:
                return GateDecision.reject(429, RATE_LIMITED)

        return GateDecision.allow()


__all__ = [
    "API_ENABLED",
    "OUTSIDE_SCHEDULE",
    "PolicyCache",
    "PolicyGate",
    "RATE_LIMITED",
    "TRACER_DISABLED",
    "local_hhmm",
]
