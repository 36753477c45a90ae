"""Prometheus metrics for the tracking layer.

All metric objects are module-level singletons registered on the default
registry; expose them with ``metrics_generate_latest()``.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, generate_latest

EVENTS_CAPTURED_TOTAL = Counter(
    "trackwire_events_captured_total", "Events attributed or buffered", ["kind"]
)
EVENTS_DROPPED_TOTAL = Counter(
    "trackwire_events_dropped_total",
    "Events produced with no request to attribute them to",
    ["kind"],
)
TRANSMISSIONS_TOTAL = Counter(
    "trackwire_transmissions_total", "Posts to the collector ingestion endpoint", ["outcome"]
)
GATE_DECISIONS_TOTAL = Counter(
    "trackwire_gate_decisions_total", "Policy gate outcomes", ["decision"]
)
POLICY_FETCH_FAILURES_TOTAL = Counter(
    "trackwire_policy_fetch_failures_total", "Policy or rate-check lookups that failed"
)
ABANDONED_REQUESTS_TOTAL = Counter(
    "trackwire_abandoned_requests_total", "Requests evicted by the age sweep"
)
OPEN_CONTEXTS = Gauge("trackwire_open_contexts", "Request contexts awaiting finalization")
BUFFERED_EVENTS = Gauge("trackwire_buffered_events", "Events waiting for the next batch flush")

metrics_generate_latest = generate_latest


__all__ = [
    "ABANDONED_REQUESTS_TOTAL",
    "BUFFERED_EVENTS",
    "EVENTS_CAPTURED_TOTAL",
    "EVENTS_DROPPED_TOTAL",
    "GATE_DECISIONS_TOTAL",
    "OPEN_CONTEXTS",
    "POLICY_FETCH_FAILURES_TOTAL",
    "TRANSMISSIONS_TOTAL",
    "metrics_generate_latest",
]
