from trackwire.models.events import (
    Event,
    EventsPayload,
    IncomingRequestEvent,
    LogEvent,
    OutboundCallEvent,
    RequestOutcome,
    utc_now,
)
from trackwire.models.policy import GateDecision, Policy, RateCheck, RequestLimit, Schedule

__all__ = [
    "Event",
    "EventsPayload",
    "GateDecision",
    "IncomingRequestEvent",
    "LogEvent",
    "OutboundCallEvent",
    "Policy",
    "RateCheck",
    "RequestLimit",
    "RequestOutcome",
    "Schedule",
    "utc_now",
]
