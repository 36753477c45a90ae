"""Event records shipped to the collector.

Field names are snake_case in Python and camelCase on the wire. The request
aggregate keeps the collector's historical ``consoleLogs``/``externalCalls``
keys for its nested sequences.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(UTC)


RequestOutcome = Literal["completed", "rejected", "error", "abandoned"]


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class LogEvent(_WireModel):
    type: Literal["log"] = "log"
    level: str
    message: str
    logger: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)


class OutboundCallEvent(_WireModel):
    type: Literal["external"] = "external"
    method: str
    url: str
    status: int = 0
    duration_ms: float = 0.0
    response: Any = None
    error: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)


class IncomingRequestEvent(_WireModel):
    type: Literal["incoming"] = "incoming"
    method: str
    path: str
    timestamp: datetime = Field(default_factory=utc_now)
    logs: list[LogEvent] = Field(default_factory=list, alias="consoleLogs")
    calls: list[OutboundCallEvent] = Field(default_factory=list, alias="externalCalls")
    response: Any = None
    status: int | None = None
    duration_ms: float | None = None
    outcome: RequestOutcome | None = None


Event = Annotated[
    LogEvent | OutboundCallEvent | IncomingRequestEvent,
    Field(discriminator="type"),
]


class EventsPayload(_WireModel):
    """Body of ``POST /api/track``."""

    events: list[Event]


__all__ = [
    "Event",
    "EventsPayload",
    "IncomingRequestEvent",
    "LogEvent",
    "OutboundCallEvent",
    "RequestOutcome",
    "utc_now",
]
