from __future__ import annotations

import re
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class Schedule(BaseModel):
    """Daily admission window, compared as zero-padded ``HH:MM`` strings."""

    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = False
    start_time: str = Field(default="00:00", validation_alias=AliasChoices("startTime", "start_time"))
    end_time: str = Field(default="23:59", validation_alias=AliasChoices("endTime", "end_time"))

    @field_validator("start_time", "end_time")
    @classmethod
    def _validate_hhmm(cls, value: str) -> str:
        if not _HHMM.match(value):
            raise ValueError(f"expected zero-padded HH:MM, got {value!r}")
        return value

    def contains(self, hhmm: str) -> bool:
        """Inclusive on both ends."""
        return self.start_time <= hhmm <= self.end_time


class RequestLimit(BaseModel):
    enabled: bool = False


class Policy(BaseModel):
    """Per-path policy served by ``GET /api/config``.

    A missing tracer flag reads as disabled, which matches how the collector
    has always been interpreted.
    """

    model_config = ConfigDict(populate_by_name=True)

    tracer_enabled: bool = Field(
        default=False,
        validation_alias=AliasChoices("tracerEnabled", "tracer", "tracer_enabled"),
    )
    api_enabled: bool = Field(
        default=False,
        validation_alias=AliasChoices("apiEnabled", "api_enabled"),
    )
    schedule: Schedule | None = Field(
        default=None,
        validation_alias=AliasChoices("schedule", "scheduling"),
    )
    request_limit: RequestLimit | None = Field(
        default=None,
        validation_alias=AliasChoices("requestLimit", "request_limit"),
    )


class RateCheck(BaseModel):
    blocked: bool = False


class GateDecision(BaseModel):
    allowed: bool
    status: int | None = None
    error: str | None = None

    @classmethod
    def allow(cls) -> GateDecision:
        return cls(allowed=True)

    @classmethod
    def reject(cls, status: int, error: str) -> GateDecision:
        return cls(allowed=False, status=status, error=error)

    def error_body(self) -> dict[str, Any]:
        return {"error": self.error}


__all__ = ["GateDecision", "Policy", "RateCheck", "RequestLimit", "Schedule"]
