from __future__ import annotations

import pytest
from pydantic import TypeAdapter, ValidationError
from trackwire.models.events import (
    Event,
    EventsPayload,
    IncomingRequestEvent,
    LogEvent,
    OutboundCallEvent,
)
from trackwire.models.policy import GateDecision, Policy, Schedule


class TestEventWireFormat:
    def test_incoming_uses_collector_keys(self) -> None:
        event = IncomingRequestEvent(method="GET", path="/items?page=2")
        event.logs.append(LogEvent(level="info", message="hi"))
        event.calls.append(OutboundCallEvent(method="get", url="http://up", status=200))
        event.duration_ms = 12.5

        wire = event.to_wire()
        assert wire["type"] == "incoming"
        assert wire["durationMs"] == 12.5
        assert wire["consoleLogs"][0]["message"] == "hi"
        assert wire["externalCalls"][0]["durationMs"] == 0.0
        assert "logs" not in wire

    def test_payload_discriminates_on_type(self) -> None:
        payload = EventsPayload.model_validate(
            {
                "events": [
                    {"type": "log", "level": "warning", "message": "m"},
                    {"type": "external", "method": "post", "url": "http://x", "status": 0},
                    {"type": "incoming", "method": "GET", "path": "/", "consoleLogs": []},
                ]
            }
        )
        kinds = [type(event) for event in payload.events]
        assert kinds == [LogEvent, OutboundCallEvent, IncomingRequestEvent]

    def test_unknown_event_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TypeAdapter(Event).validate_python({"type": "span", "name": "x"})

    def test_timestamps_are_timezone_aware(self) -> None:
        assert LogEvent(level="info", message="x").timestamp.tzinfo is not None


class TestPolicy:
    def test_legacy_collector_keys(self) -> None:
        policy = Policy.model_validate(
            {
                "tracer": True,
                "apiEnabled": False,
                "scheduling": {"enabled": True, "startTime": "09:00", "endTime": "17:00"},
                "requestLimit": {"enabled": True},
            }
        )
        assert policy.tracer_enabled is True
        assert policy.schedule is not None and policy.schedule.start_time == "09:00"
        assert policy.request_limit is not None and policy.request_limit.enabled

    def test_camel_case_keys(self) -> None:
        policy = Policy.model_validate(
            {"tracerEnabled": True, "schedule": {"enabled": False, "startTime": "00:00", "endTime": "23:59"}}
        )
        assert policy.tracer_enabled
        assert policy.schedule is not None and not policy.schedule.enabled

    def test_missing_tracer_flag_reads_as_disabled(self) -> None:
        assert Policy.model_validate({}).tracer_enabled is False

    def test_bad_schedule_time_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Policy.model_validate({"tracer": True, "scheduling": {"enabled": True, "startTime": "9:00"}})

    @pytest.mark.parametrize(
        ("hhmm", "inside"),
        [("08:59", False), ("09:00", True), ("12:30", True), ("17:00", True), ("17:01", False)],
    )
    def test_schedule_bounds_are_inclusive(self, hhmm: str, inside: bool) -> None:
        schedule = Schedule(enabled=True, startTime="09:00", endTime="17:00")
        assert schedule.contains(hhmm) is inside


def test_gate_decision_error_body() -> None:
    decision = GateDecision.reject(429, "Rate limit exceeded")
    assert not decision.allowed
    assert decision.error_body() == {"error": "Rate limit exceeded"}
    assert GateDecision.allow().allowed
