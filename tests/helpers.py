"""Shared test helpers."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from trackwire.config import TrackSettings
from trackwire.tracker import Tracker

from tests.fakes import FakeCollector

TEST_API_KEY = "hardcoded-test-key"
TRACKING_URL = "http://collector.test"


def make_settings(**overrides: Any) -> TrackSettings:
    options: dict[str, Any] = {"tracking_url": TRACKING_URL, "api_key": TEST_API_KEY}
    options.update(overrides)
    return TrackSettings(**options)


def make_tracker(
    collector: FakeCollector,
    *,
    now: datetime | None = None,
    **overrides: Any,
) -> Tracker:
    clock = (lambda: now) if now is not None else datetime.now
    return Tracker(
        make_settings(**overrides),
        collector_http_client=collector.client(),
        clock=clock,
    )
