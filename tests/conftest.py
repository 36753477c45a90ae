from __future__ import annotations

import logging
import os
from collections.abc import Iterator

import pytest
from trackwire.tracker import Tracker

from tests.fakes import FakeCollector
from tests.helpers import make_tracker


@pytest.fixture(autouse=True)
def _isolate_trackwire_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("TRACKWIRE_"):
            monkeypatch.delenv(key)


@pytest.fixture
def collector() -> FakeCollector:
    return FakeCollector()


@pytest.fixture
def tracker(collector: FakeCollector) -> Iterator[Tracker]:
    tracker = make_tracker(collector)
    yield tracker
    tracker.uninstrument_logging()


@pytest.fixture
def batch_tracker(collector: FakeCollector) -> Iterator[Tracker]:
    tracker = make_tracker(collector, mode="batch")
    yield tracker
    tracker.uninstrument_logging()


@pytest.fixture
def app_logger() -> logging.Logger:
    app_log = logging.getLogger("tests.app")
    app_log.setLevel(logging.DEBUG)
    return app_log


@pytest.fixture
def root_logger_at_info() -> Iterator[logging.Logger]:
    root = logging.getLogger()
    previous = root.level
    root.setLevel(logging.INFO)
    yield root
    root.setLevel(previous)
