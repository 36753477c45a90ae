"""Tests for TrackScheduler — APScheduler wrapper."""

from __future__ import annotations

import asyncio

import pytest
from trackwire.models.events import LogEvent
from trackwire.scheduler import TrackScheduler
from trackwire.tracker import Tracker

from tests.fakes import FakeCollector


@pytest.fixture
def scheduler() -> TrackScheduler:
    return TrackScheduler()


async def _noop() -> None:
    pass


class TestSchedulerLifecycle:
    def test_initial_state(self, scheduler: TrackScheduler) -> None:
        assert not scheduler.running
        assert scheduler.job_ids == []

    @pytest.mark.asyncio
    async def test_start_stop(self, scheduler: TrackScheduler) -> None:
        scheduler.start()
        assert scheduler.running
        scheduler.stop()
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, scheduler: TrackScheduler) -> None:
        scheduler.start()
        scheduler.start()
        assert scheduler.running
        scheduler.stop()

    def test_stop_is_idempotent(self, scheduler: TrackScheduler) -> None:
        scheduler.stop()
        assert not scheduler.running


class TestHeartbeat:
    def test_add_heartbeat(self, scheduler: TrackScheduler) -> None:
        sid = scheduler.add_heartbeat("batch_flush", 2.0, _noop)
        assert sid == "heartbeat:batch_flush"
        assert scheduler.job_ids == ["heartbeat:batch_flush"]

    def test_duplicate_heartbeat_raises(self, scheduler: TrackScheduler) -> None:
        scheduler.add_heartbeat("hb", 1, _noop)
        with pytest.raises(ValueError, match="already registered"):
            scheduler.add_heartbeat("hb", 1, _noop)

    def test_non_positive_interval_raises(self, scheduler: TrackScheduler) -> None:
        with pytest.raises(ValueError, match="> 0"):
            scheduler.add_heartbeat("hb", 0, _noop)

    @pytest.mark.asyncio
    async def test_names_reusable_after_stop(self, scheduler: TrackScheduler) -> None:
        scheduler.add_heartbeat("hb", 1, _noop)
        scheduler.start()
        scheduler.stop()
        assert scheduler.job_ids == []
        scheduler.add_heartbeat("hb", 1, _noop)
        scheduler.start()
        assert scheduler.job_ids == ["heartbeat:hb"]
        scheduler.stop()

    @pytest.mark.asyncio
    async def test_heartbeat_fires_and_failures_are_contained(
        self, scheduler: TrackScheduler
    ) -> None:
        calls: list[int] = []

        async def flaky() -> None:
            calls.append(1)
            raise RuntimeError("tick failed")

        scheduler.add_heartbeat("flaky", 0.05, flaky)
        scheduler.start()
        try:
            for _ in range(60):
                if len(calls) >= 2:
                    break
                await asyncio.sleep(0.05)
        finally:
            scheduler.stop()
        assert len(calls) >= 2


class TestTrackerLifecycle:
    @pytest.mark.asyncio
    async def test_request_mode_schedules_only_sweep(self, tracker: Tracker) -> None:
        tracker.start()
        try:
            assert tracker.scheduler.job_ids == ["heartbeat:context_sweep"]
        finally:
            await tracker.stop()
        assert not tracker.scheduler.running

    @pytest.mark.asyncio
    async def test_batch_mode_schedules_flush(self, batch_tracker: Tracker) -> None:
        async with batch_tracker.lifespan():
            assert sorted(batch_tracker.scheduler.job_ids) == [
                "heartbeat:batch_flush",
                "heartbeat:context_sweep",
            ]
        assert not batch_tracker.scheduler.running

    @pytest.mark.asyncio
    async def test_lifespan_can_be_entered_again(
        self, batch_tracker: Tracker, collector: FakeCollector
    ) -> None:
        for _ in range(2):
            async with batch_tracker.lifespan():
                assert batch_tracker.scheduler.running
                assert len(batch_tracker.scheduler.job_ids) == 2
                batch_tracker.sink.record_log(LogEvent(level="info", message="cycle"))
        assert [event["message"] for event in collector.events] == ["cycle", "cycle"]
