"""Attribution of events to the request that produced them."""

from __future__ import annotations

import asyncio
import logging

import pytest
from trackwire.correlation import ContextRegistry, current_request, request_scope
from trackwire.models.events import LogEvent
from trackwire.tracker import Tracker


class TestContextRegistry:
    def test_open_and_close(self) -> None:
        registry = ContextRegistry()
        context = registry.open("GET", "/a")
        assert context in registry
        assert len(registry) == 1
        registry.close(context)
        assert context not in registry
        registry.close(context)  # closing twice is harmless

    def test_expired_by_age(self) -> None:
        registry = ContextRegistry()
        old = registry.open("GET", "/old")
        registry.open("GET", "/new")
        old.started_at -= 600
        assert registry.expired(300) == [old]


class TestClaimFinalization:
    def test_first_claim_wins(self) -> None:
        context = ContextRegistry().open("GET", "/")
        assert context.claim_finalization() is True
        assert context.claim_finalization() is False
        assert context.finalized


def test_request_scope_sets_and_restores() -> None:
    registry = ContextRegistry()
    outer = registry.open("GET", "/outer")
    inner = registry.open("GET", "/inner")
    assert current_request() is None
    with request_scope(outer):
        with request_scope(inner):
            assert current_request() is inner
        assert current_request() is outer
    assert current_request() is None


@pytest.mark.asyncio
async def test_concurrent_requests_do_not_see_each_other(
    tracker: Tracker, app_logger: logging.Logger
) -> None:
    tracker.instrument_logging(app_logger)

    async def handle(name: str) -> list[str]:
        context = tracker.registry.open("GET", f"/{name}")
        with request_scope(context):
            for step in range(3):
                app_logger.info("%s-%d", name, step)
                await asyncio.sleep(0)
        return [event.message for event in context.event.logs]

    first, second = await asyncio.gather(handle("a"), handle("b"))
    assert first == ["a-0", "a-1", "a-2"]
    assert second == ["b-0", "b-1", "b-2"]


@pytest.mark.asyncio
async def test_child_tasks_inherit_request(tracker: Tracker, app_logger: logging.Logger) -> None:
    tracker.instrument_logging(app_logger)
    context = tracker.registry.open("GET", "/fanout")

    async def worker(index: int) -> None:
        await asyncio.sleep(0)
        app_logger.info("worker %d", index)

    with request_scope(context):
        await asyncio.gather(*(asyncio.create_task(worker(i)) for i in range(2)))

    assert sorted(event.message for event in context.event.logs) == ["worker 0", "worker 1"]


def test_events_after_finalization_are_dropped(tracker: Tracker) -> None:
    context = tracker.registry.open("GET", "/")
    context.claim_finalization()
    with request_scope(context):
        tracker.sink.record_log(LogEvent(level="info", message="late"))
    assert context.event.logs == []


def test_batch_sink_ignores_request_scope(batch_tracker: Tracker) -> None:
    assert batch_tracker.buffer is not None
    context = batch_tracker.registry.open("GET", "/")
    with request_scope(context):
        batch_tracker.sink.record_log(LogEvent(level="info", message="buffered"))
    assert context.event.logs == []
    assert [event.message for event in batch_tracker.buffer.snapshot()] == ["buffered"]
