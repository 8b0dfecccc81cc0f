"""
Unit tests for the IngestionLoop.

Tests cover:
- Tick -> append -> publish flow
- Rejected events are dropped without stopping the loop
- Non-overlapping ticks
- Batch ingestion through the same writer
- start()/stop() of the periodic task
- A capacity violation stops the loop instead of being logged and skipped
"""

import asyncio

import pytest

from conftest import Collector, make_event
from errors import CapacityInvariantViolation
from event_source import SequenceEventSource
from ingestion import IngestionLoop
from repo_events import EventStore
from service_events import EventService


class TestTick:
    def test_three_ticks_publish_three_summaries(self, replay_loop, broadcaster, collector):
        broadcaster.subscribe(collector)
        for _ in range(3):
            replay_loop.tick()
        broadcaster.flush(timeout=5)

        totals = [s.total for s in collector.received]
        assert len(totals) == 3
        assert totals == sorted(totals)
        assert totals == [1, 2, 3]

    def test_tick_returns_post_append_summary(self, replay_loop, svc):
        summary = replay_loop.tick()
        assert summary == svc.get_summary()
        assert replay_loop.ticks == 1

    def test_publishes_summary_after_trim(self, broadcaster, collector):
        store = EventStore(capacity=2)
        events = [make_event(i) for i in range(1, 5)]
        loop = IngestionLoop(SequenceEventSource(events), EventService(store), broadcaster, interval=1)
        broadcaster.subscribe(collector)
        for _ in range(4):
            loop.tick()
        broadcaster.flush(timeout=5)

        assert [s.total for s in collector.received] == [1, 2, 2, 2]
        assert [e.id for e in store.all()] == ["event_3", "event_4"]

    def test_invalid_event_is_dropped_and_loop_continues(self, svc, broadcaster, collector, caplog):
        bad = make_event(1).model_dump()
        bad["failure_reason"] = "out_of_stock"
        source = SequenceEventSource([make_event(0), bad, make_event(2)])
        loop = IngestionLoop(source, svc, broadcaster, interval=1)
        broadcaster.subscribe(collector)

        assert loop.tick() is not None
        assert loop.tick() is None
        assert loop.tick() is not None
        broadcaster.flush(timeout=5)

        assert loop.rejected == 1
        assert [e.id for e in svc.store.all()] == ["event_0", "event_2"]
        assert len(collector.received) == 2
        assert "Dropped invalid event" in caplog.text

    def test_overlapping_tick_is_skipped(self, replay_loop, svc):
        replay_loop._write_lock.acquire()
        try:
            assert replay_loop.tick() is None
        finally:
            replay_loop._write_lock.release()

        assert replay_loop.skipped == 1
        assert len(svc.store) == 0
        assert replay_loop.tick() is not None

    def test_rejects_non_positive_interval(self, svc, broadcaster):
        with pytest.raises(ValueError):
            IngestionLoop(SequenceEventSource([]), svc, broadcaster, interval=0)


class TestBatchIngest:
    def test_batch_publishes_once(self, replay_loop, broadcaster, collector):
        broadcaster.subscribe(collector)
        assert replay_loop.ingest([make_event(i) for i in range(100, 110)]) == 10
        broadcaster.flush(timeout=5)
        assert [s.total for s in collector.received] == [10]

    def test_empty_batch_publishes_nothing(self, replay_loop, broadcaster, collector):
        broadcaster.subscribe(collector)
        assert replay_loop.ingest([]) == 0
        broadcaster.flush(timeout=5)
        assert collector.received == []


class TestPeriodicTask:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, replay_loop, svc):
        replay_loop.start()
        assert replay_loop.running
        await asyncio.sleep(0.2)
        await replay_loop.stop()

        assert not replay_loop.running
        ticks = replay_loop.ticks
        assert ticks > 0
        assert len(svc.store) == ticks

        await asyncio.sleep(0.05)
        assert replay_loop.ticks == ticks

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, replay_loop):
        replay_loop.start()
        task = replay_loop._task
        replay_loop.start()
        assert replay_loop._task is task
        await replay_loop.stop()

    @pytest.mark.asyncio
    async def test_stop_when_not_started(self, replay_loop):
        await replay_loop.stop()
        assert not replay_loop.running

    @pytest.mark.asyncio
    async def test_loop_survives_exhausted_source(self, svc, broadcaster, caplog):
        loop = IngestionLoop(SequenceEventSource([make_event(1)]), svc, broadcaster, interval=0.01)
        loop.start()
        await asyncio.sleep(0.1)
        assert loop.running
        await loop.stop()

        assert loop.ticks == 1
        assert "Ingestion tick failed" in caplog.text

    @pytest.mark.asyncio
    async def test_capacity_violation_ends_the_loop(self, broadcaster, caplog):
        class StickyList(list):
            def __delitem__(self, key):
                pass

        store = EventStore(capacity=1)
        store._events = StickyList()
        events = [make_event(i) for i in range(1, 11)]
        loop = IngestionLoop(SequenceEventSource(events), EventService(store), broadcaster, interval=0.01)
        loop.start()
        await asyncio.sleep(0.2)

        assert not loop.running
        assert len(store) == 2
        assert loop.ticks == 1
        assert "exceeded its capacity" in caplog.text

        with pytest.raises(CapacityInvariantViolation):
            await loop.stop()
        assert not loop.running
