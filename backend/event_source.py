"""
Event sources feeding the ingestion loop.

The loop only depends on the `EventSource` protocol (`next_event()`), so
the randomized simulator used for demos can be swapped for a replayed
sequence in tests, or for a real sensor feed in production, without
touching the store or the loop.
"""

import itertools
import random
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Iterator, List, Optional, Protocol

from models import AgeGroup, Demographics, EventType, FailureReason, Gender, VendEvent
from repo_events import EventStore

PRODUCT_CATALOG = (
    "MULLER_YOGURT_001",
    "MULLER_YOGURT_002",
    "MULLER_YOGURT_003",
    "MULLER_YOGURT_004",
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EventSource(Protocol):
    def next_event(self) -> VendEvent:
        ...


class SyntheticEventSource:
    """Simulated machine feed.

    Each event is drawn independently: vend outcome with probability
    `success_bias` of success, a SKU from `catalog`, and a random
    demographic/footfall payload. Ids come from a per-source counter so
    they grow in creation order.

    Example usage:
        source = SyntheticEventSource(rng=random.Random(42))
        event = source.next_event()
    """

    def __init__(
        self,
        campaign_id: str = "campaign_001",
        machine_id: str = "machine_001",
        success_bias: float = 0.8,
        catalog: Iterable[str] = PRODUCT_CATALOG,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        if not 0 <= success_bias <= 1:
            raise ValueError(f"success_bias must be within [0, 1], got {success_bias}")
        self.campaign_id = campaign_id
        self.machine_id = machine_id
        self.success_bias = success_bias
        self.catalog = tuple(catalog)
        self.rng = rng or random.Random()
        self.clock = clock
        self._ids = itertools.count()

    def next_event(self) -> VendEvent:
        return self.event_at(self.clock())

    def event_at(self, ts: datetime) -> VendEvent:
        rng = self.rng
        success = rng.random() < self.success_bias
        if success:
            confidence = 85 + rng.random() * 10
            reason = None
        else:
            confidence = 15 + rng.random() * 10
            reason = rng.choice(list(FailureReason))

        return VendEvent(
            id=f"event_{next(self._ids)}",
            campaign_id=self.campaign_id,
            machine_id=self.machine_id,
            event_timestamp=ts,
            event_type=EventType.SUCCESSFUL_VEND if success else EventType.FAILED_VEND,
            product_sku=rng.choice(self.catalog) if self.catalog else None,
            session_id=f"session_{rng.randrange(50)}",
            footfall_count=rng.randint(1, 20),
            demographics=Demographics(
                age_group=rng.choice(list(AgeGroup)),
                gender=rng.choice(list(Gender)),
            ),
            success_percentage=round(confidence, 2),
            failure_reason=reason,
        )

    def backfill(self, count: int, lookback: timedelta) -> List[VendEvent]:
        """Generate `count` events at random instants within the past `lookback`.

        Timestamps are sorted before the events are built, so both ids and
        timestamps are non-decreasing in list order.
        """

        now = self.clock()
        span = lookback.total_seconds()
        stamps = sorted(now - timedelta(seconds=self.rng.random() * span) for _ in range(count))
        return [self.event_at(ts) for ts in stamps]


class SequenceEventSource:
    """Replays a fixed sequence of events, one per `next_event()` call.

    Raises `LookupError` once the sequence is exhausted.
    """

    def __init__(self, events: Iterable[VendEvent]):
        self._events: Iterator[VendEvent] = iter(events)

    def next_event(self) -> VendEvent:
        try:
            return next(self._events)
        except StopIteration:
            raise LookupError("event sequence exhausted") from None


def seed_store(
    store: EventStore,
    source: SyntheticEventSource,
    count: int = 100,
    lookback: timedelta = timedelta(days=7),
) -> int:
    """Pre-populate `store` so the dashboard has data right after startup.

    Returns the number of events appended.
    """

    if count <= 0:
        return 0
    return store.extend(source.backfill(count, lookback))
