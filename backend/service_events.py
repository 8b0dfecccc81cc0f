"""
Service / facade layer.

This module implements the validation rules applied before any event
reaches the store, and the read side the HTTP layer queries. It holds
no aggregation logic of its own: reads take a snapshot from `EventStore`
and hand it to the pure functions in `aggregations`.

Key responsibilities:
- protect the system (max batch sizes)
- validate event semantics (schema, failure reason vs. event type)
- enforce timestamp rules (timezone-awareness + UTC normalization)
- answer summary / hour / day / product / machine queries from a fresh
  snapshot on every call
"""

import logging
from datetime import timezone, tzinfo
from typing import Any, Dict, List, Union

from pydantic import ValidationError

import aggregations
from errors import InvalidEvent
from machines import machine_catalog
from models import DayBucket, HourBucket, Machine, ProductPerformance, Summary, VendEvent
from repo_events import EventStore

logger = logging.getLogger(__name__)

RawEvent = Union[VendEvent, Dict[str, Any]]


class EventService:
    """Business rules + validation + read facade.

    Example usage:
        store = EventStore()
        svc = EventService(store)
        svc.ingest_event(event)
        svc.get_summary()
    """

    def __init__(
        self,
        store: EventStore,
        bucket_tz: tzinfo = timezone.utc,
        max_batch_size: int = 5000,
    ):
        self.store = store
        self.bucket_tz = bucket_tz
        self.max_batch_size = max_batch_size

    def validate_event(self, raw: RawEvent) -> VendEvent:
        """Return a validated, UTC-normalized copy of `raw`.

        Raises:
        - `InvalidEvent` for schema errors, a naive timestamp, or a
          failure reason that does not match the event type.
        """

        data = raw.model_dump() if isinstance(raw, VendEvent) else raw
        try:
            event = VendEvent.model_validate(data)
        except ValidationError as e:
            raise InvalidEvent(f"Invalid vend event: {e}") from e

        # Store timestamps as UTC; buckets convert to `bucket_tz` on read.
        return event.model_copy(update={"event_timestamp": event.event_timestamp.astimezone(timezone.utc)})

    def ingest_event(self, raw: RawEvent) -> VendEvent:
        """Validate one event and append it to the store."""

        event = self.validate_event(raw)
        self.store.append(event)
        return event

    def ingest_events(self, raws: List[RawEvent]) -> int:
        """Validate and append a batch of events.

        Steps:
        1. Quick guards (empty list, batch size limit).
        2. Validate and normalize every event.
        3. Append the whole batch in one store operation.

        Nothing is appended if any event fails validation.

        Raises:
        - `ValueError` if the batch is too large
        - `InvalidEvent` for the first malformed event
        """

        # 1) protect the system
        if len(raws) == 0:
            return 0
        if len(raws) > self.max_batch_size:
            raise ValueError(
                f"Too many events in one request: {len(raws)} (max {self.max_batch_size})"
            )

        # 2) validate/normalize each event
        events = [self.validate_event(r) for r in raws]

        # 3) store write
        return self.store.extend(events)

    def get_summary(self) -> Summary:
        return aggregations.summarize(self.store.all())

    def get_by_hour(self) -> List[HourBucket]:
        return aggregations.by_hour(self.store.all(), self.bucket_tz)

    def get_by_day(self) -> List[DayBucket]:
        return aggregations.by_day(self.store.all(), self.bucket_tz)

    def get_by_product(self) -> List[ProductPerformance]:
        return aggregations.by_product(self.store.all())

    def get_machines(self) -> List[Machine]:
        return machine_catalog()

    def health(self) -> Dict[str, Any]:
        """Cheap liveness report used by the `/health` endpoint."""

        return {"ok": True, "events": len(self.store), "capacity": self.store.capacity}
