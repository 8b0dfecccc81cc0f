"""
Repository: the bounded in-memory store for vend events.

This file contains only storage code. It keeps events in insertion order
and enforces the capacity bound; validation and aggregation live
elsewhere. Keep business rules out of this module.

Important notes:
- `append`/`extend` and the trim that follows them run under one lock,
  so a reader never sees a half-trimmed buffer.
- `all()` returns a tuple copy taken under the same lock. Callers get a
  point-in-time snapshot, never a live reference to the buffer.
- Eviction is FIFO: the retained events are always the most recent
  `capacity` appends, in their original order.
"""

import logging
import threading
from typing import Iterable, List, Tuple

from errors import CapacityInvariantViolation
from models import VendEvent

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000


class EventStore:
    """In-memory event buffer. No business logic here.

    Example usage:
        store = EventStore(capacity=1000)
        store.append(event)
        snapshot = store.all()
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._capacity = capacity
        self._events: List[VendEvent] = []
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, event: VendEvent) -> None:
        """Insert one event at the end, evicting the oldest if over capacity."""

        with self._lock:
            self._events.append(event)
            self._trim()

    def extend(self, events: Iterable[VendEvent]) -> int:
        """Insert a batch in order under a single critical section.

        Returns the number of events appended (some of which may already
        have been evicted again if the batch exceeds capacity).
        """

        batch = list(events)
        with self._lock:
            self._events.extend(batch)
            self._trim()
        return len(batch)

    def all(self) -> Tuple[VendEvent, ...]:
        """Return the current ordered contents as an immutable snapshot."""

        with self._lock:
            return tuple(self._events)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def _trim(self) -> None:
        # Caller holds self._lock.
        overflow = len(self._events) - self._capacity
        if overflow > 0:
            del self._events[:overflow]
            logger.debug("Evicted %d oldest event(s)", overflow)
        if len(self._events) > self._capacity:
            raise CapacityInvariantViolation(len(self._events), self._capacity)
