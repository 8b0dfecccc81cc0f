"""
Periodic ingestion loop.

Every `interval` seconds the loop pulls one event from its source,
admits it through `EventService` (validation + append + trim), recomputes
the summary over the post-trim store and publishes it.

All writes go through `_write_lock`, which makes the loop the single
logical writer even when the HTTP layer pushes batches from its thread
pool. A periodic tick that finds the lock taken is skipped rather than
queued, so ticks never overlap.
"""

import asyncio
import contextlib
import logging
import threading
from typing import List, Optional

from broadcaster import Broadcaster
from errors import CapacityInvariantViolation, InvalidEvent
from event_source import EventSource
from models import Summary
from service_events import EventService, RawEvent

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 5.0


class IngestionLoop:
    """Cancelable periodic task feeding the store.

    Example usage (inside a running event loop):
        loop = IngestionLoop(source, svc, broadcaster, interval=5)
        loop.start()
        ...
        await loop.stop()
    """

    def __init__(
        self,
        source: EventSource,
        service: EventService,
        broadcaster: Broadcaster,
        interval: float = DEFAULT_INTERVAL_SECONDS,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.source = source
        self.service = service
        self.broadcaster = broadcaster
        self.interval = interval
        self.ticks = 0
        self.skipped = 0
        self.rejected = 0
        self._write_lock = threading.Lock()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self) -> Optional[Summary]:
        """Admit one event from the source and publish the new summary.

        Returns the published summary, or None if the tick was skipped
        because another write was in progress or the event was rejected.
        """

        if not self._write_lock.acquire(blocking=False):
            self.skipped += 1
            logger.warning("Ingestion tick skipped: previous write still in progress")
            return None
        try:
            try:
                event = self.service.ingest_event(self.source.next_event())
            except InvalidEvent as e:
                self.rejected += 1
                logger.warning("Dropped invalid event: %s", e)
                return None
            self.ticks += 1
            logger.debug("Ingested %s (%s)", event.id, event.event_type.value)
            return self._publish()
        finally:
            self._write_lock.release()

    def ingest(self, raws: List[RawEvent]) -> int:
        """Admit a batch from an external feed; publishes once if anything was added.

        Waits for an in-flight tick instead of skipping. Raises whatever
        `EventService.ingest_events` raises.
        """

        with self._write_lock:
            inserted = self.service.ingest_events(raws)
            if inserted:
                self._publish()
            return inserted

    def start(self) -> None:
        """Schedule the loop on the running asyncio event loop. No-op if running."""

        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="ingestion-loop")
        logger.info("Ingestion loop started (interval=%ss)", self.interval)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to wind down.

        Re-raises the error that ended the loop early, if any (a
        `CapacityInvariantViolation` is never swallowed).
        """

        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Ingestion loop stopped after %d tick(s)", self.ticks)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.tick()
            except CapacityInvariantViolation:
                logger.critical("Event store exceeded its capacity; stopping ingestion loop")
                raise
            except Exception:
                logger.exception("Ingestion tick failed")

    def _publish(self) -> Summary:
        # Caller holds _write_lock, so summaries are published in write order.
        summary = self.service.get_summary()
        self.broadcaster.publish(summary)
        return summary
