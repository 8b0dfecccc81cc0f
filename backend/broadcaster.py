"""
Fan-out of summary updates to subscribers.

Each subscriber gets its own single-worker executor. `publish()` only
submits work to those executors and returns, so a slow or broken
listener delays nothing but its own queue. That queue is bounded by
`max_pending`: once a subscriber is that far behind, newer summaries
are dropped for it until it catches up. A single worker per
subscriber keeps deliveries to that subscriber in publish order.

The registry knows nothing about transports; the WebSocket endpoint in
`main.py` is just one more listener.
"""

import itertools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from models import Summary

logger = logging.getLogger(__name__)

Listener = Callable[[Summary], None]

DEFAULT_MAX_PENDING = 1000


@dataclass
class _Subscription:
    handle: str
    listener: Listener
    executor: ThreadPoolExecutor
    pending: int = 0
    delivered: int = 0
    failed: int = 0
    dropped: int = 0


class Broadcaster:
    """Observer registry mapping subscription handles to listeners.

    Example usage:
        broadcaster = Broadcaster()
        handle = broadcaster.subscribe(print)
        broadcaster.publish(summary)
        broadcaster.unsubscribe(handle)
    """

    def __init__(self, max_pending: int = DEFAULT_MAX_PENDING):
        if max_pending < 1:
            raise ValueError(f"max_pending must be at least 1, got {max_pending}")
        self.max_pending = max_pending
        self._subs: Dict[str, _Subscription] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self.published = 0

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subs)

    def backlog(self, handle: str) -> int:
        """Deliveries queued or running for `handle` (0 if unknown)."""

        with self._lock:
            sub = self._subs.get(handle)
            return sub.pending if sub else 0

    def dropped(self, handle: str) -> int:
        with self._lock:
            sub = self._subs.get(handle)
            return sub.dropped if sub else 0

    def subscribe(self, listener: Listener) -> str:
        """Register `listener`; it receives only summaries published from now on."""

        handle = f"sub_{next(self._ids)}"
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"broadcast-{handle}")
        with self._lock:
            self._subs[handle] = _Subscription(handle, listener, executor)
        logger.info("Subscriber %s registered", handle)
        return handle

    def unsubscribe(self, handle: str) -> bool:
        """Remove a subscription. Pending deliveries are dropped.

        Returns False if `handle` was not subscribed.
        """

        with self._lock:
            sub = self._subs.pop(handle, None)
        if sub is None:
            return False
        sub.executor.shutdown(wait=False, cancel_futures=True)
        logger.info("Subscriber %s removed (%d delivered, %d failed, %d dropped)", handle, sub.delivered, sub.failed, sub.dropped)
        return True

    def publish(self, summary: Summary) -> int:
        """Queue `summary` for every current subscriber and return immediately.

        Returns the number of subscribers the summary was queued for.
        Subscribers with a full backlog are skipped.
        """

        with self._lock:
            subs = list(self._subs.values())
            self.published += 1
            queued = 0
            for sub in subs:
                if sub.pending >= self.max_pending:
                    sub.dropped += 1
                    if sub.dropped == 1 or sub.dropped % self.max_pending == 0:
                        logger.warning(
                            "Subscriber %s is %d updates behind; dropped %d so far",
                            sub.handle, sub.pending, sub.dropped,
                        )
                    continue
                try:
                    sub.executor.submit(self._deliver, sub, summary)
                except RuntimeError:
                    # executor already shut down by a concurrent unsubscribe
                    continue
                sub.pending += 1
                queued += 1
        return queued

    def close(self, wait: bool = True) -> None:
        """Drop all subscriptions. With `wait`, drain queued deliveries first."""

        with self._lock:
            subs = list(self._subs.values())
            self._subs.clear()
        for sub in subs:
            sub.executor.shutdown(wait=wait)

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until everything queued so far has been delivered."""

        with self._lock:
            subs = list(self._subs.values())
        for sub in subs:
            try:
                sub.executor.submit(lambda: None).result(timeout=timeout)
            except RuntimeError:
                continue

    def _deliver(self, sub: _Subscription, summary: Summary) -> None:
        try:
            sub.listener(summary)
            sub.delivered += 1
        except Exception:
            sub.failed += 1
            logger.exception("Subscriber %s failed to handle update", sub.handle)
        finally:
            with self._lock:
                sub.pending -= 1
