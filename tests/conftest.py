"""
Pytest configuration and fixtures for the VendPulse backend tests.

Provides deterministic event factories, a small store/service/loop
wiring, and a collecting subscriber.
"""

import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Ensure backend/ is on sys.path for local test runs without installation
_BACKEND = Path(__file__).resolve().parents[1] / "backend"
if _BACKEND.exists() and str(_BACKEND) not in sys.path:
    sys.path.insert(0, str(_BACKEND))

from broadcaster import Broadcaster  # noqa: E402
from event_source import SequenceEventSource  # noqa: E402
from ingestion import IngestionLoop  # noqa: E402
from models import EventType, FailureReason, VendEvent  # noqa: E402
from repo_events import EventStore  # noqa: E402
from service_events import EventService  # noqa: E402

BASE_TS = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def make_event(
    n: int,
    success: bool = True,
    ts: datetime | None = None,
    sku: str | None = "MULLER_YOGURT_001",
    reason: FailureReason = FailureReason.OUT_OF_STOCK,
) -> VendEvent:
    """Build event #n; timestamps default to one minute apart from BASE_TS."""
    return VendEvent(
        id=f"event_{n}",
        campaign_id="campaign_001",
        machine_id="machine_001",
        event_timestamp=ts or BASE_TS + timedelta(minutes=n),
        event_type=EventType.SUCCESSFUL_VEND if success else EventType.FAILED_VEND,
        product_sku=sku,
        failure_reason=None if success else reason,
    )


class Collector:
    """Thread-safe listener recording every summary it receives."""

    def __init__(self):
        self.received = []
        self._lock = threading.Lock()

    def __call__(self, summary):
        with self._lock:
            self.received.append(summary)


@pytest.fixture
def store():
    return EventStore(capacity=1000)


@pytest.fixture
def svc(store):
    return EventService(store)


@pytest.fixture
def broadcaster():
    b = Broadcaster()
    yield b
    b.close()


@pytest.fixture
def collector():
    return Collector()


@pytest.fixture
def replay_loop(svc, broadcaster):
    """Ingestion loop replaying 50 alternating-outcome events."""
    events = [make_event(i, success=i % 3 != 0) for i in range(1, 51)]
    return IngestionLoop(SequenceEventSource(events), svc, broadcaster, interval=0.01)
