"""
Machine status catalog.

The deployment has a fixed set of three machines. Status and uptime are
static; the last refill time and refill count are re-drawn on every call
to mimic live telemetry until a real machine feed is connected.
"""

import random
from datetime import datetime, timedelta
from typing import List, Optional

from event_source import utc_now
from models import Machine, MachineStatus

# (id, name, status, uptime %, max hours since refill, max refill count)
CATALOG = (
    ("machine_001", "ASDA Leeds - Main Entrance", MachineStatus.ONLINE, 98.5, 24, 10),
    ("machine_002", "ASDA Leeds - Aisle 5", MachineStatus.ONLINE, 96.2, 24, 8),
    ("machine_003", "ASDA Leeds - Checkout Area", MachineStatus.OFFLINE, 45.3, 48, 5),
)


def machine_catalog(
    now: Optional[datetime] = None, rng: Optional[random.Random] = None
) -> List[Machine]:
    now = now or utc_now()
    rng = rng or random.Random()
    return [
        Machine(
            id=machine_id,
            name=name,
            status=status,
            uptime_percentage=uptime,
            last_refill_timestamp=now - timedelta(hours=rng.random() * max_hours),
            refill_count=rng.randint(1, max_refills),
        )
        for machine_id, name, status, uptime, max_hours, max_refills in CATALOG
    ]
