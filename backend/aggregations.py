"""
Aggregation functions over a snapshot of vend events.

Every function here is pure: it takes a sequence of events (normally
`EventStore.all()`) and returns fresh output records. Nothing is cached
and nothing is mutated, so callers may run them concurrently with
ingestion as long as they pass a snapshot.

Percentages go through `percentage()` so the zero guard and the
two-decimal rounding are applied the same way everywhere.
"""

from datetime import timezone, tzinfo
from typing import Dict, List, Sequence

from models import DayBucket, HourBucket, ProductPerformance, Summary, VendEvent


def percentage(part: int, whole: int) -> float:
    """`part / whole * 100` rounded to 2 decimals, or 0 when `whole` is 0."""

    if whole <= 0:
        return 0
    return round(part / whole * 100, 2)


def summarize(events: Sequence[VendEvent]) -> Summary:
    total = len(events)
    successful = sum(1 for e in events if e.successful)
    failed = total - successful
    return Summary(
        total=total,
        successful=successful,
        failed=failed,
        success_pct=percentage(successful, total),
        failure_pct=percentage(failed, total),
    )


def by_hour(events: Sequence[VendEvent], tz: tzinfo = timezone.utc) -> List[HourBucket]:
    """Hour-of-day buckets (0-23) in `tz`. Empty hours are omitted."""

    buckets: Dict[int, HourBucket] = {}
    for e in events:
        hour = e.event_timestamp.astimezone(tz).hour
        bucket = buckets.get(hour)
        if bucket is None:
            bucket = buckets[hour] = HourBucket(hour=hour, count=0, successful=0, failed=0)
        _count(bucket, e)
    return [buckets[h] for h in sorted(buckets)]


def by_day(events: Sequence[VendEvent], tz: tzinfo = timezone.utc) -> List[DayBucket]:
    """Calendar-day buckets keyed by ISO date in `tz`, oldest first."""

    buckets: Dict[str, DayBucket] = {}
    for e in events:
        day = e.event_timestamp.astimezone(tz).date().isoformat()
        bucket = buckets.get(day)
        if bucket is None:
            bucket = buckets[day] = DayBucket(date=day, count=0, successful=0, failed=0)
        _count(bucket, e)
    # ISO dates sort lexically in calendar order
    return [buckets[d] for d in sorted(buckets)]


def by_product(events: Sequence[VendEvent]) -> List[ProductPerformance]:
    """Per-SKU clicks and conversions, busiest product first.

    Events without a `product_sku` are skipped. Ties keep the order in
    which each SKU first appeared.
    """

    clicks: Dict[str, int] = {}
    conversions: Dict[str, int] = {}
    for e in events:
        if not e.product_sku:
            continue
        clicks[e.product_sku] = clicks.get(e.product_sku, 0) + 1
        conversions.setdefault(e.product_sku, 0)
        if e.successful:
            conversions[e.product_sku] += 1

    out = [
        ProductPerformance(
            sku=sku,
            total_clicks=total,
            conversions=conversions[sku],
            conversion_rate=percentage(conversions[sku], total),
        )
        for sku, total in clicks.items()
    ]
    out.sort(key=lambda p: p.total_clicks, reverse=True)
    return out


def _count(bucket, event: VendEvent) -> None:
    bucket.count += 1
    if event.successful:
        bucket.successful += 1
    else:
        bucket.failed += 1
