"""
Centralized runtime configuration for the backend.

This module uses `python-dotenv` to read a local `.env` file during
development and exposes a Pydantic `Settings` model named `settings`.

Why this exists:
- Keeps configuration in one place so other modules import `settings`.
- Provides typed fields with defaults and simple validation.

Environment variables used:
- `STORE_CAPACITY` : max events held in memory (oldest evicted first).
- `SEED_COUNT` / `SEED_LOOKBACK_DAYS` : synthetic events loaded at startup.
- `TICK_INTERVAL_SECONDS` : period of the ingestion loop.
- `SUCCESS_BIAS` : probability that a synthesized vend succeeds.
- `CAMPAIGN_ID` / `MACHINE_ID` : identifiers stamped on synthesized events.
- `BUCKET_TIMEZONE` : IANA zone used for hour/day buckets.
- `MAX_BATCH_SIZE` : safety limit for ingest batch sizes.
- `LOG_LEVEL` : root log level.
- `CORS_ORIGINS` : comma separated dashboard origins.

Example `.env`:
STORE_CAPACITY=1000
TICK_INTERVAL_SECONDS=2
BUCKET_TIMEZONE=Europe/London

"""

import os
from datetime import timezone, tzinfo
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

load_dotenv()


def resolve_timezone(name: str) -> tzinfo:
    """Map a zone name to a tzinfo. `UTC` never needs the tz database."""

    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


class Settings(BaseModel):
    """Typed settings container.

    All downstream code should import `settings` from this module or
    receive a `Settings` instance. Use these attributes (not os.getenv) so
    tests can build their own `Settings(...)`.
    """

    store_capacity: int = Field(
        default=int(os.getenv("STORE_CAPACITY", "1000")), ge=1
    )
    seed_count: int = Field(default=int(os.getenv("SEED_COUNT", "100")), ge=0)
    seed_lookback_days: float = Field(
        default=float(os.getenv("SEED_LOOKBACK_DAYS", "7")), gt=0
    )
    tick_interval_seconds: float = Field(
        default=float(os.getenv("TICK_INTERVAL_SECONDS", "5")), gt=0
    )
    success_bias: float = Field(
        default=float(os.getenv("SUCCESS_BIAS", "0.8")), ge=0, le=1
    )
    campaign_id: str = os.getenv("CAMPAIGN_ID", "campaign_001")
    machine_id: str = os.getenv("MACHINE_ID", "machine_001")
    bucket_timezone: str = os.getenv("BUCKET_TIMEZONE", "UTC")
    max_batch_size: int = int(os.getenv("MAX_BATCH_SIZE", "5000"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    cors_origins: List[str] = [
        o.strip()
        for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
        if o.strip()
    ]

    @field_validator("bucket_timezone")
    @classmethod
    def _known_timezone(cls, v: str) -> str:
        try:
            resolve_timezone(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v


settings = Settings()
