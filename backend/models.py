"""
Pydantic models used across the backend.

`VendEvent` is the single input shape for vend events. It is frozen so
that nothing downstream of ingestion can mutate an event once it sits in
the store. The remaining models are output records returned by the
aggregation layer; the HTTP layer serializes them as-is.

Guidelines:
- Keep models minimal and stable. Aggregate shapes get their own model
  rather than re-using dicts so the API contract is typed.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, model_validator


class EventType(str, Enum):
    SUCCESSFUL_VEND = "successful_vend"
    FAILED_VEND = "failed_vend"


class FailureReason(str, Enum):
    OUT_OF_STOCK = "out_of_stock"
    PAYMENT_FAILED = "payment_failed"
    MACHINE_ERROR = "machine_error"


class AgeGroup(str, Enum):
    AGE_18_25 = "18-25"
    AGE_26_35 = "26-35"
    AGE_36_45 = "36-45"
    AGE_46_55 = "46-55"
    AGE_55_PLUS = "55+"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class MachineStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class Demographics(BaseModel):
    model_config = ConfigDict(frozen=True)

    age_group: AgeGroup
    gender: Gender


class VendEvent(BaseModel):
    """A single vend outcome reported by a sampling machine.

    Fields:
    - `id`: unique, counter-derived identifier (`event_<n>`).
    - `campaign_id` / `machine_id`: opaque foreign identifiers.
    - `event_timestamp`: when the vend happened. Drives hour/day buckets.
      Must carry a timezone; naive values never reach the store.
    - `event_type`: `successful_vend` or `failed_vend`.
    - `product_sku`: catalog SKU; events without one are left out of
      product performance.
    - `success_percentage`: per-event confidence value. Carried only,
      aggregates recompute ratios from counts.
    - `failure_reason`: required on failed vends, forbidden otherwise.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    campaign_id: str
    machine_id: str
    event_timestamp: AwareDatetime
    event_type: EventType
    product_sku: Optional[str] = None
    session_id: Optional[str] = None
    footfall_count: int = Field(default=0, ge=0)
    demographics: Optional[Demographics] = None
    success_percentage: Optional[float] = None
    failure_reason: Optional[FailureReason] = None

    @model_validator(mode="after")
    def _check_failure_reason(self) -> "VendEvent":
        failed = self.event_type == EventType.FAILED_VEND
        if failed and self.failure_reason is None:
            raise ValueError("failed_vend events must carry a failure_reason")
        if not failed and self.failure_reason is not None:
            raise ValueError("failure_reason is only allowed on failed_vend events")
        return self

    @property
    def successful(self) -> bool:
        return self.event_type == EventType.SUCCESSFUL_VEND


class Machine(BaseModel):
    id: str
    name: str
    status: MachineStatus
    uptime_percentage: float
    last_refill_timestamp: datetime
    refill_count: int


class Summary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    successful: int
    failed: int
    success_pct: float
    failure_pct: float


class HourBucket(BaseModel):
    hour: int = Field(ge=0, le=23)
    count: int
    successful: int
    failed: int


class DayBucket(BaseModel):
    date: str
    count: int
    successful: int
    failed: int


class ProductPerformance(BaseModel):
    sku: str
    total_clicks: int
    conversions: int
    conversion_rate: float
