"""
Pydantic schemas for scheduled price and factor changes.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional
from pydantic import Field, field_validator

from cenniki.schemas.common import CamelModel
from cenniki.schemas.price_change import AtomicChange, ChangeSummary


def parse_scheduled_date(value: Any) -> Any:
    """
    Reduce a scheduled date to a calendar day.

    Accepts "YYYY-MM-DD", full ISO datetimes ("2025-01-15T00:00:00Z") and
    date/datetime objects. Timezone-aware datetimes are converted to the
    server's local day first.
    """
    if isinstance(value, datetime):
        return value.astimezone().date() if value.tzinfo else value.date()
    if isinstance(value, str):
        text = value.strip()
        if len(text) > 10:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            return parse_scheduled_date(parsed)
        return date.fromisoformat(text)
    return value


# ============================================================================
# Price change-sets
# ============================================================================

class ScheduledChangeCreate(CamelModel):
    producer_slug: str = Field(..., max_length=100)
    producer_name: Optional[str] = Field(None, max_length=255, description="Defaults to the producer's display name")
    scheduled_date: date
    changes: List[AtomicChange]
    summary: Optional[ChangeSummary] = Field(None, description="Accepted for compatibility; always recomputed from changes")

    @field_validator("scheduled_date", mode="before")
    @classmethod
    def normalize_date(cls, v):
        return parse_scheduled_date(v)


class ScheduledChangePatch(CamelModel):
    """Exactly one action: reschedule, apply now or cancel"""
    id: str
    scheduled_date: Optional[date] = None
    apply_now: bool = False
    action: Optional[str] = Field(None, description="'apply' or 'cancel'")

    @field_validator("scheduled_date", mode="before")
    @classmethod
    def normalize_date(cls, v):
        return parse_scheduled_date(v)

    @field_validator("action")
    @classmethod
    def validate_action(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in ("apply", "cancel"):
            raise ValueError("action must be 'apply' or 'cancel'")
        return v

    @property
    def wants_apply(self) -> bool:
        return self.apply_now or self.action == "apply"


class ScheduledChangeResponse(CamelModel):
    id: str
    producer_slug: str
    producer_name: str
    scheduled_date: date
    created_at: Optional[datetime] = None
    changes: List[AtomicChange]
    summary: ChangeSummary
    status: str
    applied_at: Optional[datetime] = None
    apply_report: Optional[List[Dict[str, Any]]] = None


class ScheduledChangeCreateResponse(CamelModel):
    success: bool = True
    id: str
    change: ScheduledChangeResponse


class ScheduledChangeListResponse(CamelModel):
    success: bool = True
    changes: List[ScheduledChangeResponse]
    total: int


class ApplyOutcomeResponse(CamelModel):
    """Result of force-applying one change-set"""
    success: bool = True
    message: str
    producer_slug: str
    applied: int = 0
    skipped: int = 0
    outcomes: List[Dict[str, Any]] = []


# ============================================================================
# Factor changes
# ============================================================================

class FactorChangeCreate(CamelModel):
    producer_slug: str = Field(..., max_length=100)
    producer_name: Optional[str] = Field(None, max_length=255)
    scheduled_date: date
    new_factor: float = Field(..., gt=0)

    @field_validator("scheduled_date", mode="before")
    @classmethod
    def normalize_date(cls, v):
        return parse_scheduled_date(v)


class FactorChangeResponse(CamelModel):
    id: str
    producer_slug: str
    producer_name: str
    scheduled_date: date
    created_at: Optional[datetime] = None
    old_factor: float
    new_factor: float
    percent_change: float
    status: str
    applied_at: Optional[datetime] = None


class FactorChangeCreateResponse(CamelModel):
    success: bool = True
    id: str
    change: FactorChangeResponse


class FactorChangeListResponse(CamelModel):
    success: bool = True
    changes: List[FactorChangeResponse]
    total: int


# ============================================================================
# Scheduler trigger
# ============================================================================

class RunDueResponse(CamelModel):
    success: bool = True
    applied: List[str] = Field(default_factory=list, description="One line per applied change, e.g. \"Bomar: 12 zmian\"")
    applied_ids: List[str] = []
    errors: List[str] = []
    skipped: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict, description="Skipped cells per change-set id")
    message: str


class PendingPreviewItem(CamelModel):
    id: str
    producer: str
    scheduled_date: date
    changes: int
    kind: str = "price"


class PendingPreviewResponse(CamelModel):
    success: bool = True
    pending_count: int
    pending: List[PendingPreviewItem]
