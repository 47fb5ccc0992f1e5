"""Pydantic models for medications, schedules, history and pending doses.

These classes are framework-agnostic so they can be shared by the services,
workers, API responses and tests without pulling in FastAPI or database
layers.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import FrozenSet, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Canonical weekday encoding: ISO 8601, 1=Monday .. 7=Sunday
ALL_DAYS: FrozenSet[int] = frozenset(range(1, 8))


class HistoryAction(str, Enum):
    TAKEN = "TAKEN"
    SKIPPED = "SKIPPED"
    MISSED = "MISSED"


class UserAction(str, Enum):
    TAKE = "TAKE"
    SKIP = "SKIP"
    SNOOZE = "SNOOZE"
    TAKE_ALL = "TAKE_ALL"
    SKIP_ALL = "SKIP_ALL"
    SNOOZE_ALL = "SNOOZE_ALL"

    @property
    def grouped(self) -> bool:
        return self.value.endswith("_ALL")

    @property
    def history_action(self) -> Optional[HistoryAction]:
        """History action recorded for this user action, None for snoozes."""
        if self in (UserAction.TAKE, UserAction.TAKE_ALL):
            return HistoryAction.TAKEN
        if self in (UserAction.SKIP, UserAction.SKIP_ALL):
            return HistoryAction.SKIPPED
        return None


# ──────────────────────────────
# Schedule
# ──────────────────────────────


class ReminderTimeEntry(BaseModel):
    """One wall-clock reminder time repeated on a set of weekdays."""

    model_config = ConfigDict(frozen=True)

    hour: int = Field(ge=0, le=23)
    minute: int = Field(ge=0, le=59)
    days: FrozenSet[int] = ALL_DAYS

    @field_validator("days", mode="before")
    def _default_days(cls, v):  # noqa: N805
        # An empty day set means "every day"
        if v is None or (hasattr(v, "__len__") and len(v) == 0):
            return ALL_DAYS
        return v

    @field_validator("days")
    def _validate_days(cls, v):  # noqa: N805
        bad = sorted(d for d in v if d not in ALL_DAYS)
        if bad:
            raise ValueError(f"weekday codes must be 1..7 (Monday..Sunday), got {bad}")
        return v


class Medication(BaseModel):
    id: int
    profile_id: int = 1
    name: str
    photo_uri: Optional[str] = None
    dosage: Optional[str] = None
    notes: Optional[str] = None
    schedule: List[ReminderTimeEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("created_at")
    def _require_aware(cls, v: datetime):  # noqa: N805
        if v.tzinfo is None:
            raise ValueError("created_at must be timezone-aware")
        return v


class DoseInstant(NamedTuple):
    """A concrete (date, hour, minute) derived from a recurring schedule."""

    medication_id: int
    day: date
    hour: int
    minute: int

    def scheduled_at(self, tz: tzinfo) -> datetime:
        return datetime(self.day.year, self.day.month, self.day.day, self.hour, self.minute, tzinfo=tz)


class MissedDose(NamedTuple):
    scheduled_timestamp: datetime
    hour: int
    minute: int


# ──────────────────────────────
# History
# ──────────────────────────────


class HistoryRecord(BaseModel):
    """When a medication was taken, skipped, or missed.

    Records produced by the missed-dose calculator are *virtual*: they exist
    for display and aggregation only and must never be written to a store.
    """

    id: int = 0
    profile_id: int = 1
    medication_id: int
    medication_name: str
    scheduled_time: datetime
    taken_time: datetime
    was_on_time: bool
    action: HistoryAction = HistoryAction.TAKEN
    notes: Optional[str] = None
    virtual: bool = False

    @field_validator("scheduled_time", "taken_time")
    def _require_aware(cls, v: datetime):  # noqa: N805
        if v.tzinfo is None:
            raise ValueError("history timestamps must be timezone-aware")
        return v


# ──────────────────────────────
# Pending doses
# ──────────────────────────────


class PendingEntry(BaseModel):
    """A notification that fired and has not been resolved yet.

    Serialised with camelCase aliases; ``timestamp`` is epoch milliseconds.
    """

    model_config = ConfigDict(populate_by_name=True)

    medication_id: int = Field(alias="medicationId")
    medication_name: str = Field(alias="medicationName")
    medication_photo_uri: Optional[str] = Field(default=None, alias="medicationPhotoUri")
    hour: int = Field(ge=0, le=23)
    minute: int = Field(ge=0, le=59)
    timestamp: int = 0

    @field_validator("medication_photo_uri", mode="before")
    def _blank_is_none(cls, v):  # noqa: N805
        return v or None

    @property
    def key(self) -> tuple[int, int, int]:
        return (self.medication_id, self.hour, self.minute)

    @property
    def armed_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)


class ReconcileReport(BaseModel):
    """Outcome of a start-up / periodic reconciliation pass."""

    stale_pending_removed: int = 0
    missed_recorded: int = 0
    still_pending: int = 0
    medications_checked: int = 0
    gap_start: Optional[datetime] = None
    gap_end: datetime


# ──────────────────────────────
# Adherence reporting
# ──────────────────────────────


class AdherenceState(str, Enum):
    NOT_SCHEDULED = "NOT_SCHEDULED"
    NO_DATA = "NO_DATA"
    COMPLETE = "COMPLETE"
    PARTIAL = "PARTIAL"
    POOR = "POOR"


class DayAdherence(BaseModel):
    day: date
    state: AdherenceState
    percentage: Optional[int] = None


class AdherenceSummary(BaseModel):
    start: datetime
    end: datetime
    taken: int = 0
    skipped: int = 0
    missed: int = 0
    percentage: int = 0

    @property
    def total(self) -> int:
        return self.taken + self.skipped + self.missed


class UserActionResult(BaseModel):
    action: UserAction
    medication_ids: List[int] = Field(default_factory=list)
    history: List[HistoryRecord] = Field(default_factory=list)
    snoozed_until: Optional[datetime] = None


def minutes_between(a: datetime, b: datetime) -> float:
    return abs((a - b) / timedelta(minutes=1))
