from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

import pytest

from config import settings
from app.services.pending_tracker import PendingDoseTracker
from app.services.reminder_service import ReminderService
from app.types.schedule_contract import HistoryRecord, Medication, ReminderTimeEntry
from app.utils.blob import MemoryBlob

UTC = timezone.utc

# 2026-10-14 is a Wednesday
NOW = datetime(2026, 10, 14, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def strict_invariants(monkeypatch):
    monkeypatch.setattr(settings, "STRICT_INVARIANTS", True)
    monkeypatch.setattr(settings, "DEFAULT_TIMEZONE", "UTC")


class FakeClock:
    def __init__(self, start: datetime = NOW):
        self.ms = int(start.timestamp() * 1000)

    def __call__(self) -> int:
        return self.ms

    def advance(self, **kwargs) -> None:
        self.ms += int(timedelta(**kwargs) / timedelta(milliseconds=1))


class FakeMedicationStore:
    def __init__(self, medications: Optional[List[Medication]] = None):
        self.items = {m.id: m for m in medications or []}

    async def get_all(self) -> List[Medication]:
        return list(self.items.values())

    async def get_by_id(self, medication_id: int) -> Optional[Medication]:
        return self.items.get(medication_id)

    async def add(self, medication: Medication) -> int:
        new_id = max(self.items, default=0) + 1
        self.items[new_id] = medication.model_copy(update={"id": new_id})
        return new_id

    async def remove(self, medication_id: int) -> bool:
        return self.items.pop(medication_id, None) is not None


class FakeHistoryStore:
    def __init__(self):
        self.records: List[HistoryRecord] = []

    async def insert(self, record: HistoryRecord) -> int:
        if record.virtual:
            raise ValueError("virtual records are never persisted")
        stored = record.model_copy(update={"id": len(self.records) + 1})
        self.records.append(stored)
        return stored.id

    async def replace(self, record_id: int, record: HistoryRecord) -> None:
        index = next(i for i, r in enumerate(self.records) if r.id == record_id)
        self.records[index] = record.model_copy(update={"id": record_id})

    async def query_by_medication_and_day(self, medication_id: int, day: date) -> List[HistoryRecord]:
        return [
            r for r in self.records
            if r.medication_id == medication_id and r.scheduled_time.astimezone(UTC).date() == day
        ]

    async def query_by_date_range(self, start: datetime, end: datetime) -> List[HistoryRecord]:
        return [r for r in self.records if start <= r.scheduled_time <= end]


def make_medication(med_id: int, *slots, created_at: datetime = NOW - timedelta(days=30), name=None) -> Medication:
    """``slots`` are (hour, minute, days) tuples; days=None means every day."""
    return Medication(
        id=med_id,
        name=name or f"Med{med_id}",
        schedule=[ReminderTimeEntry(hour=h, minute=m, days=d or []) for h, m, d in slots],
        created_at=created_at,
    )


def history(med: Medication, scheduled: datetime, action="TAKEN") -> HistoryRecord:
    return HistoryRecord(
        medication_id=med.id,
        medication_name=med.name,
        scheduled_time=scheduled,
        taken_time=scheduled + timedelta(minutes=5),
        was_on_time=True,
        action=action,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def blob() -> MemoryBlob:
    return MemoryBlob()


@pytest.fixture
def tracker(blob, clock) -> PendingDoseTracker:
    return PendingDoseTracker(blob, clock=clock, expiry_hours=2)


@pytest.fixture
def history_store() -> FakeHistoryStore:
    return FakeHistoryStore()


@pytest.fixture
def make_service(tracker, history_store):
    def _make(*medications: Medication, last_check: Optional[datetime] = None) -> ReminderService:
        return ReminderService(
            medications=FakeMedicationStore(list(medications)),
            history=history_store,
            tracker=tracker,
            last_check=MemoryBlob(last_check.isoformat() if last_check else None),
        )
    return _make
