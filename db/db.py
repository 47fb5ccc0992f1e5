"""
Async DB helpers for the medication catalog and dose history.
Uses SQLAlchemy 2.0 + asyncpg driver, no raw SQL strings in app code.

The pending-dose list is *not* stored here; it lives in a local blob owned by
``PendingDoseTracker``.
"""

from __future__ import annotations

import os
from datetime import date, datetime, time, timedelta, timezone
from typing import AsyncGenerator, List, Optional

from sqlalchemy import BigInteger, DateTime, String, Text, delete, func, select, update
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.ext.asyncio import (
    create_async_engine, async_sessionmaker, AsyncSession
)
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from app.services.schedule_codec import schedule_or_empty, serialize_schedule
from app.types.errors import StoreUnavailable
from app.types.schedule_contract import HistoryAction, HistoryRecord, Medication
from app.utils.timeutil import local_timezone

# ──────────────────────────────────────────────────────────────────────
# 1. Declarative metadata
# ──────────────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    pass

# ──────────────────────────────────────────────────────────────────────
# 2. Lazy engine / session factory
# ──────────────────────────────────────────────────────────────────────
_engine = None
_session_maker: async_sessionmaker[AsyncSession] | None = None

def _build_url() -> str:
    url = os.getenv("DATABASE_URL") or os.getenv("DATABASE_PUBLIC_URL")
    if not url:
        raise StoreUnavailable("DATABASE_URL not set")
    if "+asyncpg" not in url:
        url = url.replace("postgres://", "postgresql+asyncpg://", 1).replace(
            "postgresql://", "postgresql+asyncpg://", 1
        )
    return url

def get_engine():
    global _engine
    if _engine is None:
        _engine = create_async_engine(_build_url(), pool_size=5, max_overflow=5)
    return _engine

def get_session() -> AsyncGenerator[AsyncSession, None]:
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(get_engine(), expire_on_commit=False)
    async def _session_scope():
        async with _session_maker() as session:
            yield session
    return _session_scope()

# Retry only on connection-level failures
_transient = retry(
    wait=wait_random_exponential(multiplier=0.5, max=5),
    stop=stop_after_attempt(3),
    retry=retry_if_exception_type(OperationalError),
    reraise=True,
)

# ──────────────────────────────────────────────────────────────────────
# 3. ORM models
# ──────────────────────────────────────────────────────────────────────

class MedicationRow(Base):
    __tablename__ = "medications"

    id:                  Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    profile_id:          Mapped[int] = mapped_column(BigInteger, default=1)
    name:                Mapped[str]
    photo_uri:           Mapped[str | None]
    dosage:              Mapped[str | None]
    notes:               Mapped[str | None] = mapped_column(Text)
    reminder_times_json: Mapped[str | None] = mapped_column(Text)
    created_at:          Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class HistoryRow(Base):
    __tablename__ = "medication_history"

    id:              Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    profile_id:      Mapped[int] = mapped_column(BigInteger, default=1)
    medication_id:   Mapped[int] = mapped_column(BigInteger, index=True)
    medication_name: Mapped[str]
    scheduled_time:  Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    taken_time:      Mapped[datetime] = mapped_column(DateTime(timezone=True))
    was_on_time:     Mapped[bool]
    action:          Mapped[str] = mapped_column(String(16), default=HistoryAction.TAKEN.value)
    notes:           Mapped[str | None] = mapped_column(Text)


# ──────────────────────────────────────────────────────────────────────
# 4. DDL helper (run once at startup or from Alembic)
# ──────────────────────────────────────────────────────────────────────
async def create_all():
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ──────────────────────────────────────────────────────────────────────
# 5. Row <-> model conversion
# ──────────────────────────────────────────────────────────────────────

def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def _to_medication(row: MedicationRow) -> Medication:
    return Medication(
        id=row.id,
        profile_id=row.profile_id,
        name=row.name,
        photo_uri=row.photo_uri,
        dosage=row.dosage,
        notes=row.notes,
        schedule=schedule_or_empty(row.reminder_times_json),
        created_at=_aware(row.created_at),
    )


def _to_history(row: HistoryRow) -> HistoryRecord:
    return HistoryRecord(
        id=row.id,
        profile_id=row.profile_id,
        medication_id=row.medication_id,
        medication_name=row.medication_name,
        scheduled_time=_aware(row.scheduled_time),
        taken_time=_aware(row.taken_time),
        was_on_time=row.was_on_time,
        action=HistoryAction(row.action),
        notes=row.notes,
    )


# ──────────────────────────────────────────────────────────────────────
# 6. CRUD helpers
# ──────────────────────────────────────────────────────────────────────

# 6.1 Medication catalog -----------------------------------------------
@_transient
async def insert_medication(medication: Medication) -> int:
    row = MedicationRow(
        profile_id=medication.profile_id,
        name=medication.name,
        photo_uri=medication.photo_uri,
        dosage=medication.dosage,
        notes=medication.notes,
        reminder_times_json=serialize_schedule(medication.schedule),
        created_at=medication.created_at,
    )
    async for s in get_session():
        s.add(row)
        await s.commit()
    return row.id


@_transient
async def fetch_medications() -> list[Medication]:
    async for s in get_session():
        res = await s.execute(select(MedicationRow).order_by(MedicationRow.created_at.desc()))
        return [_to_medication(r) for r in res.scalars()]


@_transient
async def fetch_medication(medication_id: int) -> Medication | None:
    async for s in get_session():
        row = await s.get(MedicationRow, medication_id)
        return _to_medication(row) if row else None


@_transient
async def delete_medication(medication_id: int) -> bool:
    async for s in get_session():
        res = await s.execute(delete(MedicationRow).where(MedicationRow.id == medication_id))
        await s.commit()
        return res.rowcount > 0


# 6.2 History -----------------------------------------------------------
@_transient
async def insert_history(record: HistoryRecord) -> int:
    if record.virtual:
        raise ValueError("virtual missed-dose records are never persisted")
    row = HistoryRow(
        profile_id=record.profile_id,
        medication_id=record.medication_id,
        medication_name=record.medication_name,
        scheduled_time=record.scheduled_time,
        taken_time=record.taken_time,
        was_on_time=record.was_on_time,
        action=record.action.value,
        notes=record.notes,
    )
    async for s in get_session():
        s.add(row)
        await s.commit()
    return row.id


@_transient
async def update_history(record_id: int, record: HistoryRecord) -> None:
    if record.virtual:
        raise ValueError("virtual missed-dose records are never persisted")
    async for s in get_session():
        await s.execute(
            update(HistoryRow)
            .where(HistoryRow.id == record_id)
            .values(
                medication_name=record.medication_name,
                scheduled_time=record.scheduled_time,
                taken_time=record.taken_time,
                was_on_time=record.was_on_time,
                action=record.action.value,
                notes=record.notes,
            )
        )
        await s.commit()


@_transient
async def fetch_history_range(start: datetime, end: datetime) -> list[HistoryRecord]:
    async for s in get_session():
        stmt = (
            select(HistoryRow)
            .where(HistoryRow.scheduled_time >= start, HistoryRow.scheduled_time <= end)
            .order_by(HistoryRow.scheduled_time)
        )
        res = await s.execute(stmt)
        return [_to_history(r) for r in res.scalars()]


@_transient
async def fetch_history_for_medication(
    medication_id: int, start: datetime, end: datetime
) -> list[HistoryRecord]:
    async for s in get_session():
        stmt = (
            select(HistoryRow)
            .where(
                HistoryRow.medication_id == medication_id,
                HistoryRow.scheduled_time >= start,
                HistoryRow.scheduled_time < end,
            )
            .order_by(HistoryRow.taken_time.desc())
        )
        res = await s.execute(stmt)
        return [_to_history(r) for r in res.scalars()]


async def dispose_engine():
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None


# ──────────────────────────────────────────────────────────────────────
# 7. Store adapters used by ReminderService
# ──────────────────────────────────────────────────────────────────────

async def _guarded(coro):
    try:
        return await coro
    except SQLAlchemyError as exc:
        raise StoreUnavailable(str(exc)) from exc


class SqlMedicationStore:
    async def get_all(self) -> List[Medication]:
        return await _guarded(fetch_medications())

    async def get_by_id(self, medication_id: int) -> Optional[Medication]:
        return await _guarded(fetch_medication(medication_id))

    async def add(self, medication: Medication) -> int:
        return await _guarded(insert_medication(medication))

    async def remove(self, medication_id: int) -> bool:
        return await _guarded(delete_medication(medication_id))


class SqlHistoryStore:
    async def insert(self, record: HistoryRecord) -> int:
        return await _guarded(insert_history(record))

    async def replace(self, record_id: int, record: HistoryRecord) -> None:
        await _guarded(update_history(record_id, record))

    async def query_by_medication_and_day(self, medication_id: int, day: date) -> List[HistoryRecord]:
        tz = local_timezone()
        start = datetime.combine(day, time.min, tzinfo=tz)
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
        return await _guarded(fetch_history_for_medication(medication_id, start, end))

    async def query_by_date_range(self, start: datetime, end: datetime) -> List[HistoryRecord]:
        return await _guarded(fetch_history_range(start, end))
