import os
from datetime import datetime, timedelta, timezone

import pytest

import db
from app.types.schedule_contract import HistoryAction, HistoryRecord, Medication, ReminderTimeEntry

pytestmark = pytest.mark.skipif(
    not (os.getenv("DATABASE_URL") or os.getenv("DATABASE_PUBLIC_URL")),
    reason="DATABASE_URL not set for database round-trip test",
)


@pytest.mark.asyncio
async def test_medication_and_history_round_trip():
    await db.create_all()
    meds, hist = db.SqlMedicationStore(), db.SqlHistoryStore()
    now = datetime.now(timezone.utc).replace(microsecond=0)

    med_id = await meds.add(
        Medication(
            id=0,
            name="db-test",
            schedule=[ReminderTimeEntry(hour=8, minute=0, days=[1, 3, 5])],
            created_at=now,
        )
    )
    try:
        stored = await meds.get_by_id(med_id)
        assert stored is not None
        assert stored.schedule[0].days == frozenset({1, 3, 5})

        record = HistoryRecord(
            medication_id=med_id,
            medication_name="db-test",
            scheduled_time=now - timedelta(minutes=5),
            taken_time=now,
            was_on_time=True,
            action=HistoryAction.TAKEN,
        )
        await hist.insert(record)

        found = await hist.query_by_date_range(now - timedelta(hours=1), now)
        assert any(h.medication_id == med_id for h in found)

        with pytest.raises(ValueError):
            await hist.insert(record.model_copy(update={"virtual": True}))
    finally:
        assert await meds.remove(med_id)
        await db.dispose_engine()
