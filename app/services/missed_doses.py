"""Calculate which scheduled doses were neither taken nor skipped.

Reporting counterpart of the gap reconciler: many medications, an arbitrary
date range, and the output is *virtual* ``HistoryRecord`` rows with
``action=MISSED`` that are recomputed on every call and never persisted.
"""

from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import Iterable, List, Optional

from app.services.schedule_expander import days_spanning, expand_range
from app.types.schedule_contract import HistoryAction, HistoryRecord, Medication
from app.utils.timeutil import resolve, resolved_slots, slot_key_of

_LOGGER = logging.getLogger(__name__)


def calculate_missed_doses(
    medications: Iterable[Medication],
    existing_history: Iterable[HistoryRecord],
    start_time: datetime,
    end_time: datetime,
    *,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[HistoryRecord]:
    """Virtual MISSED records for every local day from ``start_time`` to ``end_time``.

    Both end days are included whole; callers bound the range (30 to 90 days),
    the work is O(days × medications × reminders per day).
    """
    now, tz = resolve(now, tz)
    span = days_spanning(start_time.astimezone(tz).date(), end_time.astimezone(tz).date())
    if span is None:
        return []

    resolved = resolved_slots(existing_history, tz)

    missed: List[HistoryRecord] = []
    for medication in medications:
        for instant in expand_range(medication.schedule, *span, medication_id=medication.id):
            scheduled = instant.scheduled_at(tz)
            # not yet time to take it
            if scheduled > now:
                continue
            if slot_key_of(medication.id, scheduled, tz) in resolved:
                continue
            missed.append(
                HistoryRecord(
                    id=0,
                    profile_id=medication.profile_id,
                    medication_id=medication.id,
                    medication_name=medication.name,
                    scheduled_time=scheduled,
                    taken_time=scheduled,
                    was_on_time=False,
                    action=HistoryAction.MISSED,
                    virtual=True,
                )
            )

    missed.sort(key=lambda r: (r.scheduled_time, r.medication_id))
    _LOGGER.debug("Calculated %d missed dose(s) between %s and %s", len(missed), *span)
    return missed
