"""Find the doses of one medication that fell inside a liveness gap.

A gap is the wall-clock interval during which nothing was checking for due
doses (process killed, device rebooted).  The function is pure: history is
passed in, ``now`` and ``tz`` are injectable.
"""

from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import Iterable, List, Optional

from app.services.schedule_expander import days_spanning, expand_range
from app.types.schedule_contract import HistoryRecord, Medication, MissedDose
from app.utils.timeutil import resolve, resolved_slots, slot_key_of

_LOGGER = logging.getLogger(__name__)


def find_missed_doses_in_gap(
    medication: Medication,
    gap_start: datetime,
    gap_end: datetime,
    existing_history: Iterable[HistoryRecord],
    *,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[MissedDose]:
    """Unresolved, already-due doses scheduled in ``[gap_start, gap_end)``.

    A dose earlier on the same day but before ``gap_start`` is left out even
    if it is unresolved: the live notification path owns it.
    """
    now, tz = resolve(now, tz)
    if gap_end <= gap_start or not medication.schedule:
        return []

    span = days_spanning(gap_start.astimezone(tz).date(), gap_end.astimezone(tz).date())
    if span is None:
        return []

    resolved = resolved_slots(
        (h for h in existing_history if h.medication_id == medication.id), tz
    )

    missed: List[MissedDose] = []
    for instant in expand_range(medication.schedule, *span, medication_id=medication.id):
        scheduled = instant.scheduled_at(tz)
        if not gap_start <= scheduled < gap_end:
            continue
        if scheduled > now:
            continue
        if slot_key_of(medication.id, scheduled, tz) in resolved:
            continue
        missed.append(MissedDose(scheduled, instant.hour, instant.minute))

    _LOGGER.debug(
        "Gap %s..%s for %s: %d missed dose(s)", gap_start, gap_end, medication.name, len(missed)
    )
    return missed
