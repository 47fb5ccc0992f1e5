"""Adherence figures for the reports: per day, and for a whole range."""

from __future__ import annotations

from collections import Counter
from datetime import date, datetime, timedelta, tzinfo
from typing import Iterable, List, Optional

from app.services.missed_doses import calculate_missed_doses
from app.types.schedule_contract import (
    AdherenceState,
    AdherenceSummary,
    DayAdherence,
    HistoryAction,
    HistoryRecord,
    Medication,
)
from app.utils.timeutil import local_timezone, resolve


def calculate_adherence_percentage(
    taken: int, total: int, skipped: int, include_skipped: bool
) -> int:
    """Integer percentage of doses taken.

    Unless ``include_skipped`` is set, skipped doses are left out of the
    denominator instead of counting against adherence.
    """
    if total == 0:
        return 0
    if include_skipped:
        return int(taken / total * 100)
    effective = total - skipped
    if effective == 0:
        return 0
    return int(taken / effective * 100)


def _state_for(percentage: int) -> AdherenceState:
    if percentage == 100:
        return AdherenceState.COMPLETE
    if percentage >= 50:
        return AdherenceState.PARTIAL
    return AdherenceState.POOR


def day_adherence_state(
    day: date,
    medications: Iterable[Medication],
    history: Iterable[HistoryRecord],
    include_skipped: bool = False,
    tz: Optional[tzinfo] = None,
) -> DayAdherence:
    tz = tz or local_timezone()
    active = [m for m in medications if m.created_at.astimezone(tz).date() <= day]
    if not active:
        return DayAdherence(day=day, state=AdherenceState.NOT_SCHEDULED)

    day_history = [h for h in history if h.scheduled_time.astimezone(tz).date() == day]
    if not day_history:
        return DayAdherence(day=day, state=AdherenceState.NO_DATA)

    counts = Counter(h.action for h in day_history)
    percentage = calculate_adherence_percentage(
        counts[HistoryAction.TAKEN], len(day_history), counts[HistoryAction.SKIPPED], include_skipped
    )
    return DayAdherence(day=day, state=_state_for(percentage), percentage=percentage)


def daily_adherence(
    history: Iterable[HistoryRecord],
    medications: Iterable[Medication],
    start: date,
    days: int,
    include_skipped: bool = False,
    tz: Optional[tzinfo] = None,
) -> List[DayAdherence]:
    history = list(history)
    medications = list(medications)
    return [
        day_adherence_state(start + timedelta(days=i), medications, history, include_skipped, tz)
        for i in range(days)
    ]


def adherence_summary(
    medications: Iterable[Medication],
    history: Iterable[HistoryRecord],
    start: datetime,
    end: datetime,
    *,
    include_skipped: bool = False,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> AdherenceSummary:
    """Counts over persisted history plus the virtual missed doses of the range."""
    now, tz = resolve(now, tz)
    medications = list(medications)
    first, last = start.astimezone(tz).date(), end.astimezone(tz).date()
    in_range = [
        h for h in history if first <= h.scheduled_time.astimezone(tz).date() <= last
    ]
    virtual = calculate_missed_doses(medications, in_range, start, end, now=now, tz=tz)

    counts = Counter(h.action for h in in_range + virtual)
    total = sum(counts.values())
    return AdherenceSummary(
        start=start,
        end=end,
        taken=counts[HistoryAction.TAKEN],
        skipped=counts[HistoryAction.SKIPPED],
        missed=counts[HistoryAction.MISSED],
        percentage=calculate_adherence_percentage(
            counts[HistoryAction.TAKEN], total, counts[HistoryAction.SKIPPED], include_skipped
        ),
    )
