"""Expand a weekly reminder schedule into concrete dose instants.

Weekdays use one canonical encoding everywhere: ISO 8601, 1=Monday ..
7=Sunday.  Python's own calendar numbering (``date.weekday()``) is 0=Monday ..
6=Sunday; ``canonical_weekday``/``native_weekday`` convert between the two.

Everything here is pure: no clock reads, no cached calendar state.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple, Union

from app.services.schedule_codec import ParseResult, schedule_or_empty, validate_schedule
from app.types.schedule_contract import DoseInstant, ReminderTimeEntry

ScheduleInput = Union[None, str, ParseResult, Iterable[ReminderTimeEntry]]

_LOGGER = logging.getLogger(__name__)


def canonical_weekday(native: int) -> int:
    """``date.weekday()`` value (0=Mon) -> canonical code (1=Mon)."""
    if not 0 <= native <= 6:
        raise ValueError(f"native weekday out of range: {native}")
    return native + 1


def native_weekday(canonical: int) -> int:
    """Canonical code (1=Mon) -> ``date.weekday()`` value (0=Mon)."""
    if not 1 <= canonical <= 7:
        raise ValueError(f"canonical weekday out of range: {canonical}")
    return canonical - 1


def weekday_of(day: date) -> int:
    return canonical_weekday(day.weekday())


def _entries(schedule: ScheduleInput) -> List[ReminderTimeEntry]:
    if schedule is None:
        return []
    if isinstance(schedule, str):
        return schedule_or_empty(schedule)
    if isinstance(schedule, ParseResult):
        return schedule.unwrap_or([]) or []
    result = validate_schedule(schedule)
    if not result.ok:
        _LOGGER.warning("Ignoring malformed schedule: %s", result.error)
        return []
    return result.value


def occurrences_on_day(schedule: ScheduleInput, day: date) -> List[Tuple[int, int]]:
    """Distinct (hour, minute) slots of ``schedule`` that fall on ``day``.

    Two entries with the same time collapse into one slot.
    """
    code = weekday_of(day)
    slots = {(e.hour, e.minute) for e in _entries(schedule) if code in e.days}
    return sorted(slots)


def expand_range(
    schedule: ScheduleInput,
    start_date: date,
    end_date: date,
    *,
    medication_id: int = 0,
) -> List[DoseInstant]:
    """Dose instants for every day in ``[start_date, end_date)``."""
    entries = _entries(schedule)
    if not entries:
        return []

    out: List[DoseInstant] = []
    day = start_date
    while day < end_date:
        for hour, minute in occurrences_on_day(entries, day):
            out.append(DoseInstant(medication_id, day, hour, minute))
        day += timedelta(days=1)
    return out


def days_spanning(start_day: date, last_day: date) -> Optional[Tuple[date, date]]:
    """Closed day interval as the half-open pair ``expand_range`` expects."""
    if last_day < start_day:
        return None
    return start_day, last_day + timedelta(days=1)
