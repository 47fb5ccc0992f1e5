"""Clock and calendar helpers.

The zone is looked up on every call so a timezone change takes effect
immediately; nothing here caches calendar state.
"""

from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Iterable, Optional, Set, Tuple
from zoneinfo import ZoneInfo

from config import settings
from app.types.schedule_contract import HistoryRecord


def local_timezone() -> tzinfo:
    return ZoneInfo(settings.DEFAULT_TIMEZONE)


def resolve(now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> Tuple[datetime, tzinfo]:
    """Fill in the defaults for an injectable (now, tz) pair."""
    tz = tz or local_timezone()
    if now is None:
        now = datetime.now(tz)
    elif now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    return now.astimezone(tz), tz


def slot_today(hour: int, minute: int, now: datetime) -> datetime:
    return now.replace(hour=hour, minute=minute, second=0, microsecond=0)


def resolved_slots(history: Iterable[HistoryRecord], tz: tzinfo) -> Set[Tuple[int, int, int, int, int]]:
    """Slot keys already covered by a history record of any action."""
    return {slot_key_of(h.medication_id, h.scheduled_time, tz) for h in history}


def slot_key_of(medication_id: int, scheduled: datetime, tz: tzinfo) -> Tuple[int, int, int, int, int]:
    local = scheduled.astimezone(tz)
    return (medication_id, local.year, local.timetuple().tm_yday, local.hour, local.minute)
