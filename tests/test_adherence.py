from datetime import date, datetime, timezone

import pytest

from app.services.adherence import (
    adherence_summary,
    calculate_adherence_percentage,
    daily_adherence,
    day_adherence_state,
)
from app.types.schedule_contract import AdherenceState
from tests.conftest import history, make_medication

UTC = timezone.utc
DAY = date(2026, 10, 13)


def at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 10, day, hour, minute, tzinfo=UTC)


@pytest.mark.parametrize(
    "taken,total,skipped,include_skipped,expected",
    [
        (3, 4, 0, False, 75),
        (2, 4, 1, False, 66),
        (2, 4, 1, True, 50),
        (0, 0, 0, False, 0),
        (0, 2, 2, False, 0),
        (4, 4, 0, True, 100),
    ],
)
def test_adherence_percentage(taken, total, skipped, include_skipped, expected):
    assert calculate_adherence_percentage(taken, total, skipped, include_skipped) == expected


def test_day_before_any_medication_is_not_scheduled():
    med = make_medication(1, (9, 0, None), created_at=at(14, 8))
    assert day_adherence_state(DAY, [med], [], tz=UTC).state is AdherenceState.NOT_SCHEDULED


def test_day_without_history_has_no_data():
    med = make_medication(1, (9, 0, None))
    assert day_adherence_state(DAY, [med], [], tz=UTC).state is AdherenceState.NO_DATA


def test_day_states_by_percentage():
    a, b, c = (make_medication(i, (9, 0, None)) for i in (1, 2, 3))

    complete = day_adherence_state(DAY, [a], [history(a, at(13, 9))], tz=UTC)
    partial = day_adherence_state(
        DAY, [a, b], [history(a, at(13, 9)), history(b, at(13, 9), "MISSED")], tz=UTC
    )
    poor = day_adherence_state(
        DAY,
        [a, b, c],
        [history(a, at(13, 9)), history(b, at(13, 9), "MISSED"), history(c, at(13, 9), "MISSED")],
        tz=UTC,
    )

    assert (complete.state, complete.percentage) == (AdherenceState.COMPLETE, 100)
    assert (partial.state, partial.percentage) == (AdherenceState.PARTIAL, 50)
    assert (poor.state, poor.percentage) == (AdherenceState.POOR, 33)


def test_daily_adherence_covers_each_day():
    med = make_medication(1, (9, 0, None))
    days = daily_adherence([history(med, at(12, 9))], [med], date(2026, 10, 11), 3, tz=UTC)

    assert [d.day for d in days] == [date(2026, 10, 11), date(2026, 10, 12), date(2026, 10, 13)]
    assert [d.state for d in days] == [AdherenceState.NO_DATA, AdherenceState.COMPLETE, AdherenceState.NO_DATA]


def test_summary_counts_virtual_missed_doses():
    med = make_medication(1, (9, 0, None))
    now = at(14, 12)

    summary = adherence_summary(
        [med], [history(med, at(13, 9))], at(13, 0), now, now=now, tz=UTC
    )

    assert (summary.taken, summary.skipped, summary.missed) == (1, 0, 1)
    assert summary.total == 2
    assert summary.percentage == 50


def test_summary_skipped_only_counts_when_included():
    med = make_medication(1, (9, 0, None))
    now = at(14, 12)
    records = [history(med, at(13, 9)), history(med, at(14, 9), "SKIPPED")]

    excluded = adherence_summary([med], records, at(13, 0), now, now=now, tz=UTC)
    included = adherence_summary([med], records, at(13, 0), now, include_skipped=True, now=now, tz=UTC)

    assert excluded.percentage == 100
    assert included.percentage == 50
    assert excluded.missed == included.missed == 0


def test_summary_ignores_history_outside_range():
    med = make_medication(1, (9, 0, None))
    now = at(14, 12)
    records = [history(med, at(10, 9)), history(med, at(14, 9))]

    summary = adherence_summary([med], records, at(14, 0), now, now=now, tz=UTC)

    assert (summary.taken, summary.missed) == (1, 0)
