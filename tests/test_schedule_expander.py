from datetime import date, timedelta, timezone

import pytest

from app.services.schedule_codec import parse_schedule
from app.services.schedule_expander import (
    canonical_weekday,
    expand_range,
    native_weekday,
    occurrences_on_day,
    weekday_of,
)
from app.types.schedule_contract import DoseInstant, ReminderTimeEntry

MONDAY = date(2026, 10, 12)

SCHEDULE = [
    ReminderTimeEntry(hour=8, minute=0, days={1, 3, 5}),
    ReminderTimeEntry(hour=21, minute=30, days={6, 7}),
    ReminderTimeEntry(hour=12, minute=0),
]


def test_canonical_weekday_is_a_bijection():
    codes = [canonical_weekday(n) for n in range(7)]
    assert sorted(codes) == list(range(1, 8))
    assert [native_weekday(c) for c in codes] == list(range(7))


@pytest.mark.parametrize("bad", [-1, 7, 100])
def test_canonical_weekday_rejects_out_of_range(bad):
    with pytest.raises(ValueError):
        canonical_weekday(bad)


def test_weekday_of_uses_iso_numbering():
    assert weekday_of(MONDAY) == 1
    assert weekday_of(MONDAY + timedelta(days=6)) == 7


def test_occurrences_match_weekday_set_for_every_day():
    for offset in range(7):
        day = MONDAY + timedelta(days=offset)
        code = weekday_of(day)
        expected = sorted((e.hour, e.minute) for e in SCHEDULE if code in e.days)
        assert occurrences_on_day(SCHEDULE, day) == expected


def test_occurrences_on_monday():
    assert occurrences_on_day(SCHEDULE, MONDAY) == [(8, 0), (12, 0)]


def test_expand_range_is_closed_open():
    instants = expand_range(SCHEDULE, MONDAY, MONDAY + timedelta(days=2), medication_id=7)
    assert instants == [
        DoseInstant(7, MONDAY, 8, 0),
        DoseInstant(7, MONDAY, 12, 0),
        DoseInstant(7, MONDAY + timedelta(days=1), 12, 0),
    ]


def test_expand_range_zeroes_seconds():
    instant = expand_range(SCHEDULE, MONDAY, MONDAY + timedelta(days=1))[0]
    at = instant.scheduled_at(timezone.utc)
    assert (at.hour, at.minute, at.second, at.microsecond) == (8, 0, 0, 0)


def test_expand_range_is_deterministic():
    first = expand_range(SCHEDULE, MONDAY, MONDAY + timedelta(days=14))
    expand_range(SCHEDULE, MONDAY - timedelta(days=3), MONDAY)
    assert expand_range(SCHEDULE, MONDAY, MONDAY + timedelta(days=14)) == first


@pytest.mark.parametrize(
    "schedule",
    [None, "", "garbage", '[{"hour":99}]', parse_schedule("{"), [], 42, [{"hour": 99, "minute": 0}], [object()]],
)
def test_malformed_or_empty_schedule_yields_nothing(schedule):
    assert occurrences_on_day(schedule, MONDAY) == []
    assert expand_range(schedule, MONDAY, MONDAY + timedelta(days=7)) == []


def test_raw_json_schedule_is_accepted():
    assert occurrences_on_day('[{"hour":6,"minute":45,"days":[1]}]', MONDAY) == [(6, 45)]


def test_decoded_schedule_dicts_are_accepted():
    schedule = [{"hour": 6, "minute": 45, "days": [1]}, {"hour": 6, "minute": 45, "days": []}]
    assert occurrences_on_day(schedule, MONDAY) == [(6, 45)]
    assert [i.day for i in expand_range(schedule, MONDAY, MONDAY + timedelta(days=3))] == [
        MONDAY, MONDAY + timedelta(days=1), MONDAY + timedelta(days=2),
    ]


def test_same_time_in_two_entries_is_one_slot():
    schedule = [ReminderTimeEntry(hour=9, minute=0, days={1}), ReminderTimeEntry(hour=9, minute=0)]
    assert occurrences_on_day(schedule, MONDAY) == [(9, 0)]
