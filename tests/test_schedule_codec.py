from app.services.schedule_codec import parse_schedule, schedule_or_empty, serialize_schedule
from app.types.errors import ParseError
from app.types.schedule_contract import ALL_DAYS, ReminderTimeEntry


def test_parse_valid_schedule():
    result = parse_schedule('[{"hour":8,"minute":0,"days":[1,3,5]},{"hour":20,"minute":30,"days":[7]}]')
    assert result.ok
    assert result.value == [
        ReminderTimeEntry(hour=8, minute=0, days={1, 3, 5}),
        ReminderTimeEntry(hour=20, minute=30, days={7}),
    ]


def test_empty_days_means_every_day():
    result = parse_schedule('[{"hour":9,"minute":15,"days":[]}]')
    assert result.ok
    assert result.value[0].days == ALL_DAYS


def test_blank_input_is_an_empty_schedule():
    assert parse_schedule(None).value == []
    assert parse_schedule("   ").value == []


def test_malformed_json_is_a_failed_result_not_an_exception():
    result = parse_schedule('[{"hour":9,')
    assert not result.ok
    assert isinstance(result.error, ParseError)
    assert result.unwrap_or([]) == []


def test_out_of_range_values_fail():
    assert not parse_schedule('[{"hour":24,"minute":0,"days":[1]}]').ok
    assert not parse_schedule('[{"hour":9,"minute":0,"days":[0]}]').ok
    assert not parse_schedule('{"hour":9,"minute":0}').ok


def test_schedule_or_empty_degrades():
    assert schedule_or_empty("not json") == []


def test_serialize_sorts_days():
    text = serialize_schedule([ReminderTimeEntry(hour=7, minute=5, days={5, 1, 3})])
    assert text == '[{"hour":7,"minute":5,"days":[1,3,5]}]'
    assert parse_schedule(text).value[0].days == {1, 3, 5}
