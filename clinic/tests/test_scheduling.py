import datetime as dt

import pytest

from clinic.errors import MalformedTimeInput
from clinic.scheduling import (
    WeeklyRule,
    bookable_dates,
    compute_end_time,
    day_of_week,
    find_rule,
    generate_slots,
    is_slot_boundary,
    open_slots,
    parse_time,
)

# 2024-06-03 is a Monday
MONDAY = '2024-06-03'


def rule(**overrides):
    data = {
        'day_of_week': 1,
        'start_time': '09:00:00',
        'end_time': '10:10:00',
        'slot_duration_minutes': 30,
        'is_active': True,
    }
    data.update(overrides)
    return data


def test_day_of_week_starts_on_sunday():
    assert day_of_week('2024-06-02') == 0
    assert day_of_week(MONDAY) == 1
    assert day_of_week(dt.date(2024, 6, 8)) == 6


def test_no_partial_trailing_slot():
    assert generate_slots([rule()], MONDAY) == ['09:00', '09:30']


def test_slot_grid_is_deterministic():
    rules = [rule(end_time='12:00:00', slot_duration_minutes=20)]
    first = generate_slots(rules, MONDAY)
    assert first == generate_slots(rules, MONDAY)
    assert first[0] == '09:00' and first[-1] == '11:40'
    assert len(first) == 9


def test_exact_fit_includes_last_slot():
    assert generate_slots([rule(end_time='10:00:00')], MONDAY) == ['09:00', '09:30']


def test_inactive_rule_yields_nothing():
    assert generate_slots([rule(is_active=False)], MONDAY) == []


def test_missing_weekday_yields_nothing():
    # Tuesday has no rule
    assert generate_slots([rule()], '2024-06-04') == []
    assert generate_slots([], MONDAY) == []


def test_find_rule_skips_inactive_duplicates():
    rules = [rule(is_active=False, start_time='08:00'), rule(start_time='13:00', end_time='14:00')]
    found = find_rule(rules, MONDAY)
    assert found == WeeklyRule(day_of_week=1, start_time='13:00', end_time='14:00')


def test_rule_from_object_with_time_values():
    class Record:
        day_of_week = 1
        start_time = dt.time(14, 0)
        end_time = dt.time(15, 0)
        slot_duration_minutes = 15
        is_active = True

    assert generate_slots([Record()], MONDAY) == ['14:00', '14:15', '14:30', '14:45']


def test_compute_end_time():
    assert compute_end_time('09:45', 30) == '10:15'
    assert compute_end_time('23:50', 30) == '24:20'


@pytest.mark.parametrize('value', ['9am', '9:00', '25:00', '10:60', '24:01', '', None, '12:00:61'])
def test_malformed_time_is_rejected(value):
    with pytest.raises(MalformedTimeInput):
        parse_time(value)


def test_malformed_rule_fails_slot_generation():
    with pytest.raises(MalformedTimeInput):
        generate_slots([rule(start_time='nine')], MONDAY)


def test_malformed_date_is_rejected():
    with pytest.raises(MalformedTimeInput):
        generate_slots([rule()], '2024-13-01')


@pytest.mark.parametrize('value', ['20240603', '2024-W23-1', '2024-6-3', '2024-06-03T09:00', None])
def test_only_plain_iso_dates_are_accepted(value):
    with pytest.raises(MalformedTimeInput):
        day_of_week(value)


def test_zero_slot_duration_is_rejected_not_defaulted():
    with pytest.raises(MalformedTimeInput):
        generate_slots([rule(slot_duration_minutes=0)], MONDAY)


def test_missing_slot_duration_uses_default():
    record = rule()
    del record['slot_duration_minutes']
    assert WeeklyRule.from_record(record).slot_duration_minutes == 30


def test_parse_time_accepts_midnight_end_and_seconds():
    assert parse_time('24:00') == 1440
    assert parse_time('09:30:15') == 570


def test_open_slots_filters_booked_and_blocked():
    slots = ['09:00', '09:30', '10:00', '10:30']
    result = open_slots(
        slots, 30,
        booked=[(dt.time(9, 30), dt.time(10, 0))],
        blocked=[(620, 660)],  # 10:20-11:00
    )
    assert result == ['09:00']


def test_open_slots_touching_windows_do_not_conflict():
    assert open_slots(['09:00', '09:30'], 30, booked=[('09:30', '10:00')]) == ['09:00']


def test_is_slot_boundary():
    r = WeeklyRule.from_record(rule())
    assert is_slot_boundary(r, '09:30')
    assert is_slot_boundary(r, dt.time(9, 0))
    assert not is_slot_boundary(r, '09:15')
    assert not is_slot_boundary(r, '10:00')


def test_bookable_dates_start_tomorrow():
    today = dt.date(2024, 6, 3)
    dates = bookable_dates(today, 14)
    assert dates[0] == dt.date(2024, 6, 4)
    assert dates[-1] == dt.date(2024, 6, 17)
    assert today not in dates
