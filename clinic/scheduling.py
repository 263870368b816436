"""
Weekly availability and slot generation.

A doctor publishes at most one active :class:`WeeklyRule` per day of the
week.  For a calendar date the matching rule is expanded into a grid of
``HH:MM`` start times; a slot is only offered when it ends on or before
the rule's end time, so partial trailing slots never appear.

All arithmetic is done on integer minutes since midnight.  Nothing here
touches the database: callers pass in rules (model instances converted
with :meth:`WeeklyRule.from_record`, or plain mappings) and get fresh
lists back on every call.
"""
from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Union

from .errors import MalformedTimeInput

DEFAULT_SLOT_DURATION_MINUTES = 30

DAYS_OF_WEEK = (
    'Sunday',
    'Monday',
    'Tuesday',
    'Wednesday',
    'Thursday',
    'Friday',
    'Saturday',
)

_TIME_RE = re.compile(r'^(\d{2}):(\d{2})(?::(\d{2}))?$')
_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')

TimeLike = Union[str, dt.time]
DateLike = Union[str, dt.date]


def parse_time(value: TimeLike) -> int:
    """Return minutes since midnight for an ``HH:MM`` or ``HH:MM:SS`` value.

    ``24:00`` is accepted so that a rule may run until midnight.  Seconds
    are validated but dropped.  Anything else raises
    :class:`MalformedTimeInput`; values are never coerced to a default.
    """
    if isinstance(value, dt.time):
        return value.hour * 60 + value.minute
    if not isinstance(value, str):
        raise MalformedTimeInput(f'expected an HH:MM time, got {value!r}')
    match = _TIME_RE.match(value.strip())
    if not match:
        raise MalformedTimeInput(f'expected an HH:MM time, got {value!r}')
    hours, minutes, seconds = int(match.group(1)), int(match.group(2)), int(match.group(3) or 0)
    if minutes > 59 or seconds > 59 or hours > 24 or (hours == 24 and (minutes or seconds)):
        raise MalformedTimeInput(f'time out of range: {value!r}')
    return hours * 60 + minutes


def format_minutes(total: int) -> str:
    """Format minutes since midnight as zero padded ``HH:MM``.

    Values past midnight keep counting hours (``1460`` -> ``24:20``).
    """
    return f'{total // 60:02d}:{total % 60:02d}'


def parse_date(value: DateLike) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    text = value.strip() if isinstance(value, str) else ''
    # fromisoformat also takes compact and week dates; only YYYY-MM-DD is valid here
    if not _DATE_RE.match(text):
        raise MalformedTimeInput(f'expected a YYYY-MM-DD date, got {value!r}')
    try:
        return dt.date.fromisoformat(text)
    except ValueError:
        raise MalformedTimeInput(f'expected a YYYY-MM-DD date, got {value!r}') from None


def day_of_week(value: DateLike) -> int:
    """Day of week for a date, 0 = Sunday through 6 = Saturday."""
    return parse_date(value).isoweekday() % 7


@dataclass(frozen=True)
class WeeklyRule:
    """One day of a doctor's recurring availability."""

    day_of_week: int
    start_time: str
    end_time: str
    slot_duration_minutes: int = DEFAULT_SLOT_DURATION_MINUTES
    is_active: bool = True

    @classmethod
    def from_record(cls, record: Union[Mapping[str, Any], Any]) -> 'WeeklyRule':
        """Build a rule from a mapping or any object with the same attributes."""
        if isinstance(record, WeeklyRule):
            return record
        if isinstance(record, Mapping):
            get = record.get
        else:
            def get(name, default=None):
                return getattr(record, name, default)
        start, end = get('start_time'), get('end_time')
        duration = get('slot_duration_minutes')
        return cls(
            day_of_week=int(get('day_of_week')),
            start_time=start.strftime('%H:%M:%S') if isinstance(start, dt.time) else start,
            end_time=end.strftime('%H:%M:%S') if isinstance(end, dt.time) else end,
            # only a missing duration gets the default; 0 must reach the positivity check
            slot_duration_minutes=DEFAULT_SLOT_DURATION_MINUTES if duration is None else int(duration),
            is_active=bool(get('is_active', True)),
        )


def find_rule(rules: Iterable[Any], date: DateLike) -> Optional[WeeklyRule]:
    """Return the active rule whose weekday matches ``date``, if any."""
    weekday = day_of_week(date)
    for record in rules:
        rule = WeeklyRule.from_record(record)
        if rule.is_active and rule.day_of_week == weekday:
            return rule
    return None


def slots_for_rule(rule: WeeklyRule) -> list[str]:
    """Expand a single rule into its ordered start times."""
    if not rule.is_active:
        return []
    duration = rule.slot_duration_minutes
    if duration <= 0:
        raise MalformedTimeInput(f'slot duration must be positive, got {duration}')
    cursor = parse_time(rule.start_time)
    end = parse_time(rule.end_time)
    slots: list[str] = []
    while cursor + duration <= end:
        slots.append(format_minutes(cursor))
        cursor += duration
    return slots


def generate_slots(rules: Iterable[Any], date: DateLike) -> list[str]:
    """Theoretical slot grid for ``date``.

    No matching active rule yields ``[]``, same as a fully booked day.
    Existing bookings are not consulted; see :func:`open_slots`.
    """
    rule = find_rule(rules, date)
    if rule is None:
        return []
    return slots_for_rule(rule)


def compute_end_time(start_time: TimeLike, duration_minutes: int) -> str:
    """Add ``duration_minutes`` to ``start_time``.

    The result is not wrapped at midnight: ``23:50`` + 30 gives ``24:20``.
    """
    return format_minutes(parse_time(start_time) + duration_minutes)


def _minutes(value: Union[int, TimeLike]) -> int:
    return value if isinstance(value, int) else parse_time(value)


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open interval overlap; touching windows do not overlap."""
    return start_a < end_b and start_b < end_a


def open_slots(
    slots: Iterable[str],
    duration_minutes: int,
    *,
    booked: Iterable[tuple] = (),
    blocked: Iterable[tuple] = (),
) -> list[str]:
    """Drop slots that collide with a booked appointment or a blocked window.

    ``booked`` and ``blocked`` are ``(start, end)`` pairs given either as
    time strings or as minutes since midnight.
    """
    busy = [(_minutes(s), _minutes(e)) for s, e in (*booked, *blocked)]
    result = []
    for slot in slots:
        start = parse_time(slot)
        end = start + duration_minutes
        if not any(overlaps(start, end, b_start, b_end) for b_start, b_end in busy):
            result.append(slot)
    return result


def is_slot_boundary(rule: WeeklyRule, start_time: TimeLike) -> bool:
    """True when ``start_time`` is one of the rule's generated slots."""
    return format_minutes(parse_time(start_time)) in slots_for_rule(rule)


def bookable_dates(today: dt.date, days: int) -> list[dt.date]:
    """Dates offered for booking: tomorrow through ``days`` days ahead."""
    return [today + dt.timedelta(days=offset) for offset in range(1, days + 1)]
