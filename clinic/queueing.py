"""
Walk-in queue ordering and the queue entry state machine.

Entry lifecycle::

    waiting --call--> called --serve--> serving --complete--> completed
    waiting --withdraw--> cancelled
    called  --no_show--> cancelled

``completed`` and ``cancelled`` are terminal.  Every status change made
by staff or patients goes through :func:`transition_fields`, which is
the only place the table is consulted.

Queue numbers are never produced here.  They come from a
:class:`QueueNumberSource`, which must hand out numbers atomically per
department and day.
"""
from __future__ import annotations

import abc
import datetime as dt
from typing import Any, Iterable, Mapping

from .errors import InvalidTransition

WAITING = 'waiting'
CALLED = 'called'
SERVING = 'serving'
COMPLETED = 'completed'
CANCELLED = 'cancelled'

STATUSES = (WAITING, CALLED, SERVING, COMPLETED, CANCELLED)
LIVE_STATUSES = (WAITING, CALLED, SERVING)
TERMINAL_STATUSES = frozenset({COMPLETED, CANCELLED})

TRANSITIONS: dict[str, tuple[str, ...]] = {
    WAITING: (CALLED, CANCELLED),
    CALLED: (SERVING, CANCELLED),
    SERVING: (COMPLETED,),
    COMPLETED: (),
    CANCELLED: (),
}

# action -> (required current status, target status)
ACTIONS: dict[str, tuple[str, str]] = {
    'call': (WAITING, CALLED),
    'serve': (CALLED, SERVING),
    'complete': (SERVING, COMPLETED),
    'no_show': (CALLED, CANCELLED),
    'withdraw': (WAITING, CANCELLED),
}

DEFAULT_SERVICE_MINUTES = 15


def can_transition(current: str, target: str) -> bool:
    """Return True if an entry may move from ``current`` to ``target``."""
    return target in TRANSITIONS.get(current, ())


def validate_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidTransition(current, target)


def resolve_action(action: str, current: str) -> str:
    """Map a named staff/patient action to its target status.

    The action must apply to the entry's current status, e.g. ``no_show``
    is only valid for a ``called`` entry even though ``waiting`` may also
    reach ``cancelled``.
    """
    try:
        required, target = ACTIONS[action]
    except KeyError:
        raise InvalidTransition(current, action) from None
    if current != required:
        raise InvalidTransition(current, target)
    return target


def transition_fields(current: str, target: str, now: dt.datetime) -> dict[str, Any]:
    """Validate a status change and return the field updates it implies.

    Entering ``called`` stamps ``called_time``; entering a terminal state
    stamps ``completed_time``.  ``serving`` sets no timestamp.
    """
    validate_transition(current, target)
    fields: dict[str, Any] = {'status': target}
    if target == CALLED:
        fields['called_time'] = now
    elif target in TERMINAL_STATUSES:
        fields['completed_time'] = now
    return fields


class QueueNumberSource(abc.ABC):
    """Hands out queue numbers, unique and increasing per department and day.

    Implementations must serialise concurrent callers and raise
    :class:`clinic.errors.CounterFailure` instead of guessing a number.
    """

    @abc.abstractmethod
    def next_number(self, department_id: str, day: dt.date) -> int:
        raise NotImplementedError


class FixedRateEstimator:
    """Advisory wait estimate: queue number times minutes per patient."""

    def __init__(self, minutes_per_patient: int = DEFAULT_SERVICE_MINUTES):
        if minutes_per_patient <= 0:
            raise ValueError('minutes_per_patient must be positive')
        self.minutes_per_patient = minutes_per_patient

    def __call__(self, queue_number: int) -> int:
        return queue_number * self.minutes_per_patient

    def __repr__(self) -> str:
        return f'FixedRateEstimator({self.minutes_per_patient})'


def _field(entry: Any, name: str) -> Any:
    if isinstance(entry, Mapping):
        return entry[name]
    return getattr(entry, name)


def sort_for_display(entries: Iterable[Any]) -> list[Any]:
    """Order by queue number; timestamps never reorder the board."""
    return sorted(entries, key=lambda e: _field(e, 'queue_number'))


def partition_by_status(entries: Iterable[Any]) -> dict[str, list[Any]]:
    """Split live entries into waiting, called and serving lanes.

    Each lane is sorted by queue number.  Terminal entries are expected to
    be filtered out by the caller's query and are ignored if present.
    """
    lanes: dict[str, list[Any]] = {status: [] for status in LIVE_STATUSES}
    for entry in entries:
        status = _field(entry, 'status')
        if status in lanes:
            lanes[status].append(entry)
    return {status: sort_for_display(items) for status, items in lanes.items()}
