"""Goal schedules.

A goal's frequency is stored as two loose columns (``frequency_type`` and
``frequency_days``). This module turns them into one of three schedule
classes so that "is this date a check-in day" is answered in one place and
an unknown frequency fails loudly instead of silently never being due.

Weekdays use 0=Sunday .. 6=Saturday, matching what the mobile client sends.
"""
from abc import ABC, abstractmethod
from datetime import date
from typing import Iterable, FrozenSet

from models.goal import FrequencyType

SUNDAY = 0
SATURDAY = 6

WEEKDAY_NAMES = ['Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday']


class InvalidScheduleError(ValueError):
    pass


def weekday_of(local_date: date) -> int:
    """Weekday number of a date, 0=Sunday."""
    return (local_date.weekday() + 1) % 7


class GoalSchedule(ABC):

    @abstractmethod
    def is_scheduled(self, local_date: date) -> bool:
        pass

    @abstractmethod
    def describe(self) -> str:
        pass


class DailySchedule(GoalSchedule):

    def is_scheduled(self, local_date):
        return True

    def describe(self):
        return 'Every day'

    def __eq__(self, other):
        return isinstance(other, DailySchedule)

    def __hash__(self):
        return hash(FrequencyType.DAILY)

    def __repr__(self):
        return 'DailySchedule()'


class WeeklySchedule(GoalSchedule):
    """Once a week, on a fixed weekday."""

    def __init__(self, day: int):
        self.day = _check_day(day)

    def is_scheduled(self, local_date):
        return weekday_of(local_date) == self.day

    def describe(self):
        return f'Every {WEEKDAY_NAMES[self.day]}'

    def __eq__(self, other):
        return isinstance(other, WeeklySchedule) and other.day == self.day

    def __hash__(self):
        return hash((FrequencyType.WEEKLY, self.day))

    def __repr__(self):
        return f'WeeklySchedule(day={self.day})'


class SpecificDaysSchedule(GoalSchedule):

    def __init__(self, days: Iterable[int]):
        days = frozenset(_check_day(d) for d in days)
        if not days:
            raise InvalidScheduleError('SPECIFIC_DAYS schedule needs at least one weekday')
        self.days: FrozenSet[int] = days

    def is_scheduled(self, local_date):
        return weekday_of(local_date) in self.days

    def describe(self):
        return ', '.join(WEEKDAY_NAMES[d] for d in sorted(self.days))

    def __eq__(self, other):
        return isinstance(other, SpecificDaysSchedule) and other.days == self.days

    def __hash__(self):
        return hash((FrequencyType.SPECIFIC_DAYS, self.days))

    def __repr__(self):
        return f'SpecificDaysSchedule(days={sorted(self.days)})'


def _check_day(day) -> int:
    # bool is an int subclass; True must not pass as Monday
    if isinstance(day, bool) or not isinstance(day, int) or not SUNDAY <= day <= SATURDAY:
        raise InvalidScheduleError(f'Invalid weekday {day!r}, expected 0 (Sunday) to 6 (Saturday)')
    return day


def schedule_from_goal(frequency_type: str, frequency_days) -> GoalSchedule:
    """Build the schedule for stored goal columns.

    Raises InvalidScheduleError for an unknown frequency type or a bad day set.
    WEEKLY goals without a day fall back to Sunday.
    """
    days = list(frequency_days or [])

    if frequency_type == FrequencyType.DAILY:
        return DailySchedule()
    if frequency_type == FrequencyType.WEEKLY:
        if len(days) > 1:
            raise InvalidScheduleError('WEEKLY schedule takes a single weekday')
        return WeeklySchedule(days[0] if days else SUNDAY)
    if frequency_type == FrequencyType.SPECIFIC_DAYS:
        return SpecificDaysSchedule(days)

    raise InvalidScheduleError(f'Unknown frequency type {frequency_type!r}')
