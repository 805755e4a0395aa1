"""Timezone handling service.

This service provides centralized timezone conversion functions so that goal
deadlines are always evaluated against the goal's local wall clock, never a
fixed UTC offset.
"""
from datetime import datetime, date, time, timedelta
from typing import List, Optional, Tuple
import pytz
from pytz import timezone as pytz_timezone


class UnknownTimezoneError(ValueError):
    pass


def get_timezone_object(timezone_str: str) -> pytz.BaseTzInfo:
    """Get timezone object from timezone string.

    Unlike a display helper, deadline arithmetic must never guess: an unknown
    or empty identifier raises UnknownTimezoneError.
    """
    if not timezone_str:
        raise UnknownTimezoneError('Timezone is empty')
    try:
        return pytz_timezone(timezone_str)
    except pytz.exceptions.UnknownTimeZoneError:
        raise UnknownTimezoneError(f'Unknown timezone {timezone_str!r}')


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def to_naive_utc(value: datetime) -> datetime:
    """Aware -> naive UTC, for storage in DateTime columns."""
    return ensure_utc(value).replace(tzinfo=None)


def convert_user_time_to_utc(user_timezone: str, local_date: date, local_time: time) -> datetime:
    """
    Convert a local wall-clock date/time in the given zone to an aware UTC datetime.

    Around daylight-saving transitions:
    - a local time skipped by the spring-forward gap resolves to the instant
      the clock would have shown it on the old offset (02:30 -> 03:30 local);
    - a local time that occurs twice on fall-back resolves to the later
      occurrence, so the user never loses time before a deadline.
    """
    user_tz = get_timezone_object(user_timezone)
    naive_datetime = datetime.combine(local_date, local_time)

    try:
        localized_datetime = user_tz.localize(naive_datetime, is_dst=None)
    except pytz.exceptions.AmbiguousTimeError:
        localized_datetime = user_tz.localize(naive_datetime, is_dst=False)
    except pytz.exceptions.NonExistentTimeError:
        localized_datetime = user_tz.normalize(user_tz.localize(naive_datetime, is_dst=False))

    return localized_datetime.astimezone(pytz.UTC)


def convert_utc_to_user_time(user_timezone: str, utc_datetime: datetime) -> Tuple[datetime, date, time]:
    """
    Convert UTC datetime to user's local time.

    Args:
        user_timezone: User's timezone string
        utc_datetime: UTC datetime

    Returns:
        Tuple of (local_datetime, local_date, local_time)
    """
    user_tz = get_timezone_object(user_timezone)
    local_datetime = ensure_utc(utc_datetime).astimezone(user_tz)

    return local_datetime, local_datetime.date(), local_datetime.time()


def get_local_date(user_timezone: str, utc_datetime: datetime) -> date:
    """Calendar date in the given zone at the given instant."""
    _, local_date, _ = convert_utc_to_user_time(user_timezone, utc_datetime)
    return local_date


def local_dates_between(user_timezone: str, start_utc: datetime, end_utc: datetime) -> List[date]:
    """Every local calendar date touched by the interval [start_utc, end_utc]."""
    first = get_local_date(user_timezone, start_utc)
    last = get_local_date(user_timezone, end_utc)

    dates = []
    current = first
    while current <= last:
        dates.append(current)
        current += timedelta(days=1)
    return dates


def local_times_crossed(user_timezone: str, local_time: time, window_start: datetime,
                        window_end: datetime) -> List[Tuple[date, datetime]]:
    """
    Find the local dates whose ``local_time`` fell inside (window_start, window_end].

    Args:
        user_timezone: IANA zone the time of day is interpreted in
        local_time: wall-clock time of day, e.g. a goal deadline
        window_start: exclusive lower bound (UTC)
        window_end: inclusive upper bound (UTC)

    Returns:
        List of (local_date, utc_instant) pairs, oldest first
    """
    window_start = ensure_utc(window_start)
    window_end = ensure_utc(window_end)

    crossed = []
    for local_date in local_dates_between(user_timezone, window_start, window_end):
        instant = convert_user_time_to_utc(user_timezone, local_date, local_time)
        if window_start < instant <= window_end:
            crossed.append((local_date, instant))
    return crossed


def get_user_date_boundaries(user_timezone: str, target_date: date) -> Tuple[datetime, datetime]:
    """
    Get the UTC datetime boundaries for a specific date in user's timezone.

    Args:
        user_timezone: User's timezone string
        target_date: The date in user's timezone

    Returns:
        Tuple of (start_utc_datetime, end_utc_datetime)
    """
    start_utc = convert_user_time_to_utc(user_timezone, target_date, time.min)
    end_utc = convert_user_time_to_utc(user_timezone, target_date + timedelta(days=1), time.min)
    return start_utc, end_utc - timedelta(microseconds=1)


def get_current_user_time(user_timezone: str, now_utc: Optional[datetime] = None) -> Tuple[datetime, date, time]:
    """
    Get current time in user's timezone.

    Args:
        user_timezone: User's timezone string
        now_utc: instant to project; the wall clock is read only when omitted

    Returns:
        Tuple of (local_datetime, local_date, local_time)
    """
    if now_utc is None:
        now_utc = datetime.now(pytz.UTC)
    return convert_utc_to_user_time(user_timezone, now_utc)


def validate_timezone(timezone_str: str) -> bool:
    """
    Validate if timezone string is valid.

    Args:
        timezone_str: Timezone string to validate

    Returns:
        True if valid, False otherwise
    """
    try:
        get_timezone_object(timezone_str)
        return True
    except UnknownTimezoneError:
        return False
