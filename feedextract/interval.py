import re
from datetime import timedelta, tzinfo
from enum import Enum
from typing import Dict, Optional, Union

from feedextract.errors import ConfigurationError

TimeZone = Union[str, tzinfo]

SECOND_MILLIS = 1000
MINUTE_MILLIS = 60 * SECOND_MILLIS
HOUR_MILLIS = 60 * MINUTE_MILLIS
DAY_MILLIS = 24 * HOUR_MILLIS
WEEK_MILLIS = 7 * DAY_MILLIS

INVALID_SYNTAX = 'invalid interval syntax'


class CalendarUnit(Enum):
    SECOND = 'second'
    MINUTE = 'minute'
    HOUR = 'hour'
    DAY = 'day'
    WEEK = 'week'
    MONTH = 'month'
    QUARTER = 'quarter'
    YEAR = 'year'


CALENDAR_UNITS: Dict[str, CalendarUnit] = {
    'second': CalendarUnit.SECOND,
    '1s': CalendarUnit.SECOND,
    'minute': CalendarUnit.MINUTE,
    '1m': CalendarUnit.MINUTE,
    'hour': CalendarUnit.HOUR,
    '1h': CalendarUnit.HOUR,
    'day': CalendarUnit.DAY,
    '1d': CalendarUnit.DAY,
    'week': CalendarUnit.WEEK,
    '1w': CalendarUnit.WEEK,
    'month': CalendarUnit.MONTH,
    '1M': CalendarUnit.MONTH,
    'quarter': CalendarUnit.QUARTER,
    '1q': CalendarUnit.QUARTER,
    'year': CalendarUnit.YEAR,
    '1y': CalendarUnit.YEAR,
}

# unit suffix -> (numerator, denominator) in milliseconds
TIME_UNITS: Dict[str, tuple] = {
    'nanos': (1, 1_000_000),
    'micros': (1, 1000),
    'ms': (1, 1),
    's': (SECOND_MILLIS, 1),
    'm': (MINUTE_MILLIS, 1),
    'h': (HOUR_MILLIS, 1),
    'd': (DAY_MILLIS, 1),
}

TIME_VALUE_PATTERN = re.compile(r'^(\d+)(nanos|micros|ms|s|m|h|d)$')

# multiples of calendar units that have no fixed length in milliseconds
VARIABLE_CALENDAR_PATTERN = re.compile(r'^\d+[Mqy]$')
WEEKS_PATTERN = re.compile(r'^(\d+)w$')


def calendar_unit(text: str) -> Optional[CalendarUnit]:
    return CALENDAR_UNITS.get(text)


def parse_time_value(text: str) -> int:
    """Parse a duration literal such as ``"30s"`` or ``"90m"`` into milliseconds.

    Sub-millisecond units are truncated to whole milliseconds.
    """
    if not isinstance(text, str):
        raise ConfigurationError(INVALID_SYNTAX)

    match = TIME_VALUE_PATTERN.match(text.strip())
    if match is None:
        raise ConfigurationError(INVALID_SYNTAX)

    amount, unit = match.groups()
    numerator, denominator = TIME_UNITS[unit]
    return int(amount) * numerator // denominator


def fixed_interval_millis(text: str) -> int:
    """Fixed intervals have no month unit, so their units are matched case-insensitively."""
    if isinstance(text, str):
        text = text.lower()
    return parse_time_value(text)


def is_variable_length(text: str) -> bool:
    return VARIABLE_CALENDAR_PATTERN.match(text) is not None


def parse_weeks(text: str) -> Optional[int]:
    match = WEEKS_PATTERN.match(text)
    if match is None:
        return None
    return int(match.group(1)) * WEEK_MILLIS


UTC_ALIASES = frozenset({
    'UTC', 'UCT', 'UT', 'Z', 'Zulu', 'Universal', 'Greenwich', 'GMT', 'GMT0', 'GMT+0', 'GMT-0',
    'Etc/UTC', 'Etc/UCT', 'Etc/Zulu', 'Etc/Universal', 'Etc/Greenwich',
    'Etc/GMT', 'Etc/GMT0', 'Etc/GMT+0', 'Etc/GMT-0',
})

OFFSET_PATTERN = re.compile(r'^(?:UTC|GMT|UT)?([+-])(\d{1,2})(?::?(\d{2}))?(?::?(\d{2}))?$')


def _offset_is_zero(text: str) -> bool:
    match = OFFSET_PATTERN.match(text)
    if match is None:
        return False
    _, hours, minutes, seconds = match.groups()
    return int(hours) == 0 and int(minutes or 0) == 0 and int(seconds or 0) == 0


def is_utc(time_zone: TimeZone) -> bool:
    """True iff ``time_zone`` normalizes to a constant zero offset from UTC."""
    if isinstance(time_zone, str):
        name = time_zone.strip()
        return name in UTC_ALIASES or _offset_is_zero(name)

    if not isinstance(time_zone, tzinfo):
        raise ConfigurationError(f'invalid time_zone [{time_zone!r}]')

    key = getattr(time_zone, 'key', None)
    if key is not None:
        # zoneinfo.ZoneInfo
        return key in UTC_ALIASES

    # fixed-offset zones such as datetime.timezone report their offset without a reference instant
    offset = time_zone.utcoffset(None)
    return offset is not None and offset == timedelta(0)
