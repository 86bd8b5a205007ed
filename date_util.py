import re
import logging
from datetime import date, datetime, time, timedelta

import pytz

logger = logging.getLogger(__name__)

# Sunday-first
WEEKDAY_CODES = ('SU', 'MO', 'TU', 'WE', 'TH', 'FR', 'SA')

# ASCII digits only
TIME_PATTERN = re.compile(r'^([0-9]{1,2}):([0-9]{2})(?::([0-9]{2}))?$')

DEFAULT_TIME_ZONE = 'Europe/Stockholm'


def parse_date_key(value):
    """
    Convert a 'YYYY-MM-DD' string or a date to a date.
    Unparseable values return None instead of raising.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value.strip(), '%Y-%m-%d').date()
    except ValueError:
        return None


def format_date_key(value: date) -> str:
    return value.strftime('%Y-%m-%d')


def get_weekday_code(value):
    date_obj = parse_date_key(value)
    if date_obj is None:
        return None
    # Monday=0 -> Sunday=0
    return WEEKDAY_CODES[(date_obj.weekday() + 1) % 7]


def parse_time_minutes(value):
    """
    Convert 'HH:MM' or 'HH:MM:SS' to minutes since midnight.

    Seconds are ignored. Hours outside 0-23, minutes outside 0-59 or any
    other shape give None.
    """
    if not value or not isinstance(value, str):
        return None
    match = TIME_PATTERN.fullmatch(value)
    if not match:
        return None
    hours = int(match.group(1))
    minutes = int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def get_week_start(value):
    # Sunday closes the previous week
    date_obj = parse_date_key(value)
    if date_obj is None:
        return None
    return date_obj - timedelta(days=date_obj.weekday())


def get_workweek_date_keys(value):
    """Monday to Friday of the week containing ``value``."""
    start = get_week_start(value)
    if start is None:
        return []
    return [format_date_key(start + timedelta(days=i)) for i in range(5)]


def build_date_keys(end_key, days: int):
    """
    Date keys for a window of ``days`` days ending at ``end_key``.

    Returns oldest first. An unparseable end date or a non-positive
    window gives an empty list.
    """
    end_date = parse_date_key(end_key)
    if end_date is None or days <= 0:
        logger.debug("empty date window for end=%r days=%r", end_key, days)
        return []
    start_date = end_date - timedelta(days=days - 1)
    return [format_date_key(start_date + timedelta(days=i)) for i in range(days)]


def parse_time_of_day(value):
    """'HH:MM' or 'HH:MM:SS' to a time, None unless every part is in range."""
    if not value or not isinstance(value, str):
        return None
    match = TIME_PATTERN.fullmatch(value)
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    seconds = int(match.group(3) or 0)
    if hours > 23 or minutes > 59 or seconds > 59:
        return None
    return time(hours, minutes, seconds)


def get_time_zone(tz_name=None):
    try:
        return pytz.timezone(tz_name or DEFAULT_TIME_ZONE)
    except pytz.exceptions.UnknownTimeZoneError:
        logger.warning("unknown time zone %r, using UTC", tz_name)
        return pytz.utc


def local_datetime(date_key, time_of_day, tz_name=None):
    """Aware datetime for a wall-clock time on ``date_key`` in ``tz_name``."""
    date_obj = parse_date_key(date_key)
    if date_obj is None:
        return None
    return get_time_zone(tz_name).localize(datetime.combine(date_obj, time_of_day))


def parse_timestamp(value, tz_name=None):
    """
    Read an ISO 8601 timestamp as an aware datetime.

    A trailing 'Z' means UTC. Timestamps without an offset are wall-clock
    times in ``tz_name``. Anything unparseable gives None.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = get_time_zone(tz_name).localize(parsed)
    return parsed


def to_utc_iso(value: datetime) -> str:
    return value.astimezone(pytz.utc).isoformat()
