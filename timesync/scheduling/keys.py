"""Slot keys and the local <-> UTC conversions behind them.

Two key shapes are used as the aggregation dimension:

* date keys, ``YYYY-MM-DD``, for polls that schedule whole days;
* slot keys, ``YYYY-MM-DD-HH:MM``, for polls split into 30/60 minute slots.

Stored time slots always carry a UTC instant. Whole-day polls store midnight
UTC of the chosen calendar day and read the key back by truncating the
stored string, so no zone conversion happens for them. Sub-day polls convert
the participant's wall-clock time in an IANA zone to UTC on the way in and
back into the viewer's zone on the way out.
"""

import re
from collections.abc import Callable, Iterable
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DAY_MINUTES = 1440

DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
SLOT_KEY_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})-(\d{2}):(\d{2})$")


def format_date_key(value: date) -> str:
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def parse_date_key(key: str) -> date:
    if not DATE_KEY_RE.match(key):
        raise ValueError(f"invalid date key: {key!r}")
    return date.fromisoformat(key)


def make_slot_key(date_key: str, hour: int, minute: int) -> str:
    parse_date_key(date_key)
    if not 0 <= hour <= 23 or not 0 <= minute <= 59:
        raise ValueError(f"invalid time {hour}:{minute} for {date_key}")
    return f"{date_key}-{hour:02d}:{minute:02d}"


def parse_slot_key(key: str) -> tuple[str, int, int]:
    """Split a slot key into ``(date_key, hour, minute)``."""
    m = SLOT_KEY_RE.match(key)
    if not m:
        raise ValueError(f"invalid slot key: {key!r}")
    date_key, hour, minute = m.group(1), int(m.group(2)), int(m.group(3))
    # re-validates the calendar date and the time ranges
    make_slot_key(date_key, hour, minute)
    return date_key, hour, minute


def is_day_granularity(duration: int) -> bool:
    return duration >= DAY_MINUTES


def granularity_name(duration: int) -> str:
    return "day" if is_day_granularity(duration) else "slot"


def slots_per_hour(duration: int) -> int:
    if duration <= 0 or 60 % duration:
        raise ValueError(f"slot duration must evenly divide 60, got {duration}")
    return 60 // duration


def resolve_zone(tz: str | None) -> ZoneInfo:
    name = tz or "UTC"
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"unknown timezone: {name!r}") from e


def parse_instant(value: str | datetime) -> datetime:
    """Parse a stored ISO-8601 instant; naive values are taken as UTC."""
    instant = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    return instant


def format_instant(instant: datetime) -> str:
    return instant.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def local_to_utc(date_key: str, hour: int, minute: int, tz: str | None) -> datetime:
    d = parse_date_key(date_key)
    local = datetime(d.year, d.month, d.day, hour, minute, tzinfo=resolve_zone(tz))
    return local.astimezone(UTC)


def utc_to_local(instant: str | datetime, tz: str | None) -> datetime:
    return parse_instant(instant).astimezone(resolve_zone(tz))


def to_storage(date_key: str, hour: int, minute: int, tz: str | None) -> str:
    return format_instant(local_to_utc(date_key, hour, minute, tz))


def day_instant(date_key: str) -> str:
    parse_date_key(date_key)
    return f"{date_key}T00:00:00.000Z"


def slot_key_for_instant(date_time: str, duration: int, tz: str | None) -> str:
    if is_day_granularity(duration):
        return date_time.split("T")[0]
    local = utc_to_local(date_time, tz)
    return make_slot_key(format_date_key(local), local.hour, local.minute)


def key_function(duration: int, tz: str | None) -> Callable[[str], str]:
    """Bind granularity and zone so callers can key stored instants directly."""
    if not is_day_granularity(duration):
        resolve_zone(tz)
    return lambda date_time: slot_key_for_instant(date_time, duration, tz)


def generate_slot_keys(dates: Iterable[str], start_hour: int, end_hour: int, duration: int) -> list[str]:
    """Every key of a poll grid, ordered by date then time of day.

    Whole-day polls get one key per date. Sub-day polls get
    ``(end_hour - start_hour) * (60 / duration)`` keys per date, and an
    empty grid when the window is empty.
    """
    if is_day_granularity(duration):
        return list(dates)
    per_hour = slots_per_hour(duration)
    if start_hour >= end_hour:
        return []
    keys = []
    for date_key in dates:
        for hour in range(start_hour, end_hour):
            for idx in range(per_hour):
                keys.append(make_slot_key(date_key, hour, idx * duration))
    return keys


def selection_to_instants(keys: Iterable[str], duration: int, tz: str | None) -> list[str]:
    """UTC instants to store for a participant's selected keys."""
    if is_day_granularity(duration):
        instants = {day_instant(k) for k in keys}
    else:
        instants = {to_storage(*parse_slot_key(k), tz) for k in keys}
    return sorted(instants)


def instants_to_selection(date_times: Iterable[str], duration: int, tz: str | None) -> set[str]:
    to_key = key_function(duration, tz)
    return {to_key(dt) for dt in date_times}


def date_range(start: date, end: date) -> list[date]:
    if end < start:
        return []
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def today_in(tz: str | None, now: datetime | None = None) -> date:
    now = now or datetime.now(UTC)
    return parse_instant(now).astimezone(resolve_zone(tz)).date()


def is_past_date(value: date, today: date) -> bool:
    return value < today


def format_time(hour: int, minute: int = 0) -> str:
    period = "PM" if hour >= 12 else "AM"
    display_hour = hour % 12 or 12
    return f"{display_hour}:{minute:02d} {period}"


def format_timezone(tz: str, now: datetime | None = None) -> str:
    """Human label such as ``New York (GMT-04:00)``."""
    now = now or datetime.now(UTC)
    offset = parse_instant(now).astimezone(resolve_zone(tz)).strftime("%z")
    name = tz.replace("_", " ").split("/")[-1] or tz
    return f"{name} (GMT{offset[:3]}:{offset[3:]})"
