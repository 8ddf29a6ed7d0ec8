"""Best slot selection.

The best slots of a poll are every key tied at the highest participant
count. Whole-day polls additionally merge calendar-consecutive best dates
into ranges for display.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta

from timesync.models.poll import Participant
from timesync.scheduling.keys import is_day_granularity, parse_date_key

Aggregate = dict[str, list[Participant]]


@dataclass
class DateRange:
    start: date
    end: date
    count: int
    participants: list[Participant] = field(default_factory=list)
    # False when the merged dates were not all picked by the same people
    uniform: bool = True

    @property
    def day_span(self) -> int:
        return day_span(self.start, self.end)

    @property
    def label(self) -> str:
        return format_date_range(self.start, self.end)


def day_span(start: date, end: date) -> int:
    """Inclusive number of calendar days between two dates."""
    return abs((end - start).days) + 1


def max_count(aggregate: Aggregate) -> int:
    return max((len(parts) for parts in aggregate.values()), default=0)


def best_keys(aggregate: Aggregate) -> list[str]:
    top = max_count(aggregate)
    if top == 0:
        return []
    return sorted(key for key, parts in aggregate.items() if len(parts) == top)


def merge_date_ranges(keys: list[str], aggregate: Aggregate) -> list[DateRange]:
    """Merge sorted date keys into runs of consecutive calendar days."""
    ranges: list[DateRange] = []
    for key in keys:
        day = parse_date_key(key)
        parts = aggregate.get(key, [])
        current = ranges[-1] if ranges else None
        if current is not None and day == current.end + timedelta(days=1):
            current.end = day
            if {p.id for p in parts} != {p.id for p in current.participants}:
                current.uniform = False
            continue
        ranges.append(DateRange(start=day, end=day, count=len(parts), participants=list(parts)))
    return ranges


def resolve_ranges(aggregate: Aggregate, participant_count: int) -> list[DateRange]:
    if participant_count <= 0:
        return []
    return merge_date_ranges(best_keys(aggregate), aggregate)


def resolve_slots(aggregate: Aggregate, participant_count: int) -> list[str]:
    if participant_count <= 0:
        return []
    return best_keys(aggregate)


def resolve(aggregate: Aggregate, participant_count: int, duration: int) -> list[DateRange] | list[str]:
    """Best ranges for whole-day polls, best slot keys otherwise."""
    if is_day_granularity(duration):
        return resolve_ranges(aggregate, participant_count)
    return resolve_slots(aggregate, participant_count)


def _month_day(d: date) -> str:
    return f"{d:%b} {d.day}"


def format_date_range(start: date, end: date) -> str:
    if start == end:
        return f"{_month_day(start)}, {start.year}"
    if start.year != end.year:
        return f"{_month_day(start)}, {start.year} – {_month_day(end)}, {end.year}"
    if start.month != end.month:
        return f"{_month_day(start)} – {_month_day(end)}, {end.year}"
    return f"{_month_day(start)}–{end.day}, {end.year}"
