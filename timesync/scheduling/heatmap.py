import math
from collections.abc import Iterable
from dataclasses import dataclass, field

from timesync.models.poll import Participant
from timesync.scheduling.resolve import Aggregate

PARTICIPANT_COLORS = [
    "#3B82F6",  # blue
    "#8B5CF6",  # purple
    "#EC4899",  # pink
    "#F97316",  # orange
    "#14B8A6",  # teal
    "#EAB308",  # yellow
    "#EF4444",  # red
    "#22C55E",  # green
    "#6366F1",  # indigo
    "#06B6D4",  # cyan
]

MAX_INTENSITY = 7


def participant_color(index: int) -> str:
    """Color for the ``index``-th participant to join, cycling the palette."""
    return PARTICIPANT_COLORS[index % len(PARTICIPANT_COLORS)]


def heatmap_intensity(count: int, max_count: int) -> int:
    if max_count == 0 or count == 0:
        return 0
    return math.ceil(count / max_count * MAX_INTENSITY)


@dataclass
class HeatmapCell:
    key: str
    count: int
    percentage: float
    intensity: int
    is_best: bool
    participants: list[Participant] = field(default_factory=list)


@dataclass
class Heatmap:
    cells: list[HeatmapCell]
    max_count: int
    total_participants: int
    best_slots: list[str]


def build_heatmap(keys: Iterable[str], aggregate: Aggregate, participants: list[Participant]) -> Heatmap:
    """Lay the availability map over a poll grid.

    Every grid key gets a cell, including keys nobody picked. A cell is
    marked best when the whole group is available there; ``best_slots``
    lists the grid keys tied at the highest count.
    """
    total = len(participants)
    keys = list(keys)
    counts = {k: len(aggregate.get(k, [])) for k in keys}
    top = max(counts.values(), default=0)

    cells = []
    for key in keys:
        count = counts[key]
        cells.append(
            HeatmapCell(
                key=key,
                count=count,
                percentage=round(count / total * 100, 1) if total else 0.0,
                intensity=heatmap_intensity(count, top),
                is_best=total > 0 and count == total,
                participants=list(aggregate.get(key, [])),
            )
        )
    best = [k for k in keys if top > 0 and counts[k] == top]
    return Heatmap(cells=cells, max_count=top, total_participants=total, best_slots=best)
