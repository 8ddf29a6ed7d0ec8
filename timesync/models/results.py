from timesync.models.poll import CamelModel, Participant, Poll


class PollSummary(Poll):
    status: str
    participant_count: int
    next_date: str | None = None
    last_date: str | None = None


class PollDetailResponse(CamelModel):
    poll: Poll
    participants: list[Participant]


class SlotGridResponse(CamelModel):
    poll_id: str
    granularity: str
    slots: list[str]


class JoinResponse(CamelModel):
    participant: Participant
    created: bool


class SelectionResponse(CamelModel):
    participant_id: str
    timezone: str
    slots: list[str]


class AvailabilityResponse(CamelModel):
    poll_id: str
    timezone: str
    granularity: str
    availability: dict[str, list[Participant]]


class DateRangeOut(CamelModel):
    start: str
    end: str
    label: str
    day_span: int
    count: int
    uniform: bool
    participants: list[Participant]


class HeatmapCellOut(CamelModel):
    key: str
    count: int
    percentage: float
    intensity: int
    is_best: bool
    participants: list[Participant]


class HeatmapOut(CamelModel):
    cells: list[HeatmapCellOut]
    max_count: int
    total_participants: int
    best_slots: list[str]


class ResultsResponse(CamelModel):
    poll: Poll
    participants: list[Participant]
    timezone: str
    max_count: int
    best_ranges: list[DateRangeOut]
    best_slots: list[str]
    heatmap: HeatmapOut
