import base64
import binascii
import logging
import re
from typing import List, Optional

from fastapi import APIRouter, Query, Response
from pydantic import field_validator

from timesync.config import get_settings
from timesync.db.polls import Repository
from timesync.dependencies import Repo
from timesync.errors import (
    BadRequestError,
    InvalidSlotError,
    InvalidTimezoneError,
    ParticipantNotFoundError,
    PollFullError,
    PollNotFoundError,
)
from timesync.models.poll import CamelModel, Participant, Poll
from timesync.models.results import (
    AvailabilityResponse,
    DateRangeOut,
    HeatmapCellOut,
    HeatmapOut,
    JoinResponse,
    PollDetailResponse,
    PollSummary,
    ResultsResponse,
    SelectionResponse,
    SlotGridResponse,
)
from timesync.scheduling import keys
from timesync.scheduling.aggregate import aggregate
from timesync.scheduling.heatmap import Heatmap, build_heatmap
from timesync.scheduling.resolve import DateRange, max_count, resolve_ranges, resolve_slots

logger = logging.getLogger("timesync.polls")
router = APIRouter()

DATA_URL_RE = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,(.*)$", re.DOTALL)
HTTP_URL_RE = re.compile(r"^https?://\S+$")


def _check_title(v: str) -> str:
    v = v.strip()
    if not v or len(v) > 200:
        raise ValueError("title must be 1-200 characters")
    return v


def _check_dates(v: List[str]) -> List[str]:
    if not v:
        raise ValueError("dates must not be empty")
    for d in v:
        try:
            keys.parse_date_key(d)
        except ValueError:
            raise ValueError(f"invalid date format: {d}") from None
    return v


def _check_zone(v: Optional[str]) -> Optional[str]:
    if v is not None:
        keys.resolve_zone(v)
    return v


class CreatePollRequest(CamelModel):
    title: str
    description: Optional[str] = None
    hero_image: Optional[str] = None
    creator_name: str
    dates: List[str]
    time_slot_duration: Optional[int] = None
    start_hour: Optional[int] = None
    end_hour: Optional[int] = None
    timezone: str = "UTC"

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _check_title(v)

    @field_validator("dates")
    @classmethod
    def validate_dates(cls, v: List[str]) -> List[str]:
        return _check_dates(v)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        return _check_zone(v)

    @field_validator("creator_name")
    @classmethod
    def validate_creator_name(cls, v: str) -> str:
        v = v.strip()
        if not v or len(v) > 100:
            raise ValueError("creator_name must be 1-100 characters")
        return v

    @field_validator("time_slot_duration")
    @classmethod
    def validate_duration(cls, v: Optional[int]) -> Optional[int]:
        if v is None or v == keys.DAY_MINUTES:
            return v
        keys.slots_per_hour(v)
        return v

    @field_validator("start_hour", "end_hour")
    @classmethod
    def validate_hour(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 0 <= v <= 24:
            raise ValueError("hours must be between 0 and 24")
        return v


class UpdatePollRequest(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    hero_image: Optional[str] = None
    dates: Optional[List[str]] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else _check_title(v)

    @field_validator("dates")
    @classmethod
    def validate_dates(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return v if v is None else _check_dates(v)


class JoinRequest(CamelModel):
    name: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v or len(v) > 100:
            raise ValueError("name must be 1-100 characters")
        return v


class SelectionRequest(CamelModel):
    slots: List[str]
    timezone: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _check_zone(v)


def _check_hero_image(value: Optional[str], max_bytes: int) -> None:
    value = (value or "").strip()
    if not value:
        return
    m = DATA_URL_RE.match(value)
    if m is None:
        if not HTTP_URL_RE.match(value):
            raise BadRequestError(detail="heroImage must be an image data URL or an http(s) URL")
        return
    try:
        size = len(base64.b64decode(m.group(1), validate=True))
    except (binascii.Error, ValueError):
        raise BadRequestError(detail="heroImage is not valid base64") from None
    if size > max_bytes:
        raise BadRequestError(detail=f"heroImage must be at most {max_bytes} bytes", size=size)


async def _require_poll(repo: Repository, poll_id: str) -> Poll:
    poll = await repo.get_poll(poll_id)
    if poll is None:
        logger.warning("Poll not found: %s", poll_id)
        raise PollNotFoundError(poll_id)
    return poll


async def _require_participant(repo: Repository, poll: Poll, participant_id: str) -> Participant:
    participant = await repo.get_participant(participant_id)
    if participant is None or participant.poll_id != poll.id:
        raise ParticipantNotFoundError(participant_id)
    return participant


def _zone(tz: Optional[str], poll: Poll) -> str:
    name = tz or poll.timezone
    try:
        keys.resolve_zone(name)
    except ValueError:
        raise InvalidTimezoneError(name) from None
    return name


def _grid(poll: Poll) -> List[str]:
    return keys.generate_slot_keys(poll.dates, poll.start_hour, poll.end_hour, poll.time_slot_duration)


def _summarize(poll: Poll, participant_count: int) -> PollSummary:
    try:
        today = keys.today_in(poll.timezone)
    except ValueError:
        today = keys.today_in("UTC")
    dates = sorted(poll.dates)
    last = dates[-1] if dates else None
    upcoming = [d for d in dates if keys.parse_date_key(d) >= today]
    done = last is not None and keys.is_past_date(keys.parse_date_key(last), today)
    return PollSummary(
        **poll.model_dump(),
        status="done" if done else "planning",
        participant_count=participant_count,
        next_date=upcoming[0] if upcoming else None,
        last_date=last,
    )


def _range_out(r: DateRange) -> DateRangeOut:
    return DateRangeOut(
        start=keys.format_date_key(r.start),
        end=keys.format_date_key(r.end),
        label=r.label,
        day_span=r.day_span,
        count=r.count,
        uniform=r.uniform,
        participants=r.participants,
    )


def _heatmap_out(heatmap: Heatmap) -> HeatmapOut:
    return HeatmapOut(
        cells=[
            HeatmapCellOut(
                key=c.key,
                count=c.count,
                percentage=c.percentage,
                intensity=c.intensity,
                is_best=c.is_best,
                participants=c.participants,
            )
            for c in heatmap.cells
        ],
        max_count=heatmap.max_count,
        total_participants=heatmap.total_participants,
        best_slots=heatmap.best_slots,
    )


@router.post("/polls", status_code=201, response_model=Poll)
async def create_poll(req: CreatePollRequest, repo: Repo) -> Poll:
    defaults = get_settings().poll
    duration = req.time_slot_duration or defaults.default_duration
    start = req.start_hour if req.start_hour is not None else defaults.default_start_hour
    end = req.end_hour if req.end_hour is not None else defaults.default_end_hour
    if start >= end:
        raise BadRequestError(detail="startHour must be before endHour", start_hour=start, end_hour=end)
    _check_hero_image(req.hero_image, defaults.hero_image_max_bytes)
    logger.info("POST /polls title=%s dates=%d duration=%d", req.title, len(req.dates), duration)
    poll = await repo.create_poll(
        title=req.title,
        creator_name=req.creator_name,
        dates=req.dates,
        description=req.description,
        hero_image=req.hero_image,
        time_slot_duration=duration,
        start_hour=start,
        end_hour=end,
        timezone=req.timezone,
    )
    logger.info("Created poll id=%s", poll.id)
    return poll


@router.get("/polls", response_model=List[PollSummary])
async def list_polls(repo: Repo) -> List[PollSummary]:
    summaries = []
    for poll in await repo.list_polls():
        participants = await repo.get_participants_by_poll(poll.id)
        summaries.append(_summarize(poll, len(participants)))
    return summaries


@router.get("/polls/{poll_id}", response_model=PollDetailResponse)
async def get_poll(poll_id: str, repo: Repo) -> PollDetailResponse:
    poll = await _require_poll(repo, poll_id)
    participants = await repo.get_participants_by_poll(poll_id)
    return PollDetailResponse(poll=poll, participants=participants)


@router.put("/polls/{poll_id}", response_model=Poll)
async def update_poll(poll_id: str, req: UpdatePollRequest, repo: Repo) -> Poll:
    poll = await _require_poll(repo, poll_id)
    _check_hero_image(req.hero_image, get_settings().poll.hero_image_max_bytes)
    logger.info("PUT /polls/%s", poll_id)
    return await repo.update_poll(
        poll,
        title=req.title,
        description=req.description,
        hero_image=req.hero_image,
        dates=req.dates,
    )


@router.delete("/polls/{poll_id}", status_code=204)
async def delete_poll(poll_id: str, repo: Repo) -> Response:
    if not await repo.delete_poll(poll_id):
        raise PollNotFoundError(poll_id)
    return Response(status_code=204)


@router.get("/polls/{poll_id}/slots", response_model=SlotGridResponse)
async def get_slots(poll_id: str, repo: Repo) -> SlotGridResponse:
    poll = await _require_poll(repo, poll_id)
    return SlotGridResponse(
        poll_id=poll.id,
        granularity=keys.granularity_name(poll.time_slot_duration),
        slots=_grid(poll),
    )


@router.get("/polls/{poll_id}/participants", response_model=List[Participant])
async def list_participants(poll_id: str, repo: Repo) -> List[Participant]:
    await _require_poll(repo, poll_id)
    return await repo.get_participants_by_poll(poll_id)


@router.post("/polls/{poll_id}/participants", response_model=JoinResponse)
async def join_poll(poll_id: str, req: JoinRequest, repo: Repo, response: Response) -> JoinResponse:
    poll = await _require_poll(repo, poll_id)
    limit = get_settings().poll.max_participants
    result = await repo.join_poll(poll, req.name, max_participants=limit)
    if result is None:
        raise PollFullError(poll_id, limit)
    participant, created = result
    logger.info("Participant %s %s poll %s", participant.id, "joined" if created else "rejoined", poll_id)
    response.status_code = 201 if created else 200
    return JoinResponse(participant=participant, created=created)


@router.get("/polls/{poll_id}/participants/{participant_id}/availability", response_model=SelectionResponse)
async def get_selection(
    poll_id: str,
    participant_id: str,
    repo: Repo,
    tz: Optional[str] = Query(default=None),
) -> SelectionResponse:
    poll = await _require_poll(repo, poll_id)
    participant = await _require_participant(repo, poll, participant_id)
    zone = _zone(tz, poll)
    slots = await repo.get_time_slots_by_participant(participant.id)
    selected = keys.instants_to_selection((s.date_time for s in slots), poll.time_slot_duration, zone)
    return SelectionResponse(participant_id=participant.id, timezone=zone, slots=sorted(selected))


@router.put("/polls/{poll_id}/participants/{participant_id}/availability", response_model=SelectionResponse)
async def save_selection(
    poll_id: str,
    participant_id: str,
    req: SelectionRequest,
    repo: Repo,
) -> SelectionResponse:
    poll = await _require_poll(repo, poll_id)
    participant = await _require_participant(repo, poll, participant_id)
    zone = _zone(req.timezone, poll)
    valid = set(_grid(poll))
    for slot in req.slots:
        if slot not in valid:
            logger.warning("Invalid slot %s for poll %s", slot, poll_id)
            raise InvalidSlotError(poll_id, slot)
    instants = keys.selection_to_instants(req.slots, poll.time_slot_duration, zone)
    saved = await repo.replace_time_slots(participant, instants)
    logger.info("Saved %d slots for participant %s on poll %s", len(saved), participant.id, poll_id)
    return SelectionResponse(participant_id=participant.id, timezone=zone, slots=sorted(set(req.slots)))


@router.get("/polls/{poll_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
    poll_id: str,
    repo: Repo,
    tz: Optional[str] = Query(default=None),
) -> AvailabilityResponse:
    poll = await _require_poll(repo, poll_id)
    zone = _zone(tz, poll)
    availability = await aggregate(repo, poll.id, zone)
    return AvailabilityResponse(
        poll_id=poll.id,
        timezone=zone,
        granularity=keys.granularity_name(poll.time_slot_duration),
        availability=dict(sorted(availability.items())),
    )


@router.get("/polls/{poll_id}/results", response_model=ResultsResponse)
async def get_results(
    poll_id: str,
    repo: Repo,
    tz: Optional[str] = Query(default=None),
) -> ResultsResponse:
    poll = await _require_poll(repo, poll_id)
    zone = _zone(tz, poll)
    participants = await repo.get_participants_by_poll(poll.id)
    grid = _grid(poll)
    # only cells on the poll's grid compete for best
    on_grid = set(grid)
    availability = {k: v for k, v in (await aggregate(repo, poll.id, zone)).items() if k in on_grid}
    heatmap = build_heatmap(grid, availability, participants)
    if keys.is_day_granularity(poll.time_slot_duration):
        ranges = [_range_out(r) for r in resolve_ranges(availability, len(participants))]
    else:
        ranges = []
    logger.info("Returning results for poll %s with %d participants", poll_id, len(participants))
    return ResultsResponse(
        poll=poll,
        participants=participants,
        timezone=zone,
        max_count=max_count(availability) if participants else 0,
        best_ranges=ranges,
        best_slots=resolve_slots(availability, len(participants)),
        heatmap=_heatmap_out(heatmap),
    )
