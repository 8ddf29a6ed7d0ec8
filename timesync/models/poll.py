from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from timesync.scheduling.keys import is_day_granularity, parse_date_key, parse_instant, slots_per_hour


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase on the wire and in the state document."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check_instant(v: str) -> str:
    try:
        parse_instant(v)
    except ValueError:
        raise ValueError(f"invalid ISO-8601 instant: {v!r}") from None
    return v


class Poll(CamelModel):
    id: str
    title: str
    description: str | None = None
    hero_image: str | None = None
    creator_name: str
    created_at: str
    dates: list[str]
    time_slot_duration: int = 1440
    start_hour: int = 0
    end_hour: int = 24
    timezone: str = "UTC"

    @field_validator("created_at")
    @classmethod
    def validate_created_at(cls, v: str) -> str:
        return _check_instant(v)

    @field_validator("dates")
    @classmethod
    def validate_dates(cls, v: list[str]) -> list[str]:
        for d in v:
            parse_date_key(d)
        return v

    @field_validator("time_slot_duration")
    @classmethod
    def validate_duration(cls, v: int) -> int:
        if not is_day_granularity(v):
            slots_per_hour(v)
        return v

    @field_validator("start_hour", "end_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        if not 0 <= v <= 24:
            raise ValueError("hours must be between 0 and 24")
        return v


class Participant(CamelModel):
    id: str
    poll_id: str
    name: str
    color: str
    created_at: str

    @field_validator("created_at")
    @classmethod
    def validate_created_at(cls, v: str) -> str:
        return _check_instant(v)


class TimeSlot(CamelModel):
    id: str
    participant_id: str
    poll_id: str
    date_time: str

    @field_validator("date_time")
    @classmethod
    def validate_date_time(cls, v: str) -> str:
        return _check_instant(v)


class StorageData(CamelModel):
    polls: dict[str, Poll] = {}
    participants: dict[str, Participant] = {}
    time_slots: dict[str, TimeSlot] = {}
