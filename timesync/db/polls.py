import logging
import secrets
import string
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel

from timesync.db.core import DocumentStore
from timesync.models.poll import Participant, Poll, StorageData, TimeSlot
from timesync.scheduling.heatmap import participant_color
from timesync.scheduling.keys import format_instant, key_function, parse_instant

_logger = logging.getLogger("timesync.db")

POLLS = "polls"
PARTICIPANTS = "participants"
TIME_SLOTS = "timeSlots"

_COLLECTION_FIELDS = {
    POLLS: "polls",
    PARTICIPANTS: "participants",
    TIME_SLOTS: "time_slots",
}


def generate_id(length: int = 12) -> str:
    chars = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(chars) for _ in range(length))


def utc_now() -> str:
    return format_instant(datetime.now(UTC))


def normalize_dates(dates: Iterable[str]) -> list[str]:
    return sorted(set(dates))


def _collection(doc: StorageData, collection: str) -> dict[str, Any]:
    try:
        return getattr(doc, _COLLECTION_FIELDS[collection])
    except KeyError:
        raise ValueError(f"unknown collection: {collection}") from None


class Repository:
    """Entity access over the single state document.

    Every mutation re-reads the whole document, changes it and writes it
    back; two concurrent mutations can lose one of the writes.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def get(self, collection: str, entity_id: str) -> Any | None:
        doc = await self.store.load()
        return _collection(doc, collection).get(entity_id)

    async def put(self, collection: str, entity: BaseModel) -> None:
        doc = await self.store.load()
        _collection(doc, collection)[entity.id] = entity
        await self.store.save(doc)

    async def delete(self, collection: str, entity_id: str) -> None:
        doc = await self.store.load()
        if _collection(doc, collection).pop(entity_id, None) is not None:
            await self.store.save(doc)

    async def list_all(self, collection: str) -> list[Any]:
        doc = await self.store.load()
        return list(_collection(doc, collection).values())

    async def list_where(self, collection: str, predicate: Callable[[Any], bool]) -> list[Any]:
        return [e for e in await self.list_all(collection) if predicate(e)]

    # polls

    async def save_poll(self, poll: Poll) -> None:
        await self.put(POLLS, poll)

    async def get_poll(self, poll_id: str) -> Poll | None:
        return await self.get(POLLS, poll_id)

    async def list_polls(self) -> list[Poll]:
        polls = await self.list_all(POLLS)
        return sorted(polls, key=lambda p: parse_instant(p.created_at), reverse=True)

    async def delete_poll(self, poll_id: str) -> bool:
        """Delete a poll together with its participants and time slots."""
        doc = await self.store.load()
        if doc.polls.pop(poll_id, None) is None:
            return False
        doc.participants = {k: p for k, p in doc.participants.items() if p.poll_id != poll_id}
        doc.time_slots = {k: s for k, s in doc.time_slots.items() if s.poll_id != poll_id}
        await self.store.save(doc)
        _logger.info("Deleted poll %s with its participants and slots", poll_id)
        return True

    async def create_poll(
        self,
        title: str,
        creator_name: str,
        dates: Iterable[str],
        description: str | None = None,
        hero_image: str | None = None,
        time_slot_duration: int = 1440,
        start_hour: int = 0,
        end_hour: int = 24,
        timezone: str = "UTC",
    ) -> Poll:
        poll = Poll(
            id=generate_id(),
            title=title.strip(),
            description=(description or "").strip() or None,
            hero_image=(hero_image or "").strip() or None,
            creator_name=creator_name.strip(),
            created_at=utc_now(),
            dates=normalize_dates(dates),
            time_slot_duration=time_slot_duration,
            start_hour=start_hour,
            end_hour=end_hour,
            timezone=timezone,
        )
        await self.save_poll(poll)
        return poll

    async def update_poll(
        self,
        poll: Poll,
        title: str | None = None,
        description: str | None = None,
        hero_image: str | None = None,
        dates: Iterable[str] | None = None,
    ) -> Poll:
        """Apply an edit; blank description or hero image clears the field.

        Time slots on dates dropped from the poll are deleted in the same
        write.
        """
        changes: dict[str, Any] = {}
        if title is not None:
            changes["title"] = title.strip()
        if description is not None:
            changes["description"] = description.strip() or None
        if hero_image is not None:
            changes["hero_image"] = hero_image.strip() or None
        if dates is not None:
            changes["dates"] = normalize_dates(dates)
        updated = poll.model_copy(update=changes)

        doc = await self.store.load()
        doc.polls[updated.id] = updated
        if dates is not None:
            kept = set(updated.dates)
            to_key = key_function(updated.time_slot_duration, updated.timezone)
            stale = [
                k for k, s in doc.time_slots.items()
                if s.poll_id == updated.id and to_key(s.date_time)[:10] not in kept
            ]
            for k in stale:
                del doc.time_slots[k]
            if stale:
                _logger.info("Dropped %d slots outside the dates of poll %s", len(stale), updated.id)
        await self.store.save(doc)
        return updated

    # participants

    async def save_participant(self, participant: Participant) -> None:
        await self.put(PARTICIPANTS, participant)

    async def get_participant(self, participant_id: str) -> Participant | None:
        return await self.get(PARTICIPANTS, participant_id)

    async def get_participants_by_poll(self, poll_id: str) -> list[Participant]:
        participants = await self.list_where(PARTICIPANTS, lambda p: p.poll_id == poll_id)
        return sorted(participants, key=lambda p: parse_instant(p.created_at))

    async def get_participant_by_name_and_poll(self, name: str, poll_id: str) -> Participant | None:
        wanted = name.strip().lower()
        for p in await self.get_participants_by_poll(poll_id):
            if p.name.lower() == wanted:
                return p
        return None

    async def join_poll(
        self, poll: Poll, name: str, max_participants: int | None = None
    ) -> tuple[Participant, bool] | None:
        """Find or create the participant called ``name``.

        Returns ``(participant, created)``, or ``None`` when the name is
        blank or a new participant would exceed ``max_participants``.
        """
        name = name.strip()
        if not name:
            return None
        existing = await self.get_participant_by_name_and_poll(name, poll.id)
        if existing is not None:
            return existing, False
        joined = await self.get_participants_by_poll(poll.id)
        if max_participants is not None and len(joined) >= max_participants:
            _logger.info("Poll %s is full (%d participants)", poll.id, len(joined))
            return None
        participant = Participant(
            id=generate_id(),
            poll_id=poll.id,
            name=name,
            color=participant_color(len(joined)),
            created_at=utc_now(),
        )
        await self.save_participant(participant)
        return participant, True

    # time slots

    async def save_time_slots(self, slots: Iterable[TimeSlot]) -> None:
        doc = await self.store.load()
        for slot in slots:
            doc.time_slots[slot.id] = slot
        await self.store.save(doc)

    async def delete_time_slots_for_participant(self, participant_id: str) -> None:
        doc = await self.store.load()
        doc.time_slots = {k: s for k, s in doc.time_slots.items() if s.participant_id != participant_id}
        await self.store.save(doc)

    async def replace_time_slots(self, participant: Participant, date_times: Iterable[str]) -> list[TimeSlot]:
        """Replace every slot of ``participant`` with ``date_times`` in one write."""
        doc = await self.store.load()
        doc.time_slots = {k: s for k, s in doc.time_slots.items() if s.participant_id != participant.id}
        slots = [
            TimeSlot(
                id=generate_id(),
                participant_id=participant.id,
                poll_id=participant.poll_id,
                date_time=dt,
            )
            for dt in dict.fromkeys(date_times)
        ]
        for slot in slots:
            doc.time_slots[slot.id] = slot
        await self.store.save(doc)
        return slots

    async def get_time_slots_by_poll(self, poll_id: str) -> list[TimeSlot]:
        return await self.list_where(TIME_SLOTS, lambda s: s.poll_id == poll_id)

    async def get_time_slots_by_participant(self, participant_id: str) -> list[TimeSlot]:
        return await self.list_where(TIME_SLOTS, lambda s: s.participant_id == participant_id)
