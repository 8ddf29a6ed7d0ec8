import logging
from collections.abc import Callable, Iterable

from timesync.db.polls import Repository
from timesync.models.poll import Participant, TimeSlot
from timesync.scheduling.keys import key_function

logger = logging.getLogger("timesync.aggregate")

Aggregate = dict[str, list[Participant]]


def aggregate_slots(
    slots: Iterable[TimeSlot],
    participants: Iterable[Participant],
    key_fn: Callable[[str], str],
) -> Aggregate:
    """Group participants by the key of each time slot they saved.

    Keys with nobody available are absent rather than mapped to an empty
    list. Slots whose participant no longer resolves are skipped.
    """
    lookup = {p.id: p for p in participants}
    result: Aggregate = {}
    for slot in slots:
        participant = lookup.get(slot.participant_id)
        if participant is None:
            logger.debug("Skipping orphaned slot %s participant=%s", slot.id, slot.participant_id)
            continue
        result.setdefault(key_fn(slot.date_time), []).append(participant)
    return result


async def aggregate(repo: Repository, poll_id: str, tz: str | None = None) -> Aggregate:
    """Availability map for a poll, keyed in ``tz`` (the poll's zone by default)."""
    poll = await repo.get_poll(poll_id)
    if poll is None:
        return {}
    participants = await repo.get_participants_by_poll(poll_id)
    slots = await repo.get_time_slots_by_poll(poll_id)
    key_fn = key_function(poll.time_slot_duration, tz or poll.timezone)
    return aggregate_slots(slots, participants, key_fn)
