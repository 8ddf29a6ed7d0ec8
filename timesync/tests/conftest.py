import os
import sys
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

import pytest
from fastapi.testclient import TestClient
import fakeredis.aioredis as fakeredis

import timesync.lifespan as lifespan
from timesync.config import clear_settings_cache
from timesync.db.core import MemoryDocumentStore
from timesync.db.polls import Repository
from timesync.models.poll import Participant, TimeSlot


class _AwaitableRedis:
    def __init__(self, client):
        self._client = client

    def __await__(self):
        async def _coro():
            return self._client

        return _coro().__await__()


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def repo(store):
    return Repository(store)


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    clear_settings_cache()
    import timesync.main as main

    with TestClient(main.app) as c:
        yield c
    clear_settings_cache()


@pytest.fixture
def redis_backed_client(monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", "redis")
    clear_settings_cache()

    def fake_redis_constructor(*_args, **_kwargs):
        return _AwaitableRedis(fakeredis.FakeRedis(decode_responses=True))

    monkeypatch.setattr(lifespan.redis, "Redis", fake_redis_constructor)
    import timesync.main as main

    with TestClient(main.app) as c:
        yield c
    clear_settings_cache()


def make_participant(pid: str, name: str | None = None, poll_id: str = "poll1", created_at: str | None = None) -> Participant:
    return Participant(
        id=pid,
        poll_id=poll_id,
        name=name or pid.title(),
        color="#3B82F6",
        created_at=created_at or "2025-05-01T00:00:00.000Z",
    )


def make_slot(sid: str, participant_id: str, date_time: str, poll_id: str = "poll1") -> TimeSlot:
    return TimeSlot(id=sid, participant_id=participant_id, poll_id=poll_id, date_time=date_time)
