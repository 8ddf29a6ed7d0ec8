import base64
import json

from timesync import state
from timesync.config import clear_settings_cache


def _create_poll(client, **overrides):
    payload = {
        "title": "Beach weekend",
        "creatorName": "Ana",
        "dates": ["2025-06-01", "2025-06-02", "2025-06-03"],
    }
    payload.update(overrides)
    res = client.post("/polls", json=payload)
    assert res.status_code == 201, res.text
    return res.json()


def _join(client, poll_id, name):
    res = client.post(f"/polls/{poll_id}/participants", json={"name": name})
    assert res.status_code in (200, 201), res.text
    return res.json()["participant"]


def _select(client, poll_id, participant_id, slots, **extra):
    return client.put(
        f"/polls/{poll_id}/participants/{participant_id}/availability",
        json={"slots": slots, **extra},
    )


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok", "storage": "memory", "storage_status": "healthy"}


def test_create_and_get_poll(client):
    poll = _create_poll(client, description="Pick a weekend")
    assert poll["timeSlotDuration"] == 1440
    assert poll["timezone"] == "UTC"
    assert poll["createdAt"].endswith("Z")

    res = client.get(f"/polls/{poll['id']}")
    assert res.status_code == 200
    body = res.json()
    assert body["poll"]["title"] == "Beach weekend"
    assert body["poll"]["description"] == "Pick a weekend"
    assert body["participants"] == []


def test_create_poll_validation(client):
    assert client.post("/polls", json={"creatorName": "Ana", "dates": ["2025-06-01"]}).status_code == 422
    assert client.post("/polls", json={"title": "x", "creatorName": "Ana", "dates": []}).status_code == 422
    assert (
        client.post("/polls", json={"title": "x", "creatorName": "Ana", "dates": ["June 1"]}).status_code
        == 422
    )
    assert (
        client.post(
            "/polls",
            json={"title": "x", "creatorName": "Ana", "dates": ["2025-06-01"], "timezone": "Mars/Olympus"},
        ).status_code
        == 422
    )
    assert (
        client.post(
            "/polls",
            json={"title": "x", "creatorName": "Ana", "dates": ["2025-06-01"], "timeSlotDuration": 45},
        ).status_code
        == 422
    )


def test_create_poll_rejects_empty_window(client):
    res = client.post(
        "/polls",
        json={
            "title": "x",
            "creatorName": "Ana",
            "dates": ["2025-06-01"],
            "timeSlotDuration": 30,
            "startHour": 12,
            "endHour": 12,
        },
    )
    assert res.status_code == 400
    assert res.json()["error"] == "bad_request"


def test_hero_image_limits(client, monkeypatch):
    small = "data:image/png;base64," + base64.b64encode(b"0123456789").decode()
    _create_poll(client, heroImage=small)
    _create_poll(client, heroImage="https://example.com/beach.jpg")

    monkeypatch.setenv("POLL_HERO_IMAGE_MAX_BYTES", "4")
    clear_settings_cache()
    res = client.post(
        "/polls", json={"title": "x", "creatorName": "Ana", "dates": ["2025-06-01"], "heroImage": small}
    )
    assert res.status_code == 400

    res = client.post(
        "/polls", json={"title": "x", "creatorName": "Ana", "dates": ["2025-06-01"], "heroImage": "beach.jpg"}
    )
    assert res.status_code == 400


def test_list_polls_newest_first_with_status(client):
    _create_poll(client, title="Old", dates=["2020-01-01"])
    _create_poll(client, title="Future", dates=["2999-01-01", "2999-01-02"])

    res = client.get("/polls")
    assert res.status_code == 200
    polls = {p["title"]: p for p in res.json()}
    assert polls["Old"]["status"] == "done"
    assert polls["Old"]["nextDate"] is None
    assert polls["Future"]["status"] == "planning"
    assert polls["Future"]["nextDate"] == "2999-01-01"
    assert polls["Future"]["lastDate"] == "2999-01-02"
    assert polls["Future"]["participantCount"] == 0


def test_update_poll(client):
    poll = _create_poll(client)
    res = client.put(f"/polls/{poll['id']}", json={"title": "Lake weekend", "dates": ["2025-07-05"]})
    assert res.status_code == 200
    body = res.json()
    assert body["title"] == "Lake weekend"
    assert body["dates"] == ["2025-07-05"]
    assert body["creatorName"] == "Ana"

    assert client.put("/polls/missing", json={"title": "x"}).status_code == 404


def test_date_edit_drops_selections_on_removed_dates(client):
    poll = _create_poll(client, dates=["2025-06-01", "2025-06-02"])
    pid = poll["id"]
    alice = _join(client, pid, "Alice")
    assert _select(client, pid, alice["id"], ["2025-06-02"]).status_code == 200

    assert client.put(f"/polls/{pid}", json={"dates": ["2025-06-01"]}).status_code == 200

    mine = client.get(f"/polls/{pid}/participants/{alice['id']}/availability").json()
    assert mine["slots"] == []
    assert client.get(f"/polls/{pid}/availability").json()["availability"] == {}
    body = client.get(f"/polls/{pid}/results").json()
    assert body["maxCount"] == 0
    assert body["bestSlots"] == []
    assert body["bestRanges"] == []
    assert [c["isBest"] for c in body["heatmap"]["cells"]] == [False]


def test_results_ignore_slots_off_the_grid(client):
    poll = _create_poll(client, dates=["2025-06-01", "2025-06-02"])
    pid = poll["id"]
    alice = _join(client, pid, "Alice")
    bob = _join(client, pid, "Bob")
    _select(client, pid, alice["id"], ["2025-06-01"])

    doc = json.loads(state.document_store.raw)
    for sid, participant in (("x1", alice), ("x2", bob)):
        doc["timeSlots"][sid] = {
            "id": sid,
            "participantId": participant["id"],
            "pollId": pid,
            "dateTime": "2025-06-09T00:00:00.000Z",
        }
    state.document_store.raw = json.dumps(doc)

    body = client.get(f"/polls/{pid}/results").json()
    assert body["maxCount"] == 1
    assert body["bestSlots"] == ["2025-06-01"]
    assert body["heatmap"]["bestSlots"] == body["bestSlots"]
    assert body["heatmap"]["maxCount"] == body["maxCount"]


def test_malformed_stored_values_read_as_empty(client):
    _create_poll(client)
    doc = json.loads(state.document_store.raw)
    for poll in doc["polls"].values():
        poll["createdAt"] = "garbage"
    state.document_store.raw = json.dumps(doc)

    res = client.get("/polls")
    assert res.status_code == 200
    assert res.json() == []


def test_delete_poll_cascades(client):
    poll = _create_poll(client)
    alice = _join(client, poll["id"], "Alice")
    assert _select(client, poll["id"], alice["id"], ["2025-06-01"]).status_code == 200

    assert client.delete(f"/polls/{poll['id']}").status_code == 204
    assert client.get(f"/polls/{poll['id']}").status_code == 404
    assert client.get(f"/polls/{poll['id']}/participants").status_code == 404
    assert client.delete(f"/polls/{poll['id']}").status_code == 404


def test_unknown_poll(client):
    res = client.get("/polls/nope")
    assert res.status_code == 404
    body = res.json()
    assert body["error"] == "not_found"
    assert body["context"] == {"poll_id": "nope"}


def test_slot_grid(client):
    day = _create_poll(client, dates=["2025-06-02", "2025-06-01"])
    res = client.get(f"/polls/{day['id']}/slots")
    assert res.json() == {"pollId": day["id"], "granularity": "day", "slots": ["2025-06-01", "2025-06-02"]}

    sub = _create_poll(client, dates=["2025-06-01"], timeSlotDuration=30, startHour=9, endHour=10)
    res = client.get(f"/polls/{sub['id']}/slots")
    assert res.json()["granularity"] == "slot"
    assert res.json()["slots"] == ["2025-06-01-09:00", "2025-06-01-09:30"]


def test_join_is_case_insensitive(client):
    poll = _create_poll(client)
    first = client.post(f"/polls/{poll['id']}/participants", json={"name": "Alice"})
    again = client.post(f"/polls/{poll['id']}/participants", json={"name": " ALICE "})
    assert first.status_code == 201
    assert first.json()["created"] is True
    assert again.status_code == 200
    assert again.json()["created"] is False
    assert again.json()["participant"]["id"] == first.json()["participant"]["id"]

    participants = client.get(f"/polls/{poll['id']}/participants").json()
    assert [p["name"] for p in participants] == ["Alice"]
    assert participants[0]["color"] == "#3B82F6"


def test_join_rejects_blank_name(client):
    poll = _create_poll(client)
    assert client.post(f"/polls/{poll['id']}/participants", json={"name": "   "}).status_code == 422


def test_join_full_poll(client, monkeypatch):
    monkeypatch.setenv("POLL_MAX_PARTICIPANTS", "2")
    clear_settings_cache()
    poll = _create_poll(client)
    _join(client, poll["id"], "Alice")
    _join(client, poll["id"], "Bob")

    res = client.post(f"/polls/{poll['id']}/participants", json={"name": "Carol"})
    assert res.status_code == 409
    assert res.json()["detail"] == "Poll is full"
    # returning participants may still sign back in
    assert client.post(f"/polls/{poll['id']}/participants", json={"name": "bob"}).status_code == 200


def test_save_and_read_selection(client):
    poll = _create_poll(client)
    alice = _join(client, poll["id"], "Alice")

    res = _select(client, poll["id"], alice["id"], ["2025-06-02", "2025-06-01", "2025-06-01"])
    assert res.status_code == 200
    assert res.json()["slots"] == ["2025-06-01", "2025-06-02"]

    res = client.get(f"/polls/{poll['id']}/participants/{alice['id']}/availability")
    assert res.status_code == 200
    assert res.json()["slots"] == ["2025-06-01", "2025-06-02"]

    # a new save replaces the previous selection
    _select(client, poll["id"], alice["id"], ["2025-06-03"])
    res = client.get(f"/polls/{poll['id']}/participants/{alice['id']}/availability")
    assert res.json()["slots"] == ["2025-06-03"]


def test_selection_rejects_slots_outside_the_grid(client):
    poll = _create_poll(client)
    alice = _join(client, poll["id"], "Alice")
    res = _select(client, poll["id"], alice["id"], ["2025-06-09"])
    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid slot: 2025-06-09"


def test_participant_of_another_poll(client):
    one = _create_poll(client)
    two = _create_poll(client)
    alice = _join(client, one["id"], "Alice")
    res = client.get(f"/polls/{two['id']}/participants/{alice['id']}/availability")
    assert res.status_code == 404


def test_invalid_viewer_timezone(client):
    poll = _create_poll(client)
    res = client.get(f"/polls/{poll['id']}/availability", params={"tz": "Not/AZone"})
    assert res.status_code == 400


def test_results_merge_tied_days(client):
    poll = _create_poll(client)
    pid = poll["id"]
    alice = _join(client, pid, "Alice")
    bob = _join(client, pid, "Bob")
    carol = _join(client, pid, "Carol")
    _select(client, pid, alice["id"], ["2025-06-01", "2025-06-02", "2025-06-03"])
    _select(client, pid, bob["id"], ["2025-06-01", "2025-06-02"])
    _select(client, pid, carol["id"], ["2025-06-01", "2025-06-02"])

    availability = client.get(f"/polls/{pid}/availability").json()["availability"]
    assert {k: len(v) for k, v in availability.items()} == {"2025-06-01": 3, "2025-06-02": 3, "2025-06-03": 1}

    res = client.get(f"/polls/{pid}/results")
    assert res.status_code == 200
    body = res.json()
    assert body["maxCount"] == 3
    assert body["bestSlots"] == ["2025-06-01", "2025-06-02"]
    (best,) = body["bestRanges"]
    assert (best["start"], best["end"]) == ("2025-06-01", "2025-06-02")
    assert best["label"] == "Jun 1–2, 2025"
    assert best["daySpan"] == 2
    assert best["uniform"] is True
    assert [p["name"] for p in best["participants"]] == ["Alice", "Bob", "Carol"]

    cells = {c["key"]: c for c in body["heatmap"]["cells"]}
    assert cells["2025-06-01"]["isBest"] is True
    assert cells["2025-06-03"]["intensity"] == 3
    assert body["heatmap"]["totalParticipants"] == 3


def test_results_without_participants(client):
    poll = _create_poll(client)
    body = client.get(f"/polls/{poll['id']}/results").json()
    assert body["maxCount"] == 0
    assert body["bestRanges"] == []
    assert body["bestSlots"] == []
    assert all(c["count"] == 0 for c in body["heatmap"]["cells"])


def test_sub_day_slots_follow_the_viewer_zone(client):
    poll = _create_poll(
        client,
        dates=["2025-06-01"],
        timeSlotDuration=60,
        startHour=9,
        endHour=11,
        timezone="Europe/Berlin",
    )
    alice = _join(client, poll["id"], "Alice")
    assert _select(client, poll["id"], alice["id"], ["2025-06-01-09:00"]).status_code == 200

    mine = client.get(f"/polls/{poll['id']}/participants/{alice['id']}/availability").json()
    assert mine["timezone"] == "Europe/Berlin"
    assert mine["slots"] == ["2025-06-01-09:00"]

    utc = client.get(f"/polls/{poll['id']}/availability", params={"tz": "UTC"}).json()
    assert list(utc["availability"]) == ["2025-06-01-07:00"]

    results = client.get(f"/polls/{poll['id']}/results").json()
    assert results["bestRanges"] == []
    assert results["bestSlots"] == ["2025-06-01-09:00"]


def test_redis_backed_round_trip(redis_backed_client):
    health = redis_backed_client.get("/health").json()
    assert health["storage"] == "redis"
    assert health["storage_status"] == "healthy"

    poll = _create_poll(redis_backed_client)
    alice = _join(redis_backed_client, poll["id"], "Alice")
    assert _select(redis_backed_client, poll["id"], alice["id"], ["2025-06-01"]).status_code == 200

    body = redis_backed_client.get(f"/polls/{poll['id']}/results").json()
    assert body["bestSlots"] == ["2025-06-01"]
