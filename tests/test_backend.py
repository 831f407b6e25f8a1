"""Tests for the Redis store."""

import pytest

from backend import RedisBackend
from redis_keys import REDIS_DELIVERED_KEY, REDIS_SIGNAL_KEY, REDIS_SIGNAL_SEQ_KEY, REDIS_SIGNALS_KEY
from utils import now_ms


def _signal(type="offer", sender="a", to=None, payload=None):
    return {"type": type, "from": sender, "to": to, "payload": payload}


class TestRooms:
    async def test_create_and_get(self, backend: RedisBackend) -> None:
        assert await backend.create_room("ABC234", {"code": "ABC234", "created_at": 1.5, "status": "waiting"})
        room = await backend.get_room("ABC234")
        assert room == {"code": "ABC234", "created_at": 1.5, "status": "waiting"}

    async def test_existing_code_is_not_overwritten(self, backend: RedisBackend) -> None:
        await backend.create_room("ABC234", {"code": "ABC234", "created_at": 1.0, "status": "waiting"})
        assert not await backend.create_room("ABC234", {"code": "ABC234", "created_at": 2.0, "status": "waiting"})
        assert (await backend.get_room("ABC234"))["created_at"] == 1.0

    async def test_missing_room(self, backend: RedisBackend) -> None:
        assert await backend.get_room("NOPE22") is None

    async def test_room_ttl(self, backend: RedisBackend, redis_client) -> None:
        await backend.create_room("TTL234", {"code": "TTL234", "created_at": 1.0}, ttl=60)
        assert 0 < await redis_client.ttl("room:meta:TTL234") <= 60


class TestParticipants:
    async def test_capacity_precondition(self, backend: RedisBackend) -> None:
        assert await backend.upsert_participant("R", "a", "A", 1.0, 2)
        assert await backend.upsert_participant("R", "b", "B", 2.0, 2)
        assert not await backend.upsert_participant("R", "c", "C", 3.0, 2)
        assert [p["user_id"] for p in await backend.get_participants("R")] == ["a", "b"]

    async def test_rejoin_keeps_first_join_fields(self, backend: RedisBackend) -> None:
        await backend.upsert_participant("R", "a", "First", 1.0, 2)
        await backend.upsert_participant("R", "b", "B", 2.0, 2)
        assert await backend.upsert_participant("R", "a", "Second", 5.0, 2)
        a = (await backend.get_participants("R"))[0]
        assert a["display_name"] == "First"
        assert a["joined_at"] == 1.0
        assert a["last_active"] == 5.0

    async def test_numeric_looking_ids_stay_strings(self, backend: RedisBackend) -> None:
        await backend.upsert_participant("R", "123", "456", 1.0, 2)
        p = (await backend.get_participants("R"))[0]
        assert p["user_id"] == "123"
        assert p["display_name"] == "456"

    async def test_touch_never_creates(self, backend: RedisBackend) -> None:
        assert not await backend.touch_participant("R", "ghost", 1.0)
        assert await backend.get_participants("R") == []

    async def test_remove_is_idempotent(self, backend: RedisBackend) -> None:
        await backend.upsert_participant("R", "a", "A", 1.0, 2)
        assert await backend.remove_participant("R", "a")
        assert not await backend.remove_participant("R", "a")
        assert await backend.get_participants("R") == []


class TestSignals:
    async def test_keys_expire_after_retention(self, redis_client) -> None:
        backend = RedisBackend(redis_client, signal_retention=60)
        event_id = await backend.add_signal("R", _signal())
        await backend.claim_signals("R", "b", 0, 25)
        for key in (
            REDIS_SIGNAL_KEY.format(code="R", event_id=event_id),
            REDIS_SIGNALS_KEY.format(code="R"),
            REDIS_SIGNAL_SEQ_KEY.format(code="R"),
            REDIS_DELIVERED_KEY.format(code="R", event_id=event_id),
        ):
            assert 0 < await redis_client.pttl(key) <= 60_000

    async def test_old_events_trimmed_from_index_on_send(self, redis_client) -> None:
        backend = RedisBackend(redis_client, signal_retention=60)
        index_key = REDIS_SIGNALS_KEY.format(code="R")
        await redis_client.zadd(index_key, {"000000000000": now_ms() - 120_000})
        await backend.add_signal("R", _signal(type="answer"))
        assert await redis_client.zrange(index_key, 0, -1) == ["000000000001"]

    async def test_created_at_comes_after_earlier_cursor(self, backend: RedisBackend) -> None:
        cursor = await backend.read_cursor()
        await backend.add_signal("R", _signal())
        event = (await backend.claim_signals("R", "b", cursor, 25))[0]
        assert event["created_at"] > cursor
        assert abs(event["created_at"] - now_ms()) < 5_000

    async def test_cursor_trails_redis_clock(self, backend: RedisBackend, redis_client) -> None:
        cursor = await backend.read_cursor()
        seconds, microseconds = await redis_client.time()
        assert cursor < seconds * 1000 + microseconds / 1000

    async def test_expired_event_dropped_from_index(self, backend: RedisBackend, redis_client) -> None:
        event_id = await backend.add_signal("R", _signal())
        await redis_client.delete(REDIS_SIGNAL_KEY.format(code="R", event_id=event_id))
        assert await backend.claim_signals("R", "b", 0, 25) == []
        assert await redis_client.zcard(REDIS_SIGNALS_KEY.format(code="R")) == 0

    async def test_rapid_sends_keep_insertion_order(self, backend: RedisBackend) -> None:
        ids = [await backend.add_signal("R", _signal(type=kind)) for kind in ("offer", "candidate", "bye")]
        assert ids == sorted(ids)
        claimed = await backend.claim_signals("R", "b", 0, 25)
        assert [e["type"] for e in claimed] == ["offer", "candidate", "bye"]

    async def test_claim_filters_sender_and_other_recipients(self, backend: RedisBackend) -> None:
        await backend.add_signal("R", _signal(sender="b"))
        await backend.add_signal("R", _signal(sender="a", to="c"))
        await backend.add_signal("R", _signal(sender="a", to="b", type="answer"))
        claimed = await backend.claim_signals("R", "b", 0, 25)
        assert [e["type"] for e in claimed] == ["answer"]

    async def test_claim_marks_delivery(self, backend: RedisBackend) -> None:
        event_id = await backend.add_signal("R", _signal())
        assert len(await backend.claim_signals("R", "b", 0, 25)) == 1
        assert await backend.get_delivered_to("R", event_id) == {"b"}
        assert await backend.claim_signals("R", "b", 0, 25) == []

    async def test_claim_respects_limit(self, backend: RedisBackend) -> None:
        for i in range(5):
            await backend.add_signal("R", _signal(type="candidate", payload=i))
        first = await backend.claim_signals("R", "b", 0, 3)
        rest = await backend.claim_signals("R", "b", 0, 3)
        assert [e["payload"] for e in first] == [0, 1, 2]
        assert [e["payload"] for e in rest] == [3, 4]

    @pytest.mark.parametrize("payload", [None, "plain", {"sdp": "v=0", "nested": [1, 2]}])
    async def test_payload_is_stored_untouched(self, backend: RedisBackend, payload) -> None:
        await backend.add_signal("R", _signal(payload=payload))
        assert (await backend.claim_signals("R", "b", 0, 25))[0]["payload"] == payload
