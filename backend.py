import json
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import WatchError

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, REDIS_DB, SIGNAL_RETENTION_SECONDS
from redis_keys import (
    REDIS_META_KEY,
    REDIS_USERS_KEY,
    REDIS_USER_KEY,
    REDIS_SIGNALS_KEY,
    REDIS_SIGNAL_SEQ_KEY,
    REDIS_SIGNAL_KEY,
    REDIS_DELIVERED_KEY,
)
from logging_config import get_logger

logger = get_logger(__name__)


def create_redis_client() -> redis.Redis:
    """Build the process-wide Redis client. Call once at startup and pass it around."""
    logger.info(f"Creating Redis client for {REDIS_HOST}:{REDIS_PORT} db={REDIS_DB}")
    return redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, db=REDIS_DB, decode_responses=True)


# Stamps, stores and indexes one signal event atomically.
# KEYS[1] room sequence counter, KEYS[2] room index
# ARGV[1] event key prefix, ARGV[2] retention seconds, ARGV[3..] field/value pairs
ADD_SIGNAL_SCRIPT = """
local unpack = unpack or table.unpack
local t = redis.call('TIME')
local sec = tonumber(t[1])
local usec = tonumber(t[2])
local ms = string.format('%03d', math.floor(usec / 1000))
local created_at = sec .. ms .. '.' .. string.format('%03d', usec % 1000)
local retention = tonumber(ARGV[2])
local expires_at = (sec + retention) .. ms

-- zero padded so equal scores sort in insertion order
local event_id = string.format('%012d', redis.call('INCR', KEYS[1]))
local signal_key = ARGV[1] .. event_id
redis.call('HSET', signal_key, 'created_at', created_at, unpack(ARGV, 3))
redis.call('PEXPIREAT', signal_key, expires_at)
redis.call('ZADD', KEYS[2], created_at, event_id)
redis.call('ZREMRANGEBYSCORE', KEYS[2], '-inf', '(' .. (sec - retention) .. ms)
redis.call('PEXPIREAT', KEYS[2], expires_at)
redis.call('PEXPIREAT', KEYS[1], expires_at)
return {event_id, created_at}
"""


def _encode(data: dict) -> dict:
    # Hash values are stored as JSON so ids like "123" never come back as ints
    return {k: json.dumps(v) for k, v in data.items()}


def _decode(data: dict) -> dict:
    result = {}
    for k, v in data.items():
        try:
            result[k] = json.loads(v)
        except (json.JSONDecodeError, TypeError):
            result[k] = v
    return result


class RedisBackend:
    """Durable store for rooms, participants and signal events.

    Rooms and participants are plain hashes. Signal events live in one hash
    per event, indexed per room by a sorted set scored with ``created_at``;
    each event's delivered-to set is a separate Redis set so that marking
    delivery is a single atomic ``SADD``. All signal keys carry an expiry at
    ``created_at + signal_retention``.
    """

    def __init__(self, redis_client: redis.Redis, signal_retention: int = SIGNAL_RETENTION_SECONDS):
        self.redis_client = redis_client
        self.signal_retention = signal_retention
        self._add_signal_script = redis_client.register_script(ADD_SIGNAL_SCRIPT)
        logger.info(f"Initializing RedisBackend (signal retention {signal_retention}s)")

    async def ping(self):
        try:
            await self.redis_client.ping()
            logger.info("Redis client connected successfully")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}", exc_info=True)
            raise

    async def close(self):
        await self.redis_client.aclose()
        logger.info("Redis client closed")

    # Rooms

    async def create_room(self, code: str, room_data: dict, ttl: int = 0) -> bool:
        """Insert a room unless the code is taken. Returns False on collision."""
        logger.info(f"Creating room {code}")
        key = REDIS_META_KEY.format(code=code)
        async with self.redis_client.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    if await pipe.exists(key):
                        logger.debug(f"Room code {code} already taken")
                        return False
                    pipe.multi()
                    pipe.hset(key, mapping=_encode(room_data))
                    if ttl:
                        pipe.expire(key, ttl)
                    await pipe.execute()
                    logger.debug(f"Room {code} created successfully with key: {key}")
                    return True
                except WatchError:
                    logger.debug(f"Concurrent write on {key}, retrying")
                    continue

    async def get_room(self, code: str) -> Optional[dict]:
        logger.debug(f"Fetching room {code}")
        room_data = await self.redis_client.hgetall(REDIS_META_KEY.format(code=code))
        if not room_data:
            logger.debug(f"Room {code} not found in Redis")
            return None
        return _decode(room_data)

    # Participants

    async def upsert_participant(self, code: str, user_id: str, display_name: str, now: float, max_participants: int) -> bool:
        """Add or refresh a participant, refusing a new user once the room holds
        ``max_participants`` others. The capacity check and the write commit
        together or not at all. Returns False when the room is full."""
        users_key = REDIS_USERS_KEY.format(code=code)
        user_key = REDIS_USER_KEY.format(code=code, user_id=user_id)
        async with self.redis_client.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(users_key, user_key)
                    members = await pipe.smembers(users_key)
                    if user_id not in members and len(members) >= max_participants:
                        logger.debug(f"Room {code} is full ({len(members)}/{max_participants}), rejecting {user_id}")
                        return False
                    pipe.multi()
                    pipe.sadd(users_key, user_id)
                    pipe.hsetnx(user_key, "room_code", json.dumps(code))
                    pipe.hsetnx(user_key, "user_id", json.dumps(user_id))
                    pipe.hsetnx(user_key, "display_name", json.dumps(display_name))
                    pipe.hsetnx(user_key, "joined_at", json.dumps(now))
                    pipe.hset(user_key, "last_active", json.dumps(now))
                    await pipe.execute()
                    if user_id in members:
                        logger.debug(f"User {user_id} already in room {code}, refreshed last_active")
                    else:
                        logger.debug(f"User {user_id} added to room {code} (new user)")
                    return True
                except WatchError:
                    logger.debug(f"Concurrent membership change in room {code}, retrying join of {user_id}")
                    continue

    async def touch_participant(self, code: str, user_id: str, now: float) -> bool:
        """Refresh last_active of an existing participant. Never creates one."""
        user_key = REDIS_USER_KEY.format(code=code, user_id=user_id)
        async with self.redis_client.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(user_key)
                    if not await pipe.exists(user_key):
                        return False
                    pipe.multi()
                    pipe.hset(user_key, "last_active", json.dumps(now))
                    await pipe.execute()
                    return True
                except WatchError:
                    continue

    async def remove_participant(self, code: str, user_id: str) -> bool:
        logger.debug(f"Removing user {user_id} from room {code}")
        async with self.redis_client.pipeline(transaction=True) as pipe:
            pipe.srem(REDIS_USERS_KEY.format(code=code), user_id)
            pipe.delete(REDIS_USER_KEY.format(code=code, user_id=user_id))
            removed, deleted = await pipe.execute()
        logger.debug(f"User {user_id} removed from room {code}: user_set={removed}, metadata={deleted}")
        return bool(removed)

    async def get_participants(self, code: str) -> list:
        """All participants of a room, oldest join first."""
        user_ids = await self.redis_client.smembers(REDIS_USERS_KEY.format(code=code))
        if not user_ids:
            return []
        async with self.redis_client.pipeline(transaction=False) as pipe:
            for user_id in user_ids:
                pipe.hgetall(REDIS_USER_KEY.format(code=code, user_id=user_id))
            rows = await pipe.execute()
        participants = [_decode(row) for row in rows if row]
        participants.sort(key=lambda p: (p.get("joined_at", 0), p.get("user_id", "")))
        logger.debug(f"Room {code} has {len(participants)} participants")
        return participants

    # Signal events

    def _expires_at_ms(self, created_at: float) -> int:
        return int(created_at + self.signal_retention * 1000)

    async def add_signal(self, code: str, event: dict) -> str:
        """Store a signal event and index it by creation time. Returns its id.

        ``created_at`` is taken from the Redis clock inside the same script
        that writes the event, so the score is never older than the commit.
        """
        fields = []
        for k, v in _encode(event).items():
            fields.extend((k, v))
        event_id, created_at = await self._add_signal_script(
            keys=[REDIS_SIGNAL_SEQ_KEY.format(code=code), REDIS_SIGNALS_KEY.format(code=code)],
            args=[REDIS_SIGNAL_KEY.format(code=code, event_id=""), self.signal_retention, *fields],
        )
        logger.debug(f"Stored signal {event_id} ({event.get('type')}) in room {code} at {created_at}")
        return event_id

    async def read_cursor(self) -> float:
        """Poll cursor from the Redis clock, taken before the read it belongs to.

        Kept one microsecond behind ``TIME`` so an event stamped in the same
        microsecond still sorts after it.
        """
        seconds, microseconds = await self.redis_client.time()
        return seconds * 1000 + microseconds / 1000 - 0.001

    async def claim_signals(self, code: str, user_id: str, since: float, limit: int) -> list:
        """Return up to ``limit`` events deliverable to ``user_id`` created after
        ``since``, oldest first, marking each as delivered to that user.

        An event is only returned if this call is the one that added
        ``user_id`` to its delivered-to set.
        """
        index_key = REDIS_SIGNALS_KEY.format(code=code)
        lower = f"({since!r}" if since > 0 else "-inf"
        event_ids = await self.redis_client.zrangebyscore(index_key, lower, "+inf")
        if not event_ids:
            return []

        async with self.redis_client.pipeline(transaction=False) as pipe:
            for event_id in event_ids:
                pipe.hgetall(REDIS_SIGNAL_KEY.format(code=code, event_id=event_id))
                pipe.sismember(REDIS_DELIVERED_KEY.format(code=code, event_id=event_id), user_id)
            results = await pipe.execute()

        candidates = []
        expired = []
        for event_id, data, delivered in zip(event_ids, results[::2], results[1::2]):
            if not data:
                expired.append(event_id)
                continue
            if delivered:
                continue
            event = _decode(data)
            if event.get("from") == user_id:
                continue
            if event.get("to") is not None and event.get("to") != user_id:
                continue
            event["id"] = event_id
            candidates.append(event)
            if len(candidates) >= limit:
                break

        if expired:
            await self.redis_client.zrem(index_key, *expired)
            logger.debug(f"Dropped {len(expired)} expired signals from index of room {code}")
        if not candidates:
            return []

        async with self.redis_client.pipeline(transaction=True) as pipe:
            for event in candidates:
                delivered_key = REDIS_DELIVERED_KEY.format(code=code, event_id=event["id"])
                pipe.sadd(delivered_key, user_id)
                pipe.pexpireat(delivered_key, self._expires_at_ms(event["created_at"]))
            marks = await pipe.execute()

        claimed = [event for event, added in zip(candidates, marks[::2]) if added]
        logger.debug(f"Claimed {len(claimed)} signals in room {code} for {user_id}")
        return claimed

    async def get_delivered_to(self, code: str, event_id: str) -> set:
        return await self.redis_client.smembers(REDIS_DELIVERED_KEY.format(code=code, event_id=event_id))
