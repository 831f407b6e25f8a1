import asyncio
from typing import Awaitable, Callable, Optional

from backend import RedisBackend
from constants import POLL_BATCH_SIZE, POLL_TICK_SECONDS, POLL_TIMEOUT_SECONDS, SIGNAL_TYPES
from errors import InvalidArgument
from logging_config import get_logger
from schemas.signals import PollResponse, SignalEvent
from utils import from_ms, normalize_code

logger = get_logger(__name__)


def _to_event(row: dict) -> SignalEvent:
    return SignalEvent(
        type=row["type"],
        from_=row["from"],
        to=row.get("to"),
        payload=row.get("payload"),
        created_at=from_ms(row["created_at"]),
    )


class SignalRelay:
    """Stores signal events and hands them to their recipients by long poll.

    Each event reaches each eligible recipient at most once: a poll only
    returns the events it managed to mark as delivered to the caller.
    """

    def __init__(
        self,
        backend: RedisBackend,
        timeout: float = POLL_TIMEOUT_SECONDS,
        tick: float = POLL_TICK_SECONDS,
        batch_size: int = POLL_BATCH_SIZE,
    ):
        self.backend = backend
        self.timeout = timeout
        self.tick = tick
        self.batch_size = batch_size

    async def send(self, code: str, type: str, from_: str, to: Optional[str] = None, payload=None) -> str:
        code = normalize_code(code)
        if not type or type not in SIGNAL_TYPES:
            raise InvalidArgument(f"Invalid signal type: {type!r}")
        if not from_:
            raise InvalidArgument("Missing sender")

        event_id = await self.backend.add_signal(code, {
            "type": type,
            "from": from_,
            "to": to or None,
            "payload": payload,
        })
        logger.info(f"Signal {type} from {from_} to {to or '*'} stored in room {code} as {event_id}")
        return event_id

    async def poll(
        self,
        code: str,
        user_id: str,
        since: float = 0,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> PollResponse:
        """Wait up to ``timeout`` seconds for events addressed to ``user_id``.

        ``now`` in the result comes from the Redis clock right before the
        store read that produced it, or stays at ``since`` when a full batch
        came back; pass it back as ``since`` on the next call.
        """
        code = normalize_code(code)
        if not user_id:
            raise InvalidArgument("Missing userId")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        while True:
            now = await self.backend.read_cursor()
            rows = await self.backend.claim_signals(code, user_id, since or 0, self.batch_size)
            if rows:
                logger.debug(f"Delivering {len(rows)} signals in room {code} to {user_id}")
                if len(rows) >= self.batch_size:
                    # more may be waiting below `now`; keep the cursor so the next poll picks them up
                    now = since or 0
                return PollResponse(now=now, events=[_to_event(row) for row in rows])

            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            if is_disconnected is not None and await is_disconnected():
                logger.info(f"Poller {user_id} in room {code} disconnected, stopping wait")
                break
            await asyncio.sleep(min(self.tick, remaining))

        return PollResponse(now=now, events=[])
