import asyncio
from typing import Any, Awaitable, Callable, Optional

import httpx

from constants import (
    HEARTBEAT_INTERVAL_SECONDS,
    POLL_BACKOFF_MAX_SECONDS,
    POLL_BACKOFF_STEP_SECONDS,
    POLL_TIMEOUT_SECONDS,
)
from errors import ERRORS_BY_STATUS, SignalingError
from logging_config import get_logger
from utils import generate_user_id, normalize_code

logger = get_logger(__name__)

EventHandler = Callable[[dict], Awaitable[None]]


def backoff_delay(retry_count: int) -> float:
    """Wait before the next poll after ``retry_count`` consecutive failures (0-based)."""
    return min(POLL_BACKOFF_STEP_SECONDS * (retry_count + 1), POLL_BACKOFF_MAX_SECONDS)


def _raise_for_status(response: httpx.Response):
    if response.is_success:
        return
    error_class = ERRORS_BY_STATUS.get(response.status_code)
    if error_class is None:
        response.raise_for_status()
    try:
        detail = response.json().get("detail")
    except ValueError:
        detail = response.text or None
    raise error_class(detail)


class SignalingClient:
    """One participant's view of the signaling service.

    Keeps the poll cursor and the peer's id between calls. Events are handed
    to the handler one at a time, in the order the server returned them.
    """

    def __init__(self, http: httpx.AsyncClient, user_id: str = None, display_name: str = None):
        self.http = http
        self.user_id = user_id or generate_user_id()
        self.display_name = display_name
        self.code: Optional[str] = None
        self.role: Optional[str] = None
        self.peer_id: Optional[str] = None
        self.since: float = 0

    @classmethod
    def connect(cls, base_url: str, user_id: str = None, display_name: str = None) -> "SignalingClient":
        # read timeout must outlast the server side long poll
        timeout = httpx.Timeout(10.0, read=POLL_TIMEOUT_SECONDS + 10.0)
        return cls(httpx.AsyncClient(base_url=base_url, timeout=timeout), user_id, display_name)

    async def aclose(self):
        await self.http.aclose()

    async def create_room(self) -> str:
        response = await self.http.post("/rooms")
        _raise_for_status(response)
        return response.json()["code"]

    async def get_room(self, code: str) -> dict:
        response = await self.http.get(f"/rooms/{normalize_code(code)}")
        _raise_for_status(response)
        return response.json()

    async def join(self, code: str) -> dict:
        """Join ``code``, remember role and peer, and announce readiness."""
        code = normalize_code(code)
        response = await self.http.post(f"/rooms/{code}/join", json={
            "userId": self.user_id,
            "displayName": self.display_name,
        })
        _raise_for_status(response)
        data = response.json()
        self.code = code
        self.role = data["role"]
        self.since = 0
        self.peer_id = next((p["userId"] for p in data["participants"] if p["userId"] != self.user_id), None)
        logger.info(f"Joined room {code} as {self.role}, peer: {self.peer_id}")
        await self.send("ready", to=self.peer_id)
        return data

    async def send(self, type: str, to: Optional[str] = None, payload: Any = None):
        response = await self.http.post(f"/rooms/{self.code}/signal", json={
            "type": type,
            "from": self.user_id,
            "to": to,
            "payload": payload,
        })
        _raise_for_status(response)

    async def heartbeat(self):
        response = await self.http.post(f"/rooms/{self.code}/heartbeat", json={"userId": self.user_id})
        _raise_for_status(response)

    async def keepalive(self, interval: float = HEARTBEAT_INTERVAL_SECONDS):
        """Heartbeat every ``interval`` seconds until cancelled."""
        while True:
            try:
                await self.heartbeat()
            except httpx.HTTPError as e:
                logger.warning(f"Heartbeat for room {self.code} failed: {e}")
            await asyncio.sleep(interval)

    async def poll(self) -> list:
        """One long poll. Advances the cursor and returns the events received."""
        response = await self.http.get(f"/rooms/{self.code}/events", params={
            "userId": self.user_id,
            "since": self.since,
        })
        _raise_for_status(response)
        data = response.json()
        self.since = data["now"]
        return data["events"]

    async def listen(self, handler: EventHandler, stop: asyncio.Event, sleep=asyncio.sleep):
        """Poll until ``stop`` is set, re-polling right away after a timeout
        and backing off after transport failures."""
        retry_count = 0
        while not stop.is_set():
            try:
                events = await self.poll()
            except (httpx.HTTPError, SignalingError) as e:
                delay = backoff_delay(retry_count)
                retry_count += 1
                logger.warning(f"Poll in room {self.code} failed ({e}), retrying in {delay}s")
                await sleep(delay)
                continue
            retry_count = 0
            for event in events:
                if event["type"] == "ready" and not self.peer_id:
                    self.peer_id = event["from"]
                await handler(event)
                if event["type"] == "bye":
                    logger.info(f"Peer {event['from']} said bye in room {self.code}")

    async def leave(self):
        """Tell the peer goodbye, then leave. Both steps are best effort."""
        if not self.code:
            return
        try:
            await self.send("bye", to=self.peer_id)
        except (httpx.HTTPError, SignalingError) as e:
            logger.warning(f"Could not send bye in room {self.code}: {e}")
        try:
            response = await self.http.request("DELETE", f"/rooms/{self.code}/join", json={"userId": self.user_id})
            _raise_for_status(response)
        except (httpx.HTTPError, SignalingError) as e:
            logger.warning(f"Could not leave room {self.code}: {e}")
        logger.info(f"Left room {self.code}")
        self.role = None
        self.peer_id = None
