"""Shared test fixtures: a private fake Redis server per test."""

import fakeredis
import httpx
import pytest

from app import create_app
from backend import RedisBackend
from services.membership import MembershipManager
from services.registry import RoomRegistry
from services.relay import SignalRelay

FAST_POLL_TIMEOUT = 0.3
FAST_POLL_TICK = 0.02


@pytest.fixture
async def redis_client():
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def backend(redis_client) -> RedisBackend:
    return RedisBackend(redis_client)


@pytest.fixture
def registry(backend) -> RoomRegistry:
    return RoomRegistry(backend)


@pytest.fixture
def membership(backend) -> MembershipManager:
    return MembershipManager(backend)


@pytest.fixture
def relay(backend) -> SignalRelay:
    return SignalRelay(backend, timeout=FAST_POLL_TIMEOUT, tick=FAST_POLL_TICK)


@pytest.fixture
async def room_code(registry) -> str:
    return await registry.create_room()


@pytest.fixture
def app(backend, relay):
    application = create_app(backend)
    application.state.relay = relay
    return application


@pytest.fixture
async def http(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
