from fastapi import Request

from services.membership import MembershipManager
from services.registry import RoomRegistry
from services.relay import SignalRelay


def get_registry(request: Request) -> RoomRegistry:
    return request.app.state.registry


def get_membership(request: Request) -> MembershipManager:
    return request.app.state.membership


def get_relay(request: Request) -> SignalRelay:
    return request.app.state.relay
