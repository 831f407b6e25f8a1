from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


RoomStatus = Literal["waiting", "active", "ended"]
Role = Literal["waiting", "caller", "callee"]


class Room(CamelModel):
    code: str
    created_at: datetime
    status: RoomStatus = "waiting"


class Participant(CamelModel):
    room_code: str
    user_id: str
    display_name: str
    joined_at: datetime
    last_active: datetime


class ParticipantSummary(CamelModel):
    user_id: str
    display_name: str


class CreateRoomResponse(CamelModel):
    code: str

class RoomDetailsResponse(CamelModel):
    room: Room
    participants: list[Participant]

class JoinRoomRequest(CamelModel):
    user_id: str
    display_name: Optional[str] = None

class JoinRoomResponse(CamelModel):
    role: Role
    participants: list[ParticipantSummary]

class MemberRequest(CamelModel):
    """Body of leave and heartbeat requests."""
    user_id: str
