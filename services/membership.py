from backend import RedisBackend
from constants import MAX_PARTICIPANTS
from errors import InvalidArgument, NotFound, RoomFull
from logging_config import get_logger
from schemas.rooms import JoinRoomResponse, Participant, ParticipantSummary
from utils import from_ms, normalize_code, now_ms

logger = get_logger(__name__)


def assign_role(user_id: str, participant_ids: list) -> str:
    """Derive ``user_id``'s negotiation role from the room's participants.

    Alone in the room the user is ``waiting``. With a peer, the greater id
    (plain string comparison) is the ``callee`` and the other the ``caller``,
    so both sides reach the same answer without talking to each other.
    """
    peers = [p for p in participant_ids if p != user_id]
    if not peers:
        return "waiting"
    return "callee" if user_id > peers[0] else "caller"


class MembershipManager:
    def __init__(self, backend: RedisBackend, max_participants: int = MAX_PARTICIPANTS):
        self.backend = backend
        self.max_participants = max_participants

    async def list_participants(self, code: str) -> list[Participant]:
        code = normalize_code(code)
        rows = await self.backend.get_participants(code)
        return [
            Participant(
                room_code=row.get("room_code", code),
                user_id=row["user_id"],
                display_name=row.get("display_name") or "",
                joined_at=from_ms(row["joined_at"]),
                last_active=from_ms(row.get("last_active", row["joined_at"])),
            )
            for row in rows
        ]

    async def join(self, code: str, user_id: str, display_name: str = None) -> JoinRoomResponse:
        code = normalize_code(code)
        if not user_id:
            raise InvalidArgument("Missing userId")

        room = await self.backend.get_room(code)
        if not room:
            logger.warning(f"Join failed: Room {code} not found")
            raise NotFound()

        display_name = (display_name or "").strip() or f"Guest-{user_id[-4:]}"
        admitted = await self.backend.upsert_participant(code, user_id, display_name, now_ms(), self.max_participants)
        if not admitted:
            logger.warning(f"Join failed: Room {code} is full, rejected {user_id}")
            raise RoomFull()

        participants = await self.list_participants(code)
        role = assign_role(user_id, [p.user_id for p in participants])
        logger.info(f"User {user_id} ({display_name}) joined room {code} as {role} ({len(participants)}/{self.max_participants})")
        return JoinRoomResponse(
            role=role,
            participants=[ParticipantSummary(user_id=p.user_id, display_name=p.display_name) for p in participants],
        )

    async def leave(self, code: str, user_id: str):
        code = normalize_code(code)
        removed = await self.backend.remove_participant(code, user_id)
        if removed:
            logger.info(f"User {user_id} left room {code}")
        else:
            logger.debug(f"Leave for {user_id} in room {code}: not a participant")

    async def heartbeat(self, code: str, user_id: str):
        code = normalize_code(code)
        if not await self.backend.touch_participant(code, user_id, now_ms()):
            logger.debug(f"Heartbeat from {user_id} ignored: not a participant of room {code}")
