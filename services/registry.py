from backend import RedisBackend
from constants import ROOM_CODE_LENGTH, ROOM_CREATE_ATTEMPTS, ROOM_TTL_SECONDS
from errors import NotFound, ResourceExhausted
from logging_config import get_logger
from schemas.rooms import Room
from utils import from_ms, generate_room_code, normalize_code, now_ms

logger = get_logger(__name__)


class RoomRegistry:
    def __init__(
        self,
        backend: RedisBackend,
        code_length: int = ROOM_CODE_LENGTH,
        attempts: int = ROOM_CREATE_ATTEMPTS,
        room_ttl: int = ROOM_TTL_SECONDS,
        code_factory=generate_room_code,
    ):
        self.backend = backend
        self.code_length = code_length
        self.attempts = attempts
        self.room_ttl = room_ttl
        self.code_factory = code_factory

    async def create_room(self) -> str:
        """Create a room under a fresh random code, retrying on collisions."""
        for attempt in range(1, self.attempts + 1):
            code = normalize_code(self.code_factory(self.code_length))
            created = await self.backend.create_room(code, {
                "code": code,
                "created_at": now_ms(),
                "status": "waiting",
            }, ttl=self.room_ttl)
            if created:
                logger.info(f"Room {code} created (attempt {attempt})")
                return code
            logger.warning(f"Room code collision on {code} (attempt {attempt}/{self.attempts})")
        logger.error(f"Could not allocate a room code after {self.attempts} attempts")
        raise ResourceExhausted()

    async def get_room(self, code: str) -> Room:
        code = normalize_code(code)
        room = await self.backend.get_room(code)
        if not room:
            raise NotFound()
        return Room(
            code=room["code"],
            created_at=from_ms(room["created_at"]),
            status=room.get("status", "waiting"),
        )
