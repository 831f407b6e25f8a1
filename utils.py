import random
import string
import time
from datetime import datetime, timezone

from constants import ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH


def generate_room_code(length: int = ROOM_CODE_LENGTH) -> str:
    return ''.join(random.choices(ROOM_CODE_ALPHABET, k=length))


def generate_user_id() -> str:
    # lightweight random id for guests
    return "u_" + ''.join(random.choices(string.ascii_lowercase + string.digits, k=8))


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def now_ms() -> float:
    """Current wall clock in epoch milliseconds, keeping sub-millisecond precision."""
    return time.time() * 1000


def from_ms(value: float) -> datetime:
    return datetime.fromtimestamp(float(value) / 1000, tz=timezone.utc)
