from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import Field

from schemas.rooms import CamelModel

SignalType = Literal["ready", "offer", "answer", "candidate", "bye"]


class SignalEvent(CamelModel):
    type: SignalType
    from_: str = Field(alias="from")
    to: Optional[str] = None
    # opaque negotiation data, stored and forwarded untouched
    payload: Any = None
    created_at: datetime


class SendSignalRequest(CamelModel):
    # type and from are validated by the relay so a missing one is a plain 400
    type: Optional[str] = None
    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None
    payload: Any = None


class PollResponse(CamelModel):
    now: float
    events: list[SignalEvent] = []
