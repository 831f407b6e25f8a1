from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from errors import InvalidArgument
from logging_config import get_logger
from routers.dependencies import get_relay
from schemas.signals import PollResponse, SendSignalRequest
from services.relay import SignalRelay

logger = get_logger(__name__)

signals_router = APIRouter(prefix="/rooms", tags=["signals"])


@signals_router.post("/{code}/signal", status_code=204, response_class=Response)
async def send_signal(code: str, body: SendSignalRequest, relay: SignalRelay = Depends(get_relay)):
    # Body: { "type": "offer", "from": "u_a", "to": "u_b" | null, "payload": {...} }
    try:
        await relay.send(code, body.type, body.from_, to=body.to, payload=body.payload)
    except InvalidArgument as e:
        logger.warning(f"Rejected signal for room {code}: {e.detail}")
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except Exception as e:
        logger.error(f"Error storing {body.type} signal in room {code}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to store signal")
    return Response(status_code=204)


@signals_router.get("/{code}/events", response_model=PollResponse)
async def poll_events(
    code: str,
    request: Request,
    user_id: Optional[str] = Query(None, alias="userId"),
    since: float = Query(0, description="The `now` value returned by the previous poll, 0 on the first call"),
    relay: SignalRelay = Depends(get_relay),
):
    """Long poll: blocks until events for ``userId`` arrive or the wait bound elapses."""
    try:
        return await relay.poll(code, user_id, since, is_disconnected=request.is_disconnected)
    except InvalidArgument as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except Exception as e:
        logger.error(f"Error polling room {code} for {user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch events")
