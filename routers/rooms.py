from fastapi import APIRouter, Depends, HTTPException, Request, Response

from errors import NotFound, ResourceExhausted, RoomFull, InvalidArgument
from logging_config import get_logger
from routers.dependencies import get_membership, get_registry
from schemas.rooms import CreateRoomResponse, JoinRoomRequest, JoinRoomResponse, MemberRequest, RoomDetailsResponse
from services.membership import MembershipManager
from services.registry import RoomRegistry

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


@rooms_router.post("", response_model=CreateRoomResponse)
async def create_room(request: Request, registry: RoomRegistry = Depends(get_registry)):
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room creation request from {client_host}")
    try:
        code = await registry.create_room()
    except ResourceExhausted as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except Exception as e:
        logger.error(f"Error creating room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create room")
    return CreateRoomResponse(code=code)


@rooms_router.get("/{code}", response_model=RoomDetailsResponse)
async def get_room_details(
    code: str,
    registry: RoomRegistry = Depends(get_registry),
    membership: MembershipManager = Depends(get_membership),
):
    """Room record plus its current participants."""
    try:
        room = await registry.get_room(code)
        participants = await membership.list_participants(room.code)
    except NotFound as e:
        logger.warning(f"Room details failed: Room {code} not found")
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except Exception as e:
        logger.error(f"Error loading room {code}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load room")
    logger.info(f"Room details retrieved for {room.code}: {len(participants)} participants")
    return RoomDetailsResponse(room=room, participants=participants)


@rooms_router.post("/{code}/join", response_model=JoinRoomResponse)
async def join_room(code: str, body: JoinRoomRequest, membership: MembershipManager = Depends(get_membership)):
    # Body: { "userId": "u_x1y2z3", "displayName": "optional" }
    # Response 200: { "role": "waiting" | "caller" | "callee", "participants": [{ "userId", "displayName" }] }
    logger.info(f"Join room request for {code}, userId: {body.user_id}, displayName: {body.display_name}")
    try:
        return await membership.join(code, body.user_id, body.display_name)
    except (NotFound, RoomFull, InvalidArgument) as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except Exception as e:
        logger.error(f"Error joining room {code} as {body.user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to join room")


async def _leave(code: str, user_id: str, membership: MembershipManager):
    try:
        await membership.leave(code, user_id)
    except Exception as e:
        logger.error(f"Error removing {user_id} from room {code}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to leave room")
    return Response(status_code=204)


@rooms_router.delete("/{code}/join", status_code=204, response_class=Response)
async def leave_room(code: str, body: MemberRequest, membership: MembershipManager = Depends(get_membership)):
    return await _leave(code, body.user_id, membership)


# Same as DELETE /join, reachable from navigator.sendBeacon on tab teardown
@rooms_router.post("/{code}/leave", status_code=204, response_class=Response)
async def leave_room_beacon(code: str, body: MemberRequest, membership: MembershipManager = Depends(get_membership)):
    return await _leave(code, body.user_id, membership)


@rooms_router.post("/{code}/heartbeat", status_code=204, response_class=Response)
async def heartbeat(code: str, body: MemberRequest, membership: MembershipManager = Depends(get_membership)):
    try:
        await membership.heartbeat(code, body.user_id)
    except Exception as e:
        logger.error(f"Error recording heartbeat of {body.user_id} in room {code}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to record heartbeat")
    return Response(status_code=204)
