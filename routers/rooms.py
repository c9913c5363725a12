from fastapi import APIRouter, HTTPException, Request

from codes import canonical_room_code, validate_room_code
from logging_config import get_logger
from schemas.rooms import RoomDetailsResponse

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


@rooms_router.get("/{room_code}", response_model=RoomDetailsResponse)
async def get_room_details(room_code: str, request: Request):
    """
    Look up a live room so a viewer can check a typed code before joining.

    The code is normalized the same way join-room does it, so "ab12-cd" finds
    room AB12CD. The lookup does not count as room activity.
    """
    client_host = request.client.host if request.client else 'unknown'
    code = canonical_room_code(room_code)
    logger.info(f"Room details request for {code} from {client_host}")

    if not validate_room_code(code):
        logger.warning(f"Room details failed: invalid code {room_code!r}")
        raise HTTPException(status_code=400, detail="Invalid room code")

    room = request.app.state.relay.rooms.peek_room(code)
    if not room:
        logger.warning(f"Room details failed: Room {code} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    return RoomDetailsResponse(
        room_code=room.code,
        viewer_count=room.viewer_count,
        has_host=room.host_id is not None,
        created_at=room.created_at.isoformat(),
    )
