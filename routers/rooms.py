from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request

from constants import MAX_ROOM_USERS
from errors import RoomError
from logging_config import get_logger
from schemas.rooms import HealthResponse, RoomDetailsResponse

logger = get_logger(__name__)

api_router = APIRouter(prefix="/api", tags=["rooms"])


@api_router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    registry = request.app.state.registry
    connections = request.app.state.connections
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        rooms=registry.room_count,
        connections=connections.count,
    )


@api_router.get("/room/{room_key}", response_model=RoomDetailsResponse)
async def get_room_details(room_key: str, request: Request):
    """
    Get room metadata.

    Returns:
    - roomKey: Room key chosen by the clients
    - fileCount / noteCount: Items in the room document
    - userCount: Connections currently in the room
    - maxUsers: Admission cap
    - createdAt / lastActivity: ISO timestamps
    """
    client_host = request.client.host if request.client else 'unknown'
    logger.info(f"Room details request for {room_key} from {client_host}")

    try:
        room = await request.app.state.store.read(room_key)
    except RoomError as e:
        logger.error(f"Error reading room {room_key}: {e.message}")
        raise HTTPException(status_code=500, detail="Server error")
    if room is None:
        logger.warning(f"Room details failed: Room {room_key} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    return RoomDetailsResponse(
        room_key=room.room_key,
        file_count=len(room.files),
        note_count=len(room.notes),
        user_count=len(request.app.state.registry.members_of(room_key)),
        max_users=MAX_ROOM_USERS,
        created_at=room.created_at,
        last_activity=room.last_activity,
    )
