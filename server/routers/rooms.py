"""
Public room API.

Read-only HTTP views of the lobby so a landing page can show open games
without opening a WebSocket.
"""

import logging

from fastapi import APIRouter, HTTPException, Path
from pydantic import BaseModel

from constants import ROOM_CODE_PATTERN
from errors import ErrorCode, RoomError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/rooms", tags=["rooms"])

# Service references (set during app initialization)
_room_manager = None
_connections = None


def set_room_dependencies(room_manager=None, connections=None):
    """Set dependencies for the room API."""
    global _room_manager, _connections
    _room_manager = room_manager
    _connections = connections


# =============================================================================
# Response Models
# =============================================================================


class RoomSummaryResponse(BaseModel):
    """A room as seen before joining."""
    code: str
    host_name: str
    player_count: int
    max_players: int
    phase: str
    is_solitaire: bool
    settings: dict
    created_at: float


class RoomListResponse(BaseModel):
    """Joinable public rooms, newest first."""
    rooms: list[RoomSummaryResponse]


# =============================================================================
# Endpoints
# =============================================================================


def _require_manager():
    if _room_manager is None:
        raise HTTPException(status_code=503, detail="Room service unavailable")
    return _room_manager


@router.get("", response_model=RoomListResponse)
async def list_rooms():
    """List public rooms still waiting for players."""
    manager = _require_manager()
    connected = _connections.ids() if _connections is not None else None
    rooms = manager.list_joinable_rooms(connected)
    return {"rooms": [summary.to_dict() for summary in rooms]}


@router.get("/{code}", response_model=RoomSummaryResponse)
async def lookup_room(code: str = Path(..., pattern=ROOM_CODE_PATTERN)):
    """Look up a room by code, including private rooms."""
    manager = _require_manager()
    try:
        return manager.lookup_room(code).to_dict()
    except RoomError as e:
        status_code = 404 if e.code == ErrorCode.ROOM_NOT_FOUND else 409
        raise HTTPException(status_code=status_code, detail=e.to_dict())
