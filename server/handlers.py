"""WebSocket message handlers for the Up-N-Down server.

Each handler corresponds to a single action type from the client and is
dispatched via the HANDLERS dict. process_message wraps every handler in the
same pipeline:

    rate limit -> payload validation -> room manager -> ack -> broadcast

The acting client always gets exactly one ack per message. Other occupants
of the room only hear about accepted actions, as a full game_updated
snapshot. Handlers never await between reading and replacing room state, so
each accepted action is atomic on the event loop.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from fastapi import WebSocket

from config import config
from errors import (
    EXPECTED_CATEGORIES,
    ErrorCode,
    RateLimitExceeded,
    RoomError,
    UpDownError,
)
from logging_config import log_context
from room import Room, RoomManager
from schemas import (
    CreateRoomPayload,
    JoinRoomPayload,
    PlayCardPayload,
    RoomCodePayload,
    UpdateSettingsPayload,
    UseExceptionPayload,
    parse_payload,
    resolve_settings,
)
from services.ratelimit import ActionRateLimiter

logger = logging.getLogger(__name__)


@dataclass
class ConnectionContext:
    """State tracked per WebSocket connection."""

    websocket: WebSocket
    connection_id: str
    player_id: str
    current_room_code: Optional[str] = None


class ConnectionRegistry:
    """Live connections keyed by player id."""

    def __init__(self) -> None:
        self._connections: dict[str, ConnectionContext] = {}

    def register(self, ctx: ConnectionContext) -> None:
        self._connections[ctx.player_id] = ctx

    def unregister(self, player_id: str) -> None:
        self._connections.pop(player_id, None)

    def get(self, player_id: str) -> Optional[ConnectionContext]:
        return self._connections.get(player_id)

    def ids(self) -> set[str]:
        return set(self._connections)

    def contexts(self) -> list[ConnectionContext]:
        return list(self._connections.values())

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, player_id: str) -> bool:
        return player_id in self._connections

    async def send(self, player_id: str, message: dict) -> bool:
        """Send to one player. Returns False if they are gone."""
        ctx = self._connections.get(player_id)
        if ctx is None:
            return False
        try:
            await ctx.websocket.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Send to {player_id} failed: {e}")
            return False

    async def broadcast(self, player_ids: Iterable[str], message: dict) -> None:
        for player_id in player_ids:
            await self.send(player_id, message)


@dataclass
class ActionResult:
    """
    Outcome of an accepted action.

    Attributes:
        data: Ack payload for the acting client.
        snapshot: Game state to broadcast, or None if nothing changed for others.
        recipients: Occupants to broadcast to, captured with the snapshot.
    """

    data: dict
    snapshot: Optional[dict] = None
    recipients: list[str] = field(default_factory=list)


def _room_result(room: Room, ctx: ConnectionContext, data: Optional[dict] = None) -> ActionResult:
    snapshot = room.state.to_dict()
    return ActionResult(
        data={**(data or {}), "room_code": room.code, "game_state": snapshot},
        snapshot=snapshot,
        recipients=[pid for pid in room.occupant_ids if pid != ctx.player_id],
    )


def _current_room_code(ctx: ConnectionContext) -> str:
    if ctx.current_room_code is None:
        raise RoomError(ErrorCode.ROOM_NOT_FOUND, "You are not in a room")
    return ctx.current_room_code


# ---------------------------------------------------------------------------
# Lobby / Room handlers
# ---------------------------------------------------------------------------

async def handle_create_room(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> ActionResult:
    payload = parse_payload(CreateRoomPayload, data)
    settings = resolve_settings(
        payload.settings,
        config.game_defaults.to_dict(solitaire=payload.is_solitaire),
        payload.is_solitaire,
    )
    room = room_manager.create_room(ctx.player_id, payload.player_name, settings, payload.is_solitaire)
    ctx.current_room_code = room.code
    return _room_result(room, ctx, {"player_id": ctx.player_id})


async def handle_join_room(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> ActionResult:
    payload = parse_payload(JoinRoomPayload, data)
    room = room_manager.join_room(ctx.player_id, payload.code, payload.player_name)
    ctx.current_room_code = room.code
    return _room_result(room, ctx, {"player_id": ctx.player_id})


async def handle_list_rooms(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, connections: ConnectionRegistry, **kw) -> ActionResult:
    rooms = room_manager.list_joinable_rooms(connections.ids())
    return ActionResult(data={"rooms": [summary.to_dict() for summary in rooms]})


async def handle_lookup_room(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> ActionResult:
    payload = parse_payload(RoomCodePayload, data)
    return ActionResult(data={"room": room_manager.lookup_room(payload.code).to_dict()})


async def handle_update_settings(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> ActionResult:
    payload = parse_payload(UpdateSettingsPayload, data)
    code = _current_room_code(ctx)
    room = room_manager.get_room(code)
    if room is None:
        raise RoomError(ErrorCode.ROOM_NOT_FOUND, "Room not found")
    settings = resolve_settings(payload.settings, room.state.settings.to_dict(), room.state.is_solitaire)
    return _room_result(room_manager.update_settings(ctx.player_id, code, settings), ctx)


async def handle_leave_room(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> ActionResult:
    code = _current_room_code(ctx)
    room = room_manager.leave_room(ctx.player_id, code)
    ctx.current_room_code = None
    if room is None:
        return ActionResult(data={"room_code": code, "room_closed": True})

    snapshot = room.state.to_dict()
    return ActionResult(
        data={"room_code": code, "room_closed": False},
        snapshot=snapshot,
        recipients=room.occupant_ids,
    )


# ---------------------------------------------------------------------------
# Game handlers
# ---------------------------------------------------------------------------

async def handle_start_game(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> ActionResult:
    room = room_manager.start_game(ctx.player_id, _current_room_code(ctx))
    return _room_result(room, ctx)


async def handle_play_card(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> ActionResult:
    payload = parse_payload(PlayCardPayload, data)
    room = room_manager.play_card(ctx.player_id, _current_room_code(ctx), payload.card_id, payload.pile_id)
    return _room_result(room, ctx)


async def handle_end_turn(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> ActionResult:
    room = room_manager.end_turn(ctx.player_id, _current_room_code(ctx))
    return _room_result(room, ctx)


async def handle_use_exception(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> ActionResult:
    payload = parse_payload(UseExceptionPayload, data)
    room = room_manager.use_exception(ctx.player_id, _current_room_code(ctx), payload.card_id)
    return _room_result(room, ctx)


async def handle_end_game(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> ActionResult:
    room = room_manager.end_game(ctx.player_id, _current_room_code(ctx))
    return _room_result(room, ctx)


# ---------------------------------------------------------------------------
# Handler dispatch table
# ---------------------------------------------------------------------------

HANDLERS = {
    "create_room": handle_create_room,
    "join_room": handle_join_room,
    "list_rooms": handle_list_rooms,
    "lookup_room": handle_lookup_room,
    "update_settings": handle_update_settings,
    "leave_room": handle_leave_room,
    "start_game": handle_start_game,
    "play_card": handle_play_card,
    "end_turn": handle_end_turn,
    "use_exception": handle_use_exception,
    "end_game": handle_end_game,
}


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def _ack_ok(action: str, request_id: Any, data: dict) -> dict:
    return {
        "type": "ack",
        "action": action,
        "request_id": request_id,
        "ok": True,
        "data": data,
    }


def _ack_error(action: Optional[str], request_id: Any, error: UpDownError) -> dict:
    ack = {
        "type": "ack",
        "action": action,
        "request_id": request_id,
        "ok": False,
        "error": error.message,
        "code": error.code.value,
    }
    if isinstance(error, RateLimitExceeded):
        ack["retry_after"] = error.retry_after
    return ack


async def process_message(
    data: Any,
    ctx: ConnectionContext,
    *,
    room_manager: RoomManager,
    connections: ConnectionRegistry,
    limiter: ActionRateLimiter,
) -> None:
    """Run one inbound message through the gateway pipeline."""
    if not isinstance(data, dict):
        error = UpDownError(ErrorCode.INVALID_PAYLOAD, "Message must be a JSON object")
        await ctx.websocket.send_json(_ack_error(None, None, error))
        return

    action = data.get("type")
    request_id = data.get("request_id")

    if not isinstance(action, str):
        error = UpDownError(ErrorCode.INVALID_PAYLOAD, "Message type must be a string")
        await ctx.websocket.send_json(_ack_error(None, request_id, error))
        return

    with log_context(request_id=str(request_id) if request_id is not None else None,
                     player_id=ctx.player_id,
                     room_code=ctx.current_room_code):
        handler = HANDLERS.get(action)
        if handler is None:
            logger.debug(f"Unknown action: {action!r}")
            error = UpDownError(ErrorCode.UNKNOWN_ACTION, f"Unknown action: {action}")
            await ctx.websocket.send_json(_ack_error(action, request_id, error))
            return

        result: Optional[ActionResult] = None
        try:
            limiter.check(ctx.connection_id, action)
            result = await handler(data, ctx, room_manager=room_manager, connections=connections)
        except RateLimitExceeded as e:
            logger.info(f"Rate limited {action}: retry after {e.retry_after}s")
            ack = _ack_error(action, request_id, e)
        except UpDownError as e:
            if e.category in EXPECTED_CATEGORIES:
                logger.debug(f"Rejected {action}: {e}")
            else:
                logger.info(f"Rejected {action}: {e}")
            ack = _ack_error(action, request_id, e)
        except Exception:
            logger.exception(f"Unhandled error processing {action}")
            ack = _ack_error(action, request_id, UpDownError(ErrorCode.INTERNAL_ERROR, "Internal server error"))
        else:
            ack = _ack_ok(action, request_id, result.data)

        await ctx.websocket.send_json(ack)

        if result is not None and result.snapshot is not None and result.recipients:
            await connections.broadcast(
                result.recipients,
                {"type": "game_updated", "game_state": result.snapshot},
            )


async def handle_disconnect(
    ctx: ConnectionContext,
    *,
    room_manager: RoomManager,
    connections: ConnectionRegistry,
    limiter: ActionRateLimiter,
) -> None:
    """Forget the connection and unseat it from rooms that have not started."""
    connections.unregister(ctx.player_id)
    limiter.forget(ctx.connection_id)

    pending = []
    for code, state in room_manager.remove_disconnected_player(ctx.player_id):
        if state is None:
            logger.info(f"Room {code} closed after disconnect")
            continue
        pending.append(([p.id for p in state.players], {"type": "game_updated", "game_state": state.to_dict()}))

    for recipients, message in pending:
        await connections.broadcast(recipients, message)

    logger.debug(f"Connection {ctx.connection_id} closed")
