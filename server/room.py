"""
Room management for Up-N-Down games.

A Room pairs a public code with the authoritative GameState for one game.
The RoomManager owns every room, routes each action to the engine, and
replaces the stored state with whatever the engine returns. It never edits a
GameState itself.

All RoomManager methods are synchronous. The server runs them on a single
event loop, so an action and the orphan sweep never interleave.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

import engine
from config import config
from constants import ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH
from errors import ErrorCode, RoomError
from game import GamePhase, GameSettings, GameState, build_deck, shuffle_deck

logger = logging.getLogger(__name__)


@dataclass
class RoomSummary:
    """What a prospective player sees before joining."""

    code: str
    host_name: str
    player_count: int
    max_players: int
    phase: GamePhase
    is_solitaire: bool
    settings: dict
    created_at: float

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "host_name": self.host_name,
            "player_count": self.player_count,
            "max_players": self.max_players,
            "phase": self.phase.value,
            "is_solitaire": self.is_solitaire,
            "settings": self.settings,
            "created_at": self.created_at,
        }


@dataclass
class Room:
    """
    A game room.

    Attributes:
        code: 6-character room code (e.g., "K7Q2ZD").
        state: Authoritative game state, replaced after every accepted action.
        created_at: Creation timestamp (epoch seconds).
        updated_at: Timestamp of the last accepted action.
    """

    code: str
    state: GameState
    created_at: float
    updated_at: float

    @property
    def occupant_ids(self) -> list[str]:
        return [p.id for p in self.state.players]

    def has_player(self, player_id: str) -> bool:
        return self.state.get_player(player_id) is not None

    def is_full(self) -> bool:
        return len(self.state.players) >= self.state.settings.max_players

    def summary(self) -> RoomSummary:
        host = self.state.get_player(self.state.host_id)
        return RoomSummary(
            code=self.code,
            host_name=host.name if host else "",
            player_count=len(self.state.players),
            max_players=self.state.settings.max_players,
            phase=self.state.phase,
            is_solitaire=self.state.is_solitaire,
            settings=self.state.settings.to_dict(),
            created_at=self.created_at,
        )


class RoomManager:
    """
    Manages all active game rooms.

    Args:
        rooms: Room store keyed by code. Defaults to a new dict.
        clock: Returns the current time in epoch seconds.
        rng: Random source for room codes, shuffles and card exchange.
        trigger_name: Display name that unlocks the card exchange ability.
    """

    def __init__(
        self,
        rooms: Optional[dict[str, Room]] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
        trigger_name: Optional[str] = None,
    ) -> None:
        self.rooms: dict[str, Room] = rooms if rooms is not None else {}
        self.clock = clock
        self.rng = rng or random.Random()
        self.trigger_name = trigger_name or config.EXCEPTION_TRIGGER_NAME

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def _generate_code(self, max_attempts: Optional[int] = None) -> str:
        """Generate a unique room code."""
        attempts = max_attempts or config.ROOM_CODE_ATTEMPTS
        for _ in range(attempts):
            code = "".join(self.rng.choices(ROOM_CODE_ALPHABET, k=ROOM_CODE_LENGTH))
            if code not in self.rooms:
                return code
        raise RoomError(ErrorCode.CODE_GENERATION_FAILED, "Could not generate a unique room code")

    def get_room(self, code: str) -> Optional[Room]:
        """Get a room by its code (case-insensitive)."""
        return self.rooms.get(code.upper())

    def _require_room(self, code: str) -> Room:
        room = self.get_room(code)
        if room is None:
            raise RoomError(ErrorCode.ROOM_NOT_FOUND, "Room not found")
        return room

    def rooms_for_player(self, player_id: str) -> list[Room]:
        """Every room the player is seated in."""
        return [room for room in self.rooms.values() if room.has_player(player_id)]

    def lookup_room(self, code: str) -> RoomSummary:
        """
        Summarize a room someone wants to join.

        Private rooms can be looked up by code; they are only hidden from
        the public list.
        """
        room = self._require_room(code)
        if room.state.phase != GamePhase.LOBBY:
            raise RoomError(ErrorCode.GAME_ALREADY_STARTED, "This game has already started.")
        if room.is_full():
            raise RoomError(ErrorCode.ROOM_FULL, "This game is full.")
        return room.summary()

    def list_joinable_rooms(self, connected_ids: Optional[Iterable[str]] = None) -> list[RoomSummary]:
        """
        Public rooms still waiting for players, newest first.

        Args:
            connected_ids: When given, rooms with no connected occupant are skipped.
        """
        connected = set(connected_ids) if connected_ids is not None else None
        joinable = []
        for room in self.rooms.values():
            if room.state.phase != GamePhase.LOBBY:
                continue
            if room.state.settings.private_game or room.is_full():
                continue
            if connected is not None and not connected.intersection(room.occupant_ids):
                continue
            joinable.append(room)

        joinable.sort(key=lambda r: r.created_at, reverse=True)
        return [room.summary() for room in joinable]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def create_room(
        self,
        owner_id: str,
        player_name: str,
        settings: GameSettings,
        is_solitaire: bool = False,
    ) -> Room:
        """Create a room with the owner seated as host."""
        code = self._generate_code()
        now = self.clock()
        state = engine.create_lobby_state(code, owner_id, player_name, settings, is_solitaire)
        room = Room(code=code, state=state, created_at=now, updated_at=now)
        self.rooms[code] = room

        logger.info(f"Room {code} created by {player_name} ({'solitaire' if is_solitaire else 'multiplayer'})")
        return room

    def join_room(self, player_id: str, code: str, name: str) -> Room:
        """Seat a player. Rejoining a room you already sit in is a no-op."""
        room = self._require_room(code)
        if room.has_player(player_id):
            return room

        if room.state.phase != GamePhase.LOBBY:
            raise RoomError(ErrorCode.GAME_ALREADY_STARTED, "This game has already started.")
        if room.is_full():
            raise RoomError(ErrorCode.ROOM_FULL, "This game just filled up. Please choose another game.")

        self._replace(room, engine.add_player(room.state, player_id, name))
        logger.info(f"{name} joined room {room.code}")
        return room

    def leave_room(self, player_id: str, code: str) -> Optional[Room]:
        """
        Unseat a player.

        Returns:
            The room, or None if it was deleted because nobody is left.
        """
        room = self._require_room(code)
        new_state = engine.remove_player(room.state, player_id)
        if new_state is None:
            self.remove_room(room.code)
            logger.info(f"Room {room.code} closed: last player left")
            return None

        self._replace(room, new_state)
        return room

    def remove_room(self, code: str) -> None:
        """Delete a room."""
        self.rooms.pop(code, None)

    # -------------------------------------------------------------------------
    # Game actions
    # -------------------------------------------------------------------------

    def _replace(self, room: Room, state: GameState) -> Room:
        room.state = state
        room.updated_at = self.clock()
        return room

    def start_game(self, player_id: str, code: str) -> Room:
        """Shuffle a fresh deck and start (host only)."""
        room = self._require_room(code)
        if room.state.host_id != player_id:
            raise RoomError(ErrorCode.NOT_HOST, "Only the host can start the game")

        deck = shuffle_deck(build_deck(room.state.settings), self.rng)
        new_state = engine.start_game(room.state, deck, trigger_name=self.trigger_name, now=self.clock())
        return self._replace(room, new_state)

    def play_card(self, player_id: str, code: str, card_id: str, pile_id: int) -> Room:
        room = self._require_room(code)
        return self._replace(room, engine.play_card(room.state, player_id, card_id, pile_id, now=self.clock()))

    def end_turn(self, player_id: str, code: str) -> Room:
        room = self._require_room(code)
        return self._replace(room, engine.end_turn(room.state, player_id, now=self.clock()))

    def use_exception(self, player_id: str, code: str, card_id: str) -> Room:
        room = self._require_room(code)
        return self._replace(room, engine.use_exception(room.state, player_id, card_id, rng=self.rng))

    def end_game(self, player_id: str, code: str) -> Room:
        """Return the room to its lobby (host only)."""
        room = self._require_room(code)
        return self._replace(room, engine.reset_game(room.state, player_id))

    def update_settings(self, player_id: str, code: str, settings: GameSettings) -> Room:
        room = self._require_room(code)
        return self._replace(room, engine.update_settings(room.state, player_id, settings))

    # -------------------------------------------------------------------------
    # Disconnects & cleanup
    # -------------------------------------------------------------------------

    def remove_disconnected_player(self, player_id: str) -> list[tuple[str, Optional[GameState]]]:
        """
        Unseat a disconnected player from every room not mid-game.

        Rooms mid-game keep the seat; the orphan sweep reclaims them if
        nobody comes back.

        Returns:
            (code, new state) per affected room; state is None if the room closed.
        """
        updates: list[tuple[str, Optional[GameState]]] = []
        for room in self.rooms_for_player(player_id):
            if room.state.phase == GamePhase.PLAYING:
                continue
            remaining = self.leave_room(player_id, room.code)
            updates.append((room.code, remaining.state if remaining else None))
        return updates

    def reap_orphaned_rooms(self, connected_ids: Iterable[str], now: Optional[float] = None) -> list[str]:
        """
        Delete rooms nobody connected is sitting in once they have idled long enough.

        Lobby rooms expire after LOBBY_ROOM_TTL_SECONDS, started or finished
        rooms after ACTIVE_ROOM_TTL_SECONDS, both measured from updated_at.

        Returns:
            Codes of deleted rooms.
        """
        now = self.clock() if now is None else now
        connected = set(connected_ids)
        reaped = []

        for code, room in list(self.rooms.items()):
            if connected.intersection(room.occupant_ids):
                continue
            ttl = (
                config.LOBBY_ROOM_TTL_SECONDS
                if room.state.phase == GamePhase.LOBBY
                else config.ACTIVE_ROOM_TTL_SECONDS
            )
            if now - room.updated_at >= ttl:
                del self.rooms[code]
                reaped.append(code)

        if reaped:
            logger.info(f"Reaped {len(reaped)} orphaned room(s): {', '.join(reaped)}")
        return reaped

    def stats(self) -> dict:
        """Room counts by phase."""
        counts = {phase.value: 0 for phase in GamePhase}
        for room in self.rooms.values():
            counts[room.state.phase.value] += 1
        return {"total": len(self.rooms), **counts}
