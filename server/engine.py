"""
Authoritative turn state machine for Up-N-Down.

Every public function takes a GameState and returns a new one, or raises
EngineError and leaves the input untouched. Nothing here touches rooms,
connections or the clock beyond the optional `now` argument.

Game Flow:
    create_lobby_state -> add_player / remove_player / update_settings
    start_game -> play_card* -> end_turn -> play_card* -> ... -> WON | LOST
    reset_game (host) returns any started game to the lobby

Win/loss is evaluated after start_game, play_card and end_turn:
    1. All hands empty -> WON
    2. Active player has no legal play:
         solitaire   -> LOST
         multiplayer -> LOST only if the turn minimum is still unmet
"""

import logging
import random
import time
from dataclasses import replace
from typing import Optional

from constants import DEFAULT_EXCEPTION_TRIGGER_NAME
from errors import EngineError, ErrorCode, InvariantViolation
from evaluator import has_any_legal_play
from game import (
    Card,
    ExceptionMode,
    GamePhase,
    GameSettings,
    GameState,
    GameStatistics,
    Player,
    PlayerStatistics,
    create_foundation_piles,
)
from rules import is_legal_play, is_skip_play, play_distance, required_plays_this_turn

logger = logging.getLogger(__name__)


# -------------------------------------------------------------------------
# Helpers (operate on a working copy)
# -------------------------------------------------------------------------

def _now(now: Optional[float]) -> float:
    return time.time() if now is None else now


def _require_playing(state: GameState, action: str) -> None:
    if state.phase != GamePhase.PLAYING:
        raise EngineError(
            ErrorCode.GAME_NOT_PLAYING,
            f"Cannot {action} when game is not in playing phase",
        )


def _require_lobby(state: GameState, message: str) -> None:
    if state.phase != GamePhase.LOBBY:
        raise EngineError(ErrorCode.GAME_NOT_IN_LOBBY, message)


def _require_host(state: GameState, actor_id: str, message: str) -> None:
    if state.host_id != actor_id:
        raise EngineError(ErrorCode.NOT_HOST, message)


def _draw_one(draw_pile: list[Card]) -> Optional[Card]:
    if not draw_pile:
        return None
    return draw_pile.pop(0)


def _draw_to_hand(player: Player, draw_pile: list[Card], hand_size: int) -> None:
    while len(player.hand) < hand_size and draw_pile:
        player.hand.append(draw_pile.pop(0))


def _next_index_with_cards(players: list[Player], from_index: int) -> int:
    """Next player in join order who still holds a card, wrapping around."""
    if all(not player.hand for player in players):
        return from_index

    for offset in range(1, len(players) + 1):
        idx = (from_index + offset) % len(players)
        if players[idx].hand:
            return idx
    return from_index


def _mark_ended(state: GameState, now: float) -> None:
    if state.statistics.ended_at is None:
        state.statistics.ended_at = now


def _apply_outcome(state: GameState, now: float) -> None:
    """Set WON or LOST on a working copy if the game just ended."""
    if state.phase != GamePhase.PLAYING:
        return

    if state.all_hands_empty():
        state.phase = GamePhase.WON
        _mark_ended(state, now)
        logger.info(f"Game {state.game_id} won")
        return

    current = state.current_player()
    if current is None:
        return

    if state.is_solitaire:
        if not has_any_legal_play(current.hand, state.foundation_piles, state.draw_pile, auto_refill=True):
            state.phase = GamePhase.LOST
            _mark_ended(state, now)
            logger.info(f"Game {state.game_id} lost: no legal play in solitaire")
        return

    if has_any_legal_play(
        current.hand,
        state.foundation_piles,
        state.draw_pile,
        auto_refill=state.settings.auto_refill_hand,
    ):
        return

    # A player who already met the minimum may still pass on dead cards
    required = required_plays_this_turn(state.settings.min_cards_per_turn, len(state.draw_pile))
    if state.cards_played_this_turn < required:
        state.phase = GamePhase.LOST
        _mark_ended(state, now)
        logger.info(f"Game {state.game_id} lost: {current.name} has no legal play")


def check_invariants(state: GameState) -> None:
    """
    Defensive checks for states only a bug can produce.

    Run at turn boundaries, where the active player must hold cards unless
    every hand is empty.

    Raises:
        InvariantViolation: If a card appears twice or the index is stranded.
    """
    ids = [card.id for card in state.cards_in_play()]
    if len(ids) != len(set(ids)):
        raise InvariantViolation(f"Duplicate card ids in game {state.game_id}")

    if state.phase != GamePhase.PLAYING:
        return

    current = state.current_player()
    if current is None:
        raise InvariantViolation(
            f"current_player_index {state.current_player_index} out of range in game {state.game_id}"
        )
    if not current.hand and not state.all_hands_empty():
        raise InvariantViolation(
            f"Active player {current.id} has an empty hand while others still hold cards"
        )


def evaluate_outcome(state: GameState, now: Optional[float] = None) -> GameState:
    """Return a copy of state with win/loss applied."""
    next_state = state.copy()
    _apply_outcome(next_state, _now(now))
    return next_state


# -------------------------------------------------------------------------
# Lobby
# -------------------------------------------------------------------------

def create_lobby_state(
    game_id: str,
    host_id: str,
    host_name: str,
    settings: GameSettings,
    is_solitaire: bool = False,
) -> GameState:
    """Create a fresh lobby with the host seated."""
    return GameState(
        game_id=game_id,
        host_id=host_id,
        players=[Player(id=host_id, name=host_name, is_host=True)],
        foundation_piles=create_foundation_piles(settings),
        settings=replace(settings),
        is_solitaire=is_solitaire,
    )


def add_player(state: GameState, player_id: str, name: str) -> GameState:
    """
    Seat a player in the lobby.

    Rejoining with an already-seated id returns the state unchanged.
    """
    if state.get_player(player_id) is not None:
        return state

    if state.phase != GamePhase.LOBBY:
        raise EngineError(ErrorCode.GAME_ALREADY_STARTED, "This game has already started.")

    if len(state.players) >= state.settings.max_players:
        raise EngineError(ErrorCode.ROOM_FULL, "This game just filled up. Please choose another game.")

    next_state = state.copy()
    next_state.players.append(Player(id=player_id, name=name, is_host=False))
    return next_state


def remove_player(state: GameState, player_id: str) -> Optional[GameState]:
    """
    Unseat a player.

    Returns:
        The new state, or None if nobody is left.
    """
    if state.phase == GamePhase.PLAYING:
        raise EngineError(ErrorCode.LEAVE_DURING_GAME, "Leaving during an active game is not supported")

    if state.get_player(player_id) is None:
        raise EngineError(ErrorCode.PLAYER_NOT_FOUND, "Player is not in this game")

    next_state = state.copy()
    next_state.players = [p for p in next_state.players if p.id != player_id]
    if not next_state.players:
        return None

    if next_state.get_player(next_state.host_id) is None:
        next_state.host_id = next_state.players[0].id
    for player in next_state.players:
        player.is_host = player.id == next_state.host_id

    next_state.statistics.players.pop(player_id, None)
    next_state.exception_mode.enabled.pop(player_id, None)
    next_state.exception_mode.used_this_turn.pop(player_id, None)
    next_state.current_player_index = 0
    return next_state


def update_settings(state: GameState, actor_id: str, settings: GameSettings) -> GameState:
    """Replace lobby settings (host only)."""
    _require_lobby(state, "Settings can only be changed in lobby")
    _require_host(state, actor_id, "Only host can change settings")

    if state.is_solitaire:
        if settings.min_players != 1 or settings.max_players != 1 or not settings.auto_refill_hand:
            raise EngineError(
                ErrorCode.SOLITAIRE_SETTINGS_INVALID,
                "Solitaire requires one player and auto refill",
            )
    elif settings.min_players < 2 or settings.max_players < 2:
        raise EngineError(ErrorCode.INVALID_PLAYER_COUNT, "Multiplayer requires at least 2 players")

    if len(state.players) > settings.max_players:
        raise EngineError(ErrorCode.INVALID_PLAYER_COUNT, "Current player count exceeds new max players")
    if len(state.players) < settings.min_players:
        raise EngineError(ErrorCode.INVALID_PLAYER_COUNT, "Current player count is below new min players")

    next_state = state.copy()
    next_state.settings = replace(settings)
    next_state.foundation_piles = create_foundation_piles(settings)
    return next_state


# -------------------------------------------------------------------------
# Game lifecycle
# -------------------------------------------------------------------------

def start_game(
    state: GameState,
    deck: list[Card],
    trigger_name: str = DEFAULT_EXCEPTION_TRIGGER_NAME,
    now: Optional[float] = None,
) -> GameState:
    """
    Deal and start a game from the lobby.

    Args:
        state: Lobby state with players seated.
        deck: Cards to deal, already shuffled. Dealt from the front.
        trigger_name: Display name that unlocks the card exchange ability.
        now: Start timestamp (defaults to time.time()).

    Returns:
        A PLAYING state, or WON/LOST if the deal itself decides the game.
    """
    _require_lobby(state, "Game already started")
    settings = state.settings

    if state.is_solitaire:
        if len(state.players) != 1:
            raise EngineError(ErrorCode.SOLITAIRE_PLAYER_COUNT_INVALID, "Solitaire requires exactly one player")
        if settings.min_players != 1 or settings.max_players != 1:
            raise EngineError(
                ErrorCode.SOLITAIRE_SETTINGS_INVALID,
                "Solitaire requires min_players=1 and max_players=1",
            )
        if not settings.auto_refill_hand:
            raise EngineError(ErrorCode.SOLITAIRE_SETTINGS_INVALID, "Solitaire requires auto_refill_hand=true")
    elif not settings.min_players <= len(state.players) <= settings.max_players:
        raise EngineError(ErrorCode.INVALID_PLAYER_COUNT, "Player count is outside configured game limits")

    if sum(1 for p in state.players if p.id == state.host_id) != 1:
        raise EngineError(ErrorCode.HOST_NOT_IN_PLAYERS, "host_id must match exactly one player")

    started_at = _now(now)
    draw_pile = list(deck)
    players = [
        Player(id=p.id, name=p.name, hand=[], is_host=p.id == state.host_id)
        for p in state.players
    ]

    # Round-robin deal; a short deck deals what it has
    for _ in range(settings.hand_size):
        for player in players:
            card = _draw_one(draw_pile)
            if card is None:
                break
            player.hand.append(card)

    trigger = trigger_name.strip().casefold()
    exception_mode = ExceptionMode(
        enabled={p.id: p.name.strip().casefold() == trigger for p in players},
        used_this_turn={p.id: False for p in players},
    )

    next_state = replace(
        state.copy(),
        players=players,
        foundation_piles=create_foundation_piles(settings),
        draw_pile=draw_pile,
        current_player_index=0,
        phase=GamePhase.PLAYING,
        cards_played_this_turn=0,
        statistics=GameStatistics(
            players={p.id: PlayerStatistics() for p in players},
            started_at=started_at,
        ),
        exception_mode=exception_mode,
    )

    logger.info(
        f"Game {state.game_id} started: {len(players)} player(s), "
        f"{len(deck)} cards, {len(draw_pile)} left to draw"
    )

    _apply_outcome(next_state, started_at)
    check_invariants(next_state)
    return next_state


def play_card(
    state: GameState,
    actor_id: str,
    card_id: str,
    pile_id: int,
    now: Optional[float] = None,
) -> GameState:
    """
    Play a card from the actor's hand onto a foundation pile.

    In solitaire the only player may always act; in multiplayer only the
    active player may.
    """
    _require_playing(state, "play a card")

    actor_index = state.player_index(actor_id)
    if actor_index is None:
        raise EngineError(ErrorCode.PLAYER_NOT_FOUND, "Player not found in game")
    if not state.is_solitaire and actor_index != state.current_player_index:
        raise EngineError(ErrorCode.NOT_PLAYER_TURN, "Only the active player may play a card")

    card_index = state.players[actor_index].find_card(card_id)
    if card_index is None:
        raise EngineError(ErrorCode.CARD_NOT_FOUND, "Card does not exist in player hand")

    pile = state.get_pile(pile_id)
    if pile is None:
        raise EngineError(ErrorCode.PILE_NOT_FOUND, "Foundation pile does not exist")

    card = state.players[actor_index].hand[card_index]
    if not is_legal_play(card, pile):
        raise EngineError(ErrorCode.INVALID_PLAY, "Card cannot be played on selected foundation pile")

    next_state = state.copy()
    player = next_state.players[actor_index]
    player.hand.pop(card_index)

    stats = next_state.statistics.players.setdefault(actor_id, PlayerStatistics())
    stats.cards_played += 1
    stats.total_distance += play_distance(card, pile)
    if is_skip_play(card, pile):
        stats.special_plays += 1

    next_state.foundation_piles = [
        replace(p, top_card=card) if p.id == pile_id else p
        for p in next_state.foundation_piles
    ]
    next_state.cards_played_this_turn += 1

    if next_state.is_solitaire or next_state.settings.auto_refill_hand:
        replacement = _draw_one(next_state.draw_pile)
        if replacement is not None:
            player.hand.append(replacement)

    logger.debug(f"{player.name} played {card.value} on pile {pile_id} in game {state.game_id}")

    _apply_outcome(next_state, _now(now))
    return next_state


def end_turn(state: GameState, actor_id: str, now: Optional[float] = None) -> GameState:
    """
    End the active player's turn and pass to the next player holding cards.

    Solitaire has no turn boundary, so the state comes back unchanged.
    """
    _require_playing(state, "end turn")

    if state.is_solitaire:
        return state

    current = state.current_player()
    if current is None or current.id != actor_id:
        raise EngineError(ErrorCode.NOT_PLAYER_TURN, "Only active player can end turn")

    required = required_plays_this_turn(state.settings.min_cards_per_turn, len(state.draw_pile))
    if state.cards_played_this_turn < required:
        raise EngineError(
            ErrorCode.MIN_CARDS_NOT_MET,
            f"You must play at least {required} card(s) before ending your turn",
        )

    next_state = state.copy()
    next_state.cards_played_this_turn = 0
    next_state.exception_mode.used_this_turn = {
        pid: False for pid in next_state.exception_mode.used_this_turn
    }
    next_state.statistics.turn_count += 1

    ending_player = next_state.players[next_state.current_player_index]
    if not next_state.settings.auto_refill_hand:
        _draw_to_hand(ending_player, next_state.draw_pile, next_state.settings.hand_size)

    next_state.current_player_index = _next_index_with_cards(
        next_state.players, next_state.current_player_index
    )

    _apply_outcome(next_state, _now(now))
    check_invariants(next_state)
    return next_state


def use_exception(
    state: GameState,
    actor_id: str,
    card_id: str,
    rng: Optional[random.Random] = None,
) -> GameState:
    """
    Trade a held card back into the draw pile for a fresh draw.

    The traded card goes to a uniformly random position of the draw pile
    (after the replacement has been drawn). Once per player per turn.
    Win/loss is not re-evaluated.
    """
    _require_playing(state, "exchange a card")

    player = state.get_player(actor_id)
    if player is None:
        raise EngineError(ErrorCode.PLAYER_NOT_FOUND, "Player not found in game")
    if not state.exception_mode.enabled.get(actor_id, False):
        raise EngineError(ErrorCode.EXCEPTION_NOT_ALLOWED, "Card exchange is not enabled for this player")
    if state.exception_mode.used_this_turn.get(actor_id, False):
        raise EngineError(ErrorCode.EXCEPTION_ALREADY_USED, "Card exchange already used this turn")
    if not state.draw_pile:
        raise EngineError(ErrorCode.DRAW_PILE_EMPTY, "Draw pile is empty")

    card_index = player.find_card(card_id)
    if card_index is None:
        raise EngineError(ErrorCode.CARD_NOT_FOUND, "Card does not exist in player hand")

    next_state = state.copy()
    next_player = next_state.get_player(actor_id)
    traded = next_player.hand.pop(card_index)
    next_player.hand.append(next_state.draw_pile.pop(0))

    position = (rng or random).randint(0, len(next_state.draw_pile))
    next_state.draw_pile.insert(position, traded)

    next_state.exception_mode.used_this_turn[actor_id] = True
    next_state.statistics.players.setdefault(actor_id, PlayerStatistics()).exception_uses += 1

    logger.debug(f"{next_player.name} traded a card back into the draw pile in game {state.game_id}")
    return next_state


def reset_game(state: GameState, actor_id: str) -> GameState:
    """Return a started or finished game to the lobby (host only)."""
    _require_host(state, actor_id, "Only host can end game")
    if state.phase == GamePhase.LOBBY:
        raise EngineError(ErrorCode.GAME_NOT_PLAYING, "Game is already in lobby")

    next_state = state.copy()
    for player in next_state.players:
        player.hand = []
    next_state.foundation_piles = create_foundation_piles(next_state.settings)
    next_state.draw_pile = []
    next_state.current_player_index = 0
    next_state.cards_played_this_turn = 0
    next_state.statistics = GameStatistics()
    next_state.exception_mode = ExceptionMode()
    next_state.phase = GamePhase.LOBBY

    logger.info(f"Game {state.game_id} reset to lobby by host")
    return next_state
