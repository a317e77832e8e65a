"""
Game data model for Up-N-Down.

This module holds the card, pile, player and game state types shared by the
engine, the room manager and the gateway, plus the deck and foundation pile
initializers.

Up-N-Down Rules Summary:
    - Every card carries a distinct integer value from a configurable range
    - Four shared foundation piles: two ascending, two descending
    - Players take turns playing cards from their hands onto the piles
    - A card may go "backwards" on a pile only if it is exactly 10 away
    - Everyone wins together when all hands are empty
    - Everyone loses when the active player cannot make a required play

Pile Layout:
    [0] [1]   <- ascending, start at min_card_value - 1
    [2] [3]   <- descending, start at max_card_value + 1
"""

import copy
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from constants import FOUNDATION_PILE_COUNT


class GamePhase(str, Enum):
    """
    Phases of an Up-N-Down game.

    Flow: LOBBY -> PLAYING -> WON | LOST
    Only a host reset returns a game to LOBBY.
    """

    LOBBY = "lobby"
    PLAYING = "playing"
    WON = "won"
    LOST = "lost"


class PileOrientation(str, Enum):
    """Direction a foundation pile runs in."""

    ASCENDING = "ascending"
    DESCENDING = "descending"


@dataclass(frozen=True)
class Card:
    """
    A numbered card.

    Attributes:
        id: Opaque identity. Deck cards use "c-<value>".
        value: Drives every rule comparison.
    """

    id: str
    value: int

    def to_dict(self) -> dict:
        return {"id": self.id, "value": self.value}


@dataclass(frozen=True)
class FoundationPile:
    """
    One of the four shared piles.

    Only the current top card is kept; covered cards leave play for good.
    """

    id: int
    orientation: PileOrientation
    top_card: Card

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.orientation.value,
            "top_card": self.top_card.to_dict(),
        }


@dataclass
class Player:
    """
    A seated player.

    Attributes:
        id: Connection id on the server; simulations use a fixed id.
        name: Display name.
        hand: Cards held, order carries no meaning.
        is_host: Whether this player controls settings and start/reset.
    """

    id: str
    name: str
    hand: list[Card] = field(default_factory=list)
    is_host: bool = False

    def find_card(self, card_id: str) -> Optional[int]:
        """Return the hand index of a card, or None if not held."""
        for i, card in enumerate(self.hand):
            if card.id == card_id:
                return i
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "hand": [card.to_dict() for card in self.hand],
            "is_host": self.is_host,
        }


@dataclass
class GameSettings:
    """
    Validated game configuration.

    Range and bound checks live in schemas.py; by the time settings reach the
    engine they are trusted.
    """

    min_card_value: int = 2
    max_card_value: int = 99
    hand_size: int = 7
    min_players: int = 2
    max_players: int = 6
    min_cards_per_turn: int = 2
    auto_refill_hand: bool = False
    allow_undo: bool = False  # reserved, the engine has no undo
    private_game: bool = False

    @property
    def deck_size(self) -> int:
        return self.max_card_value - self.min_card_value + 1

    def to_dict(self) -> dict:
        return {
            "min_card_value": self.min_card_value,
            "max_card_value": self.max_card_value,
            "hand_size": self.hand_size,
            "min_players": self.min_players,
            "max_players": self.max_players,
            "min_cards_per_turn": self.min_cards_per_turn,
            "auto_refill_hand": self.auto_refill_hand,
            "allow_undo": self.allow_undo,
            "private_game": self.private_game,
        }


@dataclass
class PlayerStatistics:
    """Per-player counters for one game run."""

    cards_played: int = 0
    total_distance: int = 0
    special_plays: int = 0
    exception_uses: int = 0

    def to_dict(self) -> dict:
        return {
            "cards_played": self.cards_played,
            "total_distance": self.total_distance,
            "special_plays": self.special_plays,
            "exception_uses": self.exception_uses,
        }


@dataclass
class GameStatistics:
    """Game-wide counters. Timestamps are epoch seconds."""

    players: dict[str, PlayerStatistics] = field(default_factory=dict)
    turn_count: int = 0
    started_at: Optional[float] = None
    ended_at: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "players": {pid: stats.to_dict() for pid, stats in self.players.items()},
            "turn_count": self.turn_count,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
        }


@dataclass
class ExceptionMode:
    """Which players may trade a card back into the draw pile, and who already did this turn."""

    enabled: dict[str, bool] = field(default_factory=dict)
    used_this_turn: dict[str, bool] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "enabled": dict(self.enabled),
            "used_this_turn": dict(self.used_this_turn),
        }


@dataclass
class GameState:
    """
    Root aggregate for one game.

    Engine operations never edit a GameState in place: they work on copy()
    and return the copy.

    Attributes:
        game_id: Public room code.
        host_id: Player id of the host.
        players: Seated players; list order is turn order.
        foundation_piles: The four shared piles.
        draw_pile: Undealt cards, drawn from the front.
        current_player_index: Index into players of the active player.
        phase: Lobby, playing, won or lost.
        cards_played_this_turn: Plays made by the active player this turn.
        settings: Game configuration.
        is_solitaire: Single player game with no turn boundary.
        statistics: Per-player and game-wide counters.
        exception_mode: Card exchange eligibility and per-turn usage.
    """

    game_id: str
    host_id: str
    players: list[Player] = field(default_factory=list)
    foundation_piles: list[FoundationPile] = field(default_factory=list)
    draw_pile: list[Card] = field(default_factory=list)
    current_player_index: int = 0
    phase: GamePhase = GamePhase.LOBBY
    cards_played_this_turn: int = 0
    settings: GameSettings = field(default_factory=GameSettings)
    is_solitaire: bool = False
    statistics: GameStatistics = field(default_factory=GameStatistics)
    exception_mode: ExceptionMode = field(default_factory=ExceptionMode)

    def copy(self) -> "GameState":
        """Deep copy, so the result shares no mutable containers with self."""
        return copy.deepcopy(self)

    def get_player(self, player_id: str) -> Optional[Player]:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def player_index(self, player_id: str) -> Optional[int]:
        for i, player in enumerate(self.players):
            if player.id == player_id:
                return i
        return None

    def current_player(self) -> Optional[Player]:
        if 0 <= self.current_player_index < len(self.players):
            return self.players[self.current_player_index]
        return None

    def get_pile(self, pile_id: int) -> Optional[FoundationPile]:
        for pile in self.foundation_piles:
            if pile.id == pile_id:
                return pile
        return None

    def all_hands_empty(self) -> bool:
        return all(not player.hand for player in self.players)

    def cards_in_play(self) -> list[Card]:
        """Every card currently held, waiting in the draw pile, or showing on a pile."""
        cards = list(self.draw_pile)
        for player in self.players:
            cards.extend(player.hand)
        cards.extend(pile.top_card for pile in self.foundation_piles)
        return cards

    def to_dict(self) -> dict:
        """Full snapshot sent to clients after every accepted action."""
        return {
            "game_id": self.game_id,
            "host_id": self.host_id,
            "players": [player.to_dict() for player in self.players],
            "foundation_piles": [pile.to_dict() for pile in self.foundation_piles],
            "draw_pile": [card.to_dict() for card in self.draw_pile],
            "current_player_index": self.current_player_index,
            "game_phase": self.phase.value,
            "cards_played_this_turn": self.cards_played_this_turn,
            "settings": self.settings.to_dict(),
            "is_solitaire": self.is_solitaire,
            "statistics": self.statistics.to_dict(),
            "exception_mode": self.exception_mode.to_dict(),
        }


# -------------------------------------------------------------------------
# Deck & pile initialization
# -------------------------------------------------------------------------

def build_deck(settings: GameSettings) -> list[Card]:
    """Build the ordered deck: one card per value in the configured range."""
    return [
        Card(id=f"c-{value}", value=value)
        for value in range(settings.min_card_value, settings.max_card_value + 1)
    ]


def shuffle_deck(cards: list[Card], rng: Optional[random.Random] = None) -> list[Card]:
    """
    Return a shuffled copy of cards.

    Args:
        cards: Cards to shuffle. Not modified.
        rng: Optional Random instance for deterministic shuffles.
    """
    shuffled = list(cards)
    (rng or random).shuffle(shuffled)
    return shuffled


def create_foundation_piles(settings: GameSettings) -> list[FoundationPile]:
    """Create the four starting piles, just outside the card range."""
    ascending_base = settings.min_card_value - 1
    descending_base = settings.max_card_value + 1

    piles = []
    for pile_id in range(FOUNDATION_PILE_COUNT):
        if pile_id < FOUNDATION_PILE_COUNT // 2:
            orientation, base = PileOrientation.ASCENDING, ascending_base
        else:
            orientation, base = PileOrientation.DESCENDING, descending_base
        piles.append(FoundationPile(
            id=pile_id,
            orientation=orientation,
            top_card=Card(id=f"f-{pile_id}", value=base),
        ))
    return piles
