"""
Play legality rules.

Pure predicates shared by the engine, the move evaluator and the simulation
policy. Nothing here knows about turns or players.
"""

from typing import Iterable

from constants import SKIP_DISTANCE
from game import Card, FoundationPile, PileOrientation


def is_legal_play(card: Card, pile: FoundationPile) -> bool:
    """
    Check whether card may be placed on pile.

    Ascending piles take any higher card, or exactly 10 below the top.
    Descending piles take any lower card, or exactly 10 above the top.
    """
    top = pile.top_card.value
    if pile.orientation == PileOrientation.ASCENDING:
        return card.value > top or card.value == top - SKIP_DISTANCE
    return card.value < top or card.value == top + SKIP_DISTANCE


def is_skip_play(card: Card, pile: FoundationPile) -> bool:
    """True if the play is legal only through the skip-by-10 exception."""
    top = pile.top_card.value
    if pile.orientation == PileOrientation.ASCENDING:
        return card.value == top - SKIP_DISTANCE
    return card.value == top + SKIP_DISTANCE


def play_distance(card: Card, pile: FoundationPile) -> int:
    """How far the pile top moves if card is played on it."""
    return abs(card.value - pile.top_card.value)


def required_plays_this_turn(configured_minimum: int, draw_pile_size: int) -> int:
    """Minimum plays before a turn may end. Drops to 1 once the draw pile is empty."""
    if draw_pile_size == 0:
        return 1
    return configured_minimum


def legal_moves(
    hand: Iterable[Card],
    piles: Iterable[FoundationPile],
) -> list[tuple[Card, FoundationPile]]:
    """Every (card, pile) pair currently legal."""
    piles = list(piles)
    return [
        (card, pile)
        for card in hand
        for pile in piles
        if is_legal_play(card, pile)
    ]
