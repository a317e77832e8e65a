"""
Exhaustive move evaluator.

Answers one question for loss detection: starting from a hand, the current
pile tops and the draw pile, can `required` legal plays be chained?

The search is a depth-first walk over an explicit stack. Each frame carries
its own tuples for hand, piles and draw pile, so a hypothetical refill in one
branch never leaks into a sibling. Depth is capped at CARDS_PER_TURN_MAX and
branching at hand size x 4 piles, so the worst case stays small.
"""

import logging
from dataclasses import replace
from typing import Sequence

from constants import CARDS_PER_TURN_MAX
from game import Card, FoundationPile
from rules import is_legal_play

logger = logging.getLogger(__name__)


def can_satisfy_required_plays(
    hand: Sequence[Card],
    piles: Sequence[FoundationPile],
    draw_pile: Sequence[Card],
    required: int,
    auto_refill: bool,
) -> bool:
    """
    Check whether at least `required` plays can be made in sequence.

    Args:
        hand: Cards held by the player.
        piles: Current foundation piles.
        draw_pile: Remaining draw pile, front first.
        required: Number of plays to chain.
        auto_refill: Whether each play draws one replacement card first.

    Returns:
        True if some ordering of plays reaches `required`.

    Raises:
        ValueError: If required exceeds the largest per-turn minimum.
    """
    if required <= 0:
        return True
    if required > CARDS_PER_TURN_MAX:
        raise ValueError(f"required plays {required} exceeds search bound {CARDS_PER_TURN_MAX}")

    # (hand, piles, draw_pile, depth)
    stack: list[tuple[tuple[Card, ...], tuple[FoundationPile, ...], tuple[Card, ...], int]] = [
        (tuple(hand), tuple(piles), tuple(draw_pile), 0)
    ]
    expanded = 0

    while stack:
        local_hand, local_piles, local_draw, depth = stack.pop()
        if depth >= required:
            logger.debug(f"Found {required} chained plays after expanding {expanded} frames")
            return True
        expanded += 1

        for card_idx, card in enumerate(local_hand):
            for pile_idx, pile in enumerate(local_piles):
                if not is_legal_play(card, pile):
                    continue

                next_hand = local_hand[:card_idx] + local_hand[card_idx + 1:]
                next_piles = (
                    local_piles[:pile_idx]
                    + (replace(pile, top_card=card),)
                    + local_piles[pile_idx + 1:]
                )
                next_draw = local_draw
                if auto_refill and next_draw:
                    next_hand = next_hand + (next_draw[0],)
                    next_draw = next_draw[1:]

                stack.append((next_hand, next_piles, next_draw, depth + 1))

    return False


def has_any_legal_play(
    hand: Sequence[Card],
    piles: Sequence[FoundationPile],
    draw_pile: Sequence[Card],
    auto_refill: bool,
) -> bool:
    """Shortcut for a one-ply search."""
    return can_satisfy_required_plays(hand, piles, draw_pile, 1, auto_refill)
