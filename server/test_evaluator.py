"""
Tests for the exhaustive move evaluator.

Run with: pytest test_evaluator.py -v
"""

import pytest

from evaluator import can_satisfy_required_plays, has_any_legal_play
from game import Card, FoundationPile, PileOrientation


def card(value: int) -> Card:
    return Card(f"c-{value}", value)


def piles(asc_a: int, asc_b: int, desc_a: int, desc_b: int) -> list[FoundationPile]:
    return [
        FoundationPile(0, PileOrientation.ASCENDING, Card("f-0", asc_a)),
        FoundationPile(1, PileOrientation.ASCENDING, Card("f-1", asc_b)),
        FoundationPile(2, PileOrientation.DESCENDING, Card("f-2", desc_a)),
        FoundationPile(3, PileOrientation.DESCENDING, Card("f-3", desc_b)),
    ]


# Pile 0 (top 10) is open; the other three take almost nothing
NARROW = piles(10, 95, 5, 5)

# Nothing in 50..59 fits anywhere
BLOCKED = piles(60, 60, 40, 40)


# =============================================================================
# Bounds
# =============================================================================

class TestBounds:

    def test_zero_required_is_trivially_satisfied(self):
        assert can_satisfy_required_plays([], BLOCKED, [], 0, auto_refill=False)

    def test_required_above_search_bound_raises(self):
        with pytest.raises(ValueError):
            can_satisfy_required_plays([card(20)], NARROW, [], 4, auto_refill=False)


# =============================================================================
# Search
# =============================================================================

class TestSearch:

    def test_single_play_found(self):
        assert has_any_legal_play([card(20)], NARROW, [], auto_refill=False)

    def test_no_play_when_blocked(self):
        assert not has_any_legal_play([card(55)], BLOCKED, [card(70)], auto_refill=False)

    def test_chain_of_two_from_hand(self):
        assert can_satisfy_required_plays([card(30), card(20)], NARROW, [], 2, auto_refill=False)

    def test_chain_needs_order(self):
        """Playing 40 first strands 25 (only pile 0 is open); 25 then 40 works."""
        assert can_satisfy_required_plays([card(40), card(25)], NARROW, [], 2, auto_refill=False)

    def test_cannot_chain_more_than_hand_without_refill(self):
        assert not can_satisfy_required_plays(
            [card(20), card(30)], NARROW, [card(40)], 3, auto_refill=False
        )

    def test_refill_extends_chain(self):
        assert can_satisfy_required_plays(
            [card(20), card(30)], NARROW, [card(40)], 3, auto_refill=True
        )

    def test_refilled_card_must_itself_be_playable(self):
        assert not can_satisfy_required_plays(
            [card(20)], NARROW, [card(7)], 2, auto_refill=True
        )

    def test_skip_play_counts(self):
        """At top 30 on pile 0, a 20 fits only by stepping back 10."""
        board = piles(30, 95, 5, 5)
        assert can_satisfy_required_plays([card(20), card(40)], board, [], 2, auto_refill=False)

    def test_inputs_not_modified(self):
        hand = [card(20), card(30)]
        draw = [card(40)]
        board = list(NARROW)
        can_satisfy_required_plays(hand, board, draw, 3, auto_refill=True)
        assert hand == [card(20), card(30)]
        assert draw == [card(40)]
        assert board == NARROW
