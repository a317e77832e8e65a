"""
Tests for the Up-N-Down data model and initializers.

Verifies:
- Deck construction (one card per value, stable ids)
- Shuffling (copy returned, seedable)
- Foundation pile layout
- GameState copying and serialization

Run with: pytest test_game.py -v
"""

import random

from game import (
    Card,
    GamePhase,
    GameSettings,
    GameState,
    PileOrientation,
    Player,
    build_deck,
    create_foundation_piles,
    shuffle_deck,
)


# =============================================================================
# Deck Tests
# =============================================================================

class TestDeck:

    def test_default_deck_has_98_cards(self):
        deck = build_deck(GameSettings())
        assert len(deck) == 98
        assert deck[0] == Card("c-2", 2)
        assert deck[-1] == Card("c-99", 99)

    def test_custom_range(self):
        deck = build_deck(GameSettings(min_card_value=10, max_card_value=40))
        assert [c.value for c in deck] == list(range(10, 41))

    def test_ids_unique(self):
        deck = build_deck(GameSettings())
        assert len({c.id for c in deck}) == len(deck)

    def test_deck_size_property(self):
        assert GameSettings(min_card_value=2, max_card_value=19).deck_size == 18


class TestShuffle:

    def test_returns_copy(self):
        deck = build_deck(GameSettings())
        shuffled = shuffle_deck(deck, random.Random(1))
        assert deck == build_deck(GameSettings())
        assert sorted(shuffled, key=lambda c: c.value) == deck

    def test_seeded_shuffle_is_deterministic(self):
        deck = build_deck(GameSettings())
        assert shuffle_deck(deck, random.Random(7)) == shuffle_deck(deck, random.Random(7))


# =============================================================================
# Foundation Pile Tests
# =============================================================================

class TestFoundationPiles:

    def test_layout(self):
        piles = create_foundation_piles(GameSettings())
        assert [p.id for p in piles] == [0, 1, 2, 3]
        assert [p.orientation for p in piles] == [
            PileOrientation.ASCENDING,
            PileOrientation.ASCENDING,
            PileOrientation.DESCENDING,
            PileOrientation.DESCENDING,
        ]

    def test_bases_sit_outside_range(self):
        piles = create_foundation_piles(GameSettings(min_card_value=5, max_card_value=50))
        assert [p.top_card.value for p in piles] == [4, 4, 51, 51]

    def test_base_ids_do_not_collide_with_deck(self):
        settings = GameSettings()
        deck_ids = {c.id for c in build_deck(settings)}
        assert not deck_ids & {p.top_card.id for p in create_foundation_piles(settings)}

    def test_serialized_orientation(self):
        data = create_foundation_piles(GameSettings())[3].to_dict()
        assert data == {"id": 3, "type": "descending", "top_card": {"id": "f-3", "value": 100}}


# =============================================================================
# GameState Tests
# =============================================================================

class TestGameState:

    def make_state(self) -> GameState:
        return GameState(
            game_id="ABC123",
            host_id="p1",
            players=[
                Player("p1", "Alice", [Card("c-10", 10)], is_host=True),
                Player("p2", "Bob", []),
            ],
            foundation_piles=create_foundation_piles(GameSettings()),
            draw_pile=[Card("c-20", 20)],
        )

    def test_copy_is_independent(self):
        state = self.make_state()
        clone = state.copy()
        clone.players[0].hand.clear()
        clone.draw_pile.append(Card("c-30", 30))
        assert len(state.players[0].hand) == 1
        assert len(state.draw_pile) == 1

    def test_lookups(self):
        state = self.make_state()
        assert state.get_player("p2").name == "Bob"
        assert state.get_player("nobody") is None
        assert state.player_index("p2") == 1
        assert state.current_player().id == "p1"
        assert state.get_pile(2).orientation == PileOrientation.DESCENDING
        assert state.get_pile(4) is None

    def test_all_hands_empty(self):
        state = self.make_state()
        assert not state.all_hands_empty()
        state.players[0].hand.clear()
        assert state.all_hands_empty()

    def test_cards_in_play(self):
        state = self.make_state()
        ids = {c.id for c in state.cards_in_play()}
        assert ids == {"c-10", "c-20", "f-0", "f-1", "f-2", "f-3"}

    def test_to_dict(self):
        data = self.make_state().to_dict()
        assert data["game_phase"] == GamePhase.LOBBY.value
        assert data["players"][0]["hand"] == [{"id": "c-10", "value": 10}]
        assert data["settings"]["hand_size"] == 7
        assert data["statistics"]["ended_at"] is None
        assert data["exception_mode"] == {"enabled": {}, "used_this_turn": {}}
