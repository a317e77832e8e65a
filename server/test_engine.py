"""
Tests for the Up-N-Down turn state machine.

Covers:
- Lobby seating and settings
- Dealing and start validation
- Card play, turn gating and the per-turn minimum
- Win/loss evaluation
- The card exchange ability
- Host reset
- Rejected actions never change state

Run with: pytest test_engine.py -v
"""

import random
from dataclasses import replace

import pytest

import engine
from errors import EngineError, ErrorCode, InvariantViolation
from game import (
    Card,
    ExceptionMode,
    FoundationPile,
    GamePhase,
    GameSettings,
    GameState,
    PileOrientation,
    Player,
    build_deck,
    shuffle_deck,
)
from rules import legal_moves, required_plays_this_turn


# =============================================================================
# Helpers
# =============================================================================

def card(value: int) -> Card:
    return Card(f"c-{value}", value)


def make_lobby(names=("Alice", "Bob"), settings=None, solitaire=False) -> GameState:
    settings = settings or GameSettings()
    state = engine.create_lobby_state("ROOM01", "p1", names[0], settings, is_solitaire=solitaire)
    for i, name in enumerate(names[1:], start=2):
        state = engine.add_player(state, f"p{i}", name)
    return state


def make_started(names=("Alice", "Bob"), settings=None) -> GameState:
    """Start with an unshuffled deck: p1 holds even values, p2 odd values."""
    state = make_lobby(names, settings)
    return engine.start_game(state, build_deck(state.settings), now=1000.0)


def make_playing(
    hands: list[list[int]],
    tops=(60, 60, 40, 40),
    draw=(80,),
    min_cards: int = 2,
    auto_refill: bool = False,
    cards_played: int = 0,
    solitaire: bool = False,
    current: int = 0,
) -> GameState:
    """Build a mid-game state directly from card values."""
    players = [
        Player(f"p{i}", f"Player {i}", [card(v) for v in hand], is_host=(i == 1))
        for i, hand in enumerate(hands, start=1)
    ]
    orientations = [PileOrientation.ASCENDING] * 2 + [PileOrientation.DESCENDING] * 2
    piles = [
        FoundationPile(i, orientation, Card(f"t-{i}", top))
        for i, (orientation, top) in enumerate(zip(orientations, tops))
    ]
    return GameState(
        game_id="ROOM01",
        host_id="p1",
        players=players,
        foundation_piles=piles,
        draw_pile=[card(v) for v in draw],
        current_player_index=current,
        phase=GamePhase.PLAYING,
        cards_played_this_turn=cards_played,
        settings=GameSettings(
            min_players=1 if solitaire else 2,
            max_players=1 if solitaire else 6,
            min_cards_per_turn=min_cards,
            auto_refill_hand=auto_refill or solitaire,
        ),
        is_solitaire=solitaire,
    )


def hand_values(state: GameState, player_id: str) -> list[int]:
    return [c.value for c in state.get_player(player_id).hand]


def assert_rejected(code: ErrorCode, fn, state: GameState, *args, **kwargs):
    """Action fails with code and leaves state untouched."""
    before = state.to_dict()
    with pytest.raises(EngineError) as exc_info:
        fn(state, *args, **kwargs)
    assert exc_info.value.code == code
    assert state.to_dict() == before


class FrontRng:
    """Always reinserts at the front of the draw pile."""

    def randint(self, a, b):
        return a


# =============================================================================
# Lobby
# =============================================================================

class TestLobby:

    def test_create_seats_host(self):
        state = make_lobby(names=("Alice",))
        assert state.phase == GamePhase.LOBBY
        assert [p.id for p in state.players] == ["p1"]
        assert state.players[0].is_host
        assert [p.top_card.value for p in state.foundation_piles] == [1, 1, 100, 100]

    def test_add_player(self):
        state = make_lobby()
        assert [p.name for p in state.players] == ["Alice", "Bob"]
        assert not state.players[1].is_host

    def test_add_player_is_idempotent(self):
        state = make_lobby()
        assert engine.add_player(state, "p2", "Bob") is state

    def test_add_player_when_full(self):
        state = make_lobby(settings=GameSettings(max_players=2))
        assert_rejected(ErrorCode.ROOM_FULL, engine.add_player, state, "p3", "Carol")

    def test_add_player_after_start(self):
        state = make_started()
        assert_rejected(ErrorCode.GAME_ALREADY_STARTED, engine.add_player, state, "p3", "Carol")

    def test_host_leaving_promotes_next_player(self):
        state = engine.remove_player(make_lobby(names=("Alice", "Bob", "Carol")), "p1")
        assert state.host_id == "p2"
        assert [p.is_host for p in state.players] == [True, False]

    def test_last_player_leaving_returns_none(self):
        assert engine.remove_player(make_lobby(names=("Alice",)), "p1") is None

    def test_cannot_leave_during_play(self):
        assert_rejected(ErrorCode.LEAVE_DURING_GAME, engine.remove_player, make_started(), "p2")

    def test_remove_unknown_player(self):
        assert_rejected(ErrorCode.PLAYER_NOT_FOUND, engine.remove_player, make_lobby(), "ghost")

    def test_update_settings_rebuilds_piles(self):
        state = engine.update_settings(
            make_lobby(), "p1", GameSettings(min_card_value=10, max_card_value=60)
        )
        assert state.settings.max_card_value == 60
        assert [p.top_card.value for p in state.foundation_piles] == [9, 9, 61, 61]

    def test_update_settings_host_only(self):
        assert_rejected(ErrorCode.NOT_HOST, engine.update_settings, make_lobby(), "p2", GameSettings())

    def test_update_settings_rejects_player_count_conflict(self):
        state = make_lobby(names=("Alice", "Bob", "Carol"))
        assert_rejected(
            ErrorCode.INVALID_PLAYER_COUNT,
            engine.update_settings, state, "p1", GameSettings(max_players=2),
        )

    def test_update_settings_rejects_single_player_multiplayer(self):
        assert_rejected(
            ErrorCode.INVALID_PLAYER_COUNT,
            engine.update_settings, make_lobby(), "p1", GameSettings(min_players=1),
        )

    def test_update_settings_outside_lobby(self):
        assert_rejected(
            ErrorCode.GAME_NOT_IN_LOBBY,
            engine.update_settings, make_started(), "p1", GameSettings(),
        )


# =============================================================================
# Start
# =============================================================================

class TestStartGame:

    def test_deals_round_robin(self):
        state = make_started()
        assert state.phase == GamePhase.PLAYING
        assert hand_values(state, "p1") == [2, 4, 6, 8, 10, 12, 14]
        assert hand_values(state, "p2") == [3, 5, 7, 9, 11, 13, 15]
        assert [c.value for c in state.draw_pile[:2]] == [16, 17]
        assert len(state.draw_pile) == 98 - 14
        assert state.current_player_index == 0

    def test_initialises_statistics(self):
        state = make_started()
        assert state.statistics.started_at == 1000.0
        assert state.statistics.ended_at is None
        assert set(state.statistics.players) == {"p1", "p2"}

    def test_partial_deal_with_short_deck(self):
        settings = GameSettings(min_card_value=2, max_card_value=11, hand_size=9)
        state = make_started(names=("Alice", "Bob", "Carol"), settings=settings)
        assert [len(p.hand) for p in state.players] == [4, 3, 3]
        assert state.draw_pile == []

    def test_does_not_modify_lobby(self):
        lobby = make_lobby()
        before = lobby.to_dict()
        engine.start_game(lobby, build_deck(lobby.settings), now=1.0)
        assert lobby.to_dict() == before

    def test_exception_enabled_by_trigger_name(self):
        state = make_started(names=("Alice", "  NaS "))
        assert state.exception_mode.enabled == {"p1": False, "p2": True}
        assert state.exception_mode.used_this_turn == {"p1": False, "p2": False}

    def test_custom_trigger_name(self):
        lobby = make_lobby(names=("Alice", "Bob"))
        state = engine.start_game(lobby, build_deck(lobby.settings), trigger_name="alice")
        assert state.exception_mode.enabled == {"p1": True, "p2": False}

    def test_too_few_players(self):
        lobby = make_lobby(names=("Alice",))
        assert_rejected(ErrorCode.INVALID_PLAYER_COUNT, engine.start_game, lobby, build_deck(lobby.settings))

    def test_host_must_be_seated(self):
        lobby = replace(make_lobby(), host_id="ghost")
        assert_rejected(ErrorCode.HOST_NOT_IN_PLAYERS, engine.start_game, lobby, build_deck(lobby.settings))

    def test_already_started(self):
        state = make_started()
        assert_rejected(ErrorCode.GAME_NOT_IN_LOBBY, engine.start_game, state, build_deck(state.settings))

    def test_solitaire_requires_auto_refill(self):
        settings = GameSettings(min_players=1, max_players=1, auto_refill_hand=False)
        lobby = make_lobby(names=("Solo",), settings=settings, solitaire=True)
        assert_rejected(
            ErrorCode.SOLITAIRE_SETTINGS_INVALID,
            engine.start_game, lobby, build_deck(settings),
        )

    def test_solitaire_requires_single_seat_settings(self):
        settings = GameSettings(min_players=1, max_players=2, auto_refill_hand=True)
        lobby = make_lobby(names=("Solo",), settings=settings, solitaire=True)
        assert_rejected(
            ErrorCode.SOLITAIRE_SETTINGS_INVALID,
            engine.start_game, lobby, build_deck(settings),
        )

    def test_solitaire_requires_exactly_one_player(self):
        settings = GameSettings(min_players=1, max_players=1, auto_refill_hand=True)
        lobby = make_lobby(names=("Solo",), settings=settings, solitaire=True)
        crowded = replace(lobby, players=lobby.players + [Player("p2", "Extra")])
        assert_rejected(
            ErrorCode.SOLITAIRE_PLAYER_COUNT_INVALID,
            engine.start_game, crowded, build_deck(settings),
        )

    def test_solitaire_start(self):
        settings = GameSettings(min_players=1, max_players=1, auto_refill_hand=True, hand_size=8)
        lobby = make_lobby(names=("Solo",), settings=settings, solitaire=True)
        state = engine.start_game(lobby, shuffle_deck(build_deck(settings), random.Random(3)))
        assert state.phase == GamePhase.PLAYING
        assert len(state.players[0].hand) == 8
        assert len(state.draw_pile) == 90


# =============================================================================
# Play Card
# =============================================================================

class TestPlayCard:

    def test_play_replaces_top(self):
        state = engine.play_card(make_started(), "p1", "c-2", 0)
        assert state.get_pile(0).top_card == card(2)
        assert hand_values(state, "p1") == [4, 6, 8, 10, 12, 14]
        assert state.cards_played_this_turn == 1

    def test_statistics_updated(self):
        state = engine.play_card(make_started(), "p1", "c-14", 2)
        stats = state.statistics.players["p1"]
        assert stats.cards_played == 1
        assert stats.total_distance == 100 - 14
        assert stats.special_plays == 0

    def test_skip_play_counted(self):
        state = make_playing([[57, 90]], tops=(67, 60, 40, 40))
        state = engine.play_card(state, "p1", "c-57", 0)
        assert state.get_pile(0).top_card.value == 57
        assert state.statistics.players["p1"].special_plays == 1

    def test_no_refill_without_auto_refill(self):
        state = engine.play_card(make_started(), "p1", "c-2", 0)
        assert len(state.get_player("p1").hand) == 6
        assert len(state.draw_pile) == 84

    def test_auto_refill_draws_one(self):
        state = make_playing([[65, 70], [90]], tops=(60, 60, 40, 40), draw=(80, 81), auto_refill=True)
        state = engine.play_card(state, "p1", "c-65", 0)
        assert hand_values(state, "p1") == [70, 80]
        assert [c.value for c in state.draw_pile] == [81]

    def test_solitaire_acts_without_turn_check(self):
        state = make_playing([[65, 70]], draw=(80,), solitaire=True)
        state = engine.play_card(state, "p1", "c-65", 0)
        assert hand_values(state, "p1") == [70, 80]

    def test_not_your_turn(self):
        assert_rejected(ErrorCode.NOT_PLAYER_TURN, engine.play_card, make_started(), "p2", "c-3", 0)

    def test_card_not_in_hand(self):
        assert_rejected(ErrorCode.CARD_NOT_FOUND, engine.play_card, make_started(), "p1", "c-3", 0)

    def test_unknown_pile(self):
        assert_rejected(ErrorCode.PILE_NOT_FOUND, engine.play_card, make_started(), "p1", "c-2", 7)

    def test_illegal_play(self):
        state = make_playing([[58, 90]], tops=(67, 60, 40, 40))
        assert_rejected(ErrorCode.INVALID_PLAY, engine.play_card, state, "p1", "c-58", 0)

    def test_unknown_player(self):
        assert_rejected(ErrorCode.PLAYER_NOT_FOUND, engine.play_card, make_started(), "ghost", "c-2", 0)

    def test_not_playing(self):
        assert_rejected(ErrorCode.GAME_NOT_PLAYING, engine.play_card, make_lobby(), "p1", "c-2", 0)

    def test_repeated_rejection_is_idempotent(self):
        state = make_started()
        before = state.to_dict()
        for _ in range(3):
            with pytest.raises(EngineError):
                engine.play_card(state, "p2", "c-3", 0)
        assert state.to_dict() == before


# =============================================================================
# End Turn
# =============================================================================

class TestEndTurn:

    def play_two(self, state: GameState) -> GameState:
        state = engine.play_card(state, "p1", "c-2", 0)
        return engine.play_card(state, "p1", "c-4", 0)

    def test_minimum_not_met(self):
        state = engine.play_card(make_started(), "p1", "c-2", 0)
        assert_rejected(ErrorCode.MIN_CARDS_NOT_MET, engine.end_turn, state, "p1")

    def test_minimum_not_met_with_no_plays(self):
        assert_rejected(ErrorCode.MIN_CARDS_NOT_MET, engine.end_turn, make_started(), "p1")

    def test_advances_and_refills(self):
        state = engine.end_turn(self.play_two(make_started()), "p1")
        assert state.current_player_index == 1
        assert state.cards_played_this_turn == 0
        assert state.statistics.turn_count == 1
        assert hand_values(state, "p1") == [6, 8, 10, 12, 14, 16, 17]
        assert len(state.draw_pile) == 82

    def test_only_active_player_may_end(self):
        assert_rejected(ErrorCode.NOT_PLAYER_TURN, engine.end_turn, self.play_two(make_started()), "p2")

    def test_minimum_drops_to_one_on_empty_draw(self):
        state = make_playing([[65], [90]], draw=(), min_cards=3, cards_played=1)
        state = engine.end_turn(state, "p1")
        assert state.current_player_index == 1

    def test_skips_players_with_empty_hands(self):
        state = make_playing([[65, 66], [], [90]], draw=(), cards_played=1)
        state = engine.end_turn(state, "p1")
        assert state.current_player_index == 2

    def test_wraps_around(self):
        state = make_playing([[65], [90]], draw=(), cards_played=1, current=1)
        state = engine.end_turn(state, "p2")
        assert state.current_player_index == 0

    def test_resets_exception_flags(self):
        state = make_playing([[65], [90]], draw=(), cards_played=1)
        state.exception_mode = ExceptionMode(
            enabled={"p1": True, "p2": True},
            used_this_turn={"p1": True, "p2": True},
        )
        state = engine.end_turn(state, "p1")
        assert state.exception_mode.used_this_turn == {"p1": False, "p2": False}

    def test_solitaire_is_noop(self):
        state = make_playing([[65]], solitaire=True)
        assert engine.end_turn(state, "p1") is state

    def test_not_playing(self):
        assert_rejected(ErrorCode.GAME_NOT_PLAYING, engine.end_turn, make_lobby(), "p1")


# =============================================================================
# Win / Loss
# =============================================================================

class TestWinLoss:

    def test_win_when_every_hand_empties(self):
        """Two players, hand 5, ten-card deck: won on the last card and no earlier."""
        settings = GameSettings(
            min_card_value=2, max_card_value=11, hand_size=5,
            min_players=2, max_players=2, min_cards_per_turn=2,
        )
        state = make_started(settings=settings)
        assert state.draw_pile == []

        for value in (2, 4, 6, 8, 10):
            state = engine.play_card(state, "p1", f"c-{value}", 0, now=2000.0)
            assert state.phase == GamePhase.PLAYING

        state = engine.end_turn(state, "p1")
        assert state.current_player_index == 1

        for value in (3, 5, 7, 9):
            state = engine.play_card(state, "p2", f"c-{value}", 1, now=2000.0)
            assert state.phase == GamePhase.PLAYING

        state = engine.play_card(state, "p2", "c-11", 1, now=3000.0)
        assert state.phase == GamePhase.WON
        assert state.statistics.ended_at == 3000.0

    def test_no_legal_play_with_minimum_met_keeps_playing(self):
        state = make_playing([[55], [70]], cards_played=2)
        state = engine.evaluate_outcome(state, now=5.0)
        assert state.phase == GamePhase.PLAYING

    def test_no_legal_play_with_minimum_unmet_loses(self):
        state = make_playing([[55], [70]], cards_played=1)
        state = engine.evaluate_outcome(state, now=5.0)
        assert state.phase == GamePhase.LOST
        assert state.statistics.ended_at == 5.0

    def test_play_that_strands_hand_below_minimum_loses(self):
        state = make_playing([[61, 55], [70]])
        state = engine.play_card(state, "p1", "c-61", 0)
        assert state.phase == GamePhase.LOST

    def test_next_player_stuck_loses_at_turn_start(self):
        state = make_playing([[61], [55]], draw=())
        state = engine.play_card(state, "p1", "c-61", 0)
        assert state.phase == GamePhase.PLAYING
        state = engine.end_turn(state, "p1")
        assert state.phase == GamePhase.LOST

    def test_solitaire_loses_on_any_dead_hand(self):
        state = make_playing([[55]], solitaire=True, cards_played=5)
        assert engine.evaluate_outcome(state).phase == GamePhase.LOST

    def test_ended_at_recorded_once(self):
        state = make_playing([[55], [70]], cards_played=1)
        state = engine.evaluate_outcome(state, now=5.0)
        state = engine.evaluate_outcome(state, now=9.0)
        assert state.statistics.ended_at == 5.0

    def test_evaluate_outcome_does_not_modify_input(self):
        state = make_playing([[55], [70]], cards_played=1)
        engine.evaluate_outcome(state)
        assert state.phase == GamePhase.PLAYING

    def test_actions_rejected_after_loss(self):
        state = engine.evaluate_outcome(make_playing([[55], [70]], cards_played=1))
        assert_rejected(ErrorCode.GAME_NOT_PLAYING, engine.play_card, state, "p1", "c-55", 0)


# =============================================================================
# Card Exchange
# =============================================================================

class TestUseException:

    def test_trade_restores_hand_size(self):
        state = make_started(names=("Alice", "Nas"))
        traded = engine.use_exception(state, "p2", "c-3", rng=random.Random(0))

        hand = hand_values(traded, "p2")
        assert len(hand) == 7
        assert 3 not in hand
        assert 16 in hand
        assert len(traded.draw_pile) == len(state.draw_pile)
        assert any(c.id == "c-3" for c in traded.draw_pile)
        assert traded.exception_mode.used_this_turn["p2"]
        assert traded.statistics.players["p2"].exception_uses == 1

    def test_traded_card_can_be_drawn_later(self):
        state = make_started(names=("Nas", "Bob"))
        state = engine.use_exception(state, "p1", "c-14", rng=FrontRng())
        assert state.draw_pile[0].id == "c-14"

        state = engine.play_card(state, "p1", "c-2", 0)
        state = engine.play_card(state, "p1", "c-4", 0)
        state = engine.end_turn(state, "p1")
        assert "c-14" in [c.id for c in state.get_player("p1").hand]

    def test_twice_in_one_turn_rejected(self):
        state = make_started(names=("Alice", "Nas"))
        state = engine.use_exception(state, "p2", "c-3", rng=random.Random(0))
        assert_rejected(ErrorCode.EXCEPTION_ALREADY_USED, engine.use_exception, state, "p2", "c-5")

    def test_available_again_next_turn(self):
        state = make_started(names=("Nas", "Bob"))
        state = engine.use_exception(state, "p1", "c-14", rng=random.Random(0))
        state = engine.play_card(state, "p1", "c-2", 0)
        state = engine.play_card(state, "p1", "c-4", 0)
        state = engine.end_turn(state, "p1")
        assert not state.exception_mode.used_this_turn["p1"]

    def test_not_enabled(self):
        state = make_started(names=("Alice", "Nas"))
        assert_rejected(ErrorCode.EXCEPTION_NOT_ALLOWED, engine.use_exception, state, "p1", "c-2")

    def test_empty_draw_pile(self):
        state = make_playing([[65], [90]], draw=())
        state.exception_mode = ExceptionMode(enabled={"p1": True}, used_this_turn={"p1": False})
        assert_rejected(ErrorCode.DRAW_PILE_EMPTY, engine.use_exception, state, "p1", "c-65")

    def test_card_not_held(self):
        state = make_started(names=("Alice", "Nas"))
        assert_rejected(ErrorCode.CARD_NOT_FOUND, engine.use_exception, state, "p2", "c-2")

    def test_does_not_evaluate_outcome(self):
        state = make_playing([[55], [70]], draw=(56,), cards_played=1)
        state.exception_mode = ExceptionMode(enabled={"p1": True}, used_this_turn={"p1": False})
        state = engine.use_exception(state, "p1", "c-55", rng=FrontRng())
        assert state.phase == GamePhase.PLAYING
        assert hand_values(state, "p1") == [56]


# =============================================================================
# Reset
# =============================================================================

class TestResetGame:

    def test_reset_returns_to_lobby(self):
        state = engine.play_card(make_started(), "p1", "c-2", 0)
        state = engine.reset_game(state, "p1")
        assert state.phase == GamePhase.LOBBY
        assert all(not p.hand for p in state.players)
        assert state.draw_pile == []
        assert [p.top_card.value for p in state.foundation_piles] == [1, 1, 100, 100]
        assert state.statistics.started_at is None
        assert state.exception_mode.enabled == {}

    def test_reset_after_loss_then_restart(self):
        state = make_started()
        state = replace(state, phase=GamePhase.LOST)
        state = engine.reset_game(state, "p1")
        state = engine.start_game(state, build_deck(state.settings))
        assert state.phase == GamePhase.PLAYING

    def test_host_only(self):
        assert_rejected(ErrorCode.NOT_HOST, engine.reset_game, make_started(), "p2")

    def test_not_from_lobby(self):
        assert_rejected(ErrorCode.GAME_NOT_PLAYING, engine.reset_game, make_lobby(), "p1")


# =============================================================================
# Invariants
# =============================================================================

class TestInvariants:

    def test_empty_active_hand_at_boundary(self):
        state = make_playing([[], [70]])
        with pytest.raises(InvariantViolation):
            engine.check_invariants(state)

    def test_duplicate_card(self):
        state = make_playing([[70], [70]])
        with pytest.raises(InvariantViolation):
            engine.check_invariants(state)

    def test_index_out_of_range(self):
        state = make_playing([[70]], current=3)
        with pytest.raises(InvariantViolation):
            engine.check_invariants(state)

    def test_won_game_passes(self):
        state = replace(make_playing([[], []]), phase=GamePhase.WON)
        engine.check_invariants(state)

    @pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
    def test_cards_conserved_through_a_game(self, seed):
        """Draw pile + hands + played cards always account for the whole deck."""
        lobby = make_lobby(names=("Alice", "Bob", "Carol"))
        deck = shuffle_deck(build_deck(lobby.settings), random.Random(seed))
        state = engine.start_game(lobby, deck)

        def accounted(s: GameState) -> int:
            held = sum(len(p.hand) for p in s.players)
            played = sum(stats.cards_played for stats in s.statistics.players.values())
            return len(s.draw_pile) + held + played

        steps = 0
        while state.phase == GamePhase.PLAYING and steps < 1000:
            steps += 1
            player = state.current_player()
            required = required_plays_this_turn(state.settings.min_cards_per_turn, len(state.draw_pile))
            moves = legal_moves(player.hand, state.foundation_piles)
            if state.cards_played_this_turn >= required or not moves:
                state = engine.end_turn(state, player.id)
            else:
                chosen, pile = moves[0]
                state = engine.play_card(state, player.id, chosen.id, pile.id)
            assert accounted(state) == len(deck)
            ids = [c.id for c in state.cards_in_play()]
            assert len(ids) == len(set(ids))

        assert state.phase in (GamePhase.WON, GamePhase.LOST)
