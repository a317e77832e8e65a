"""
Up-N-Down Solitaire Simulation Runner

Plays solitaire games with a greedy policy to sanity-check rule balance.
No server/websocket needed - runs the engine directly.

Usage:
    python simulate.py [num_games] [seed]

Examples:
    python simulate.py 100       # Run 100 games with random deals
    python simulate.py 500 42    # Run 500 reproducible games
"""

import random
import sys
from typing import Optional

import engine
from config import config
from game import Card, FoundationPile, GamePhase, GameSettings, GameState, build_deck, shuffle_deck
from rules import is_skip_play, legal_moves, play_distance

SOLO_PLAYER_ID = "solo"


class SimulationStats:
    """Track simulation statistics."""

    def __init__(self):
        self.games_played = 0
        self.games_won = 0
        self.cards_remaining: list[int] = []
        self.skip_plays = 0
        self.total_plays = 0

    def record_game(self, state: GameState):
        self.games_played += 1
        if state.phase == GamePhase.WON:
            self.games_won += 1
        self.cards_remaining.append(
            len(state.draw_pile) + sum(len(p.hand) for p in state.players)
        )
        for stats in state.statistics.players.values():
            self.skip_plays += stats.special_plays
            self.total_plays += stats.cards_played

    @property
    def games_lost(self) -> int:
        return self.games_played - self.games_won

    def report(self) -> str:
        if not self.games_played:
            return "No games played"

        avg_remaining = sum(self.cards_remaining) / len(self.cards_remaining)
        lines = [
            "SIMULATION RESULTS",
            "=" * 50,
            f"Games played: {self.games_played}",
            f"Won:  {self.games_won} ({self.games_won / self.games_played * 100:.1f}%)",
            f"Lost: {self.games_lost}",
            f"Average cards remaining: {avg_remaining:.1f}",
            f"Best game: {min(self.cards_remaining)} cards remaining",
        ]
        if self.total_plays:
            lines.append(f"Skip plays: {self.skip_plays} ({self.skip_plays / self.total_plays * 100:.1f}% of plays)")
        return "\n".join(lines)


def choose_move(hand: list[Card], piles: list[FoundationPile]) -> Optional[tuple[Card, FoundationPile]]:
    """
    Greedy policy: take any skip-by-10 play first (it reopens a pile),
    otherwise the play that moves a pile the least.
    """
    moves = legal_moves(hand, piles)
    if not moves:
        return None
    return min(
        moves,
        key=lambda move: (not is_skip_play(*move), play_distance(*move)),
    )


def solitaire_settings() -> GameSettings:
    return GameSettings(**config.game_defaults.to_dict(solitaire=True))


def run_solitaire_game(
    settings: Optional[GameSettings] = None,
    rng: Optional[random.Random] = None,
) -> GameState:
    """Play one solitaire game to completion and return the final state."""
    settings = settings or solitaire_settings()
    rng = rng or random.Random()

    state = engine.create_lobby_state("SIM", SOLO_PLAYER_ID, "Solo", settings, is_solitaire=True)
    state = engine.start_game(state, shuffle_deck(build_deck(settings), rng), now=0.0)

    while state.phase == GamePhase.PLAYING:
        move = choose_move(state.players[0].hand, state.foundation_piles)
        if move is None:
            # The engine marks a dead hand as lost after every play
            break
        card, pile = move
        state = engine.play_card(state, SOLO_PLAYER_ID, card.id, pile.id, now=0.0)

    return state


def run_simulation(num_games: int = 100, seed: Optional[int] = None, verbose: bool = True) -> SimulationStats:
    """Run multiple solitaire games and report statistics."""
    rng = random.Random(seed)
    stats = SimulationStats()

    if verbose:
        print(f"\nRunning {num_games} solitaire games...")
        print("=" * 50)

    for _ in range(num_games):
        stats.record_game(run_solitaire_game(rng=rng))

    if verbose:
        print(stats.report())

    return stats


def main():
    num_games = int(sys.argv[1]) if len(sys.argv) > 1 else 100
    seed = int(sys.argv[2]) if len(sys.argv) > 2 else None
    run_simulation(num_games, seed)


if __name__ == "__main__":
    main()
