"""
Game constants for Up-N-Down.

This module is the single source of truth for the limits that settings,
payload schemas and the engine agree on.

Rules Summary:
    - Cards carry integer values from a configurable inclusive range
    - Two foundation piles ascend from one below the lowest card value
    - Two foundation piles descend from one above the highest card value
    - A card exactly SKIP_DISTANCE away in the "wrong" direction is also legal
"""

# =============================================================================
# Card range
# =============================================================================

CARD_VALUE_MIN: int = 2
CARD_VALUE_MAX: int = 99
MIN_DECK_SIZE: int = 18  # inclusive span of the configured value range

# The backward jump allowed on every pile
SKIP_DISTANCE: int = 10

FOUNDATION_PILE_COUNT: int = 4

# =============================================================================
# Hands, players and turns
# =============================================================================

HAND_SIZE_MIN: int = 5
HAND_SIZE_MAX: int = 9

PLAYERS_MIN: int = 1
PLAYERS_MAX: int = 6

CARDS_PER_TURN_MIN: int = 1
CARDS_PER_TURN_MAX: int = 3

PLAYER_NAME_MAX_LENGTH: int = 32

# =============================================================================
# Rooms
# =============================================================================

ROOM_CODE_LENGTH: int = 6
ROOM_CODE_ALPHABET: str = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
ROOM_CODE_PATTERN: str = r"^[A-Z0-9]{6}$"

# Display name that unlocks the card exchange ability
DEFAULT_EXCEPTION_TRIGGER_NAME: str = "nas"
