"""
Typed failures for the Up-N-Down server.

Every rejected action raises an UpDownError carrying a stable code and a
human-readable message. The gateway reports both to the acting client only.
Codes are grouped into categories so callers can decide how loudly to log:
rule and minimum violations happen in normal play, rate limits happen under
abuse, and configuration errors only surface at room creation or start.
"""

from enum import Enum


class ErrorCategory(str, Enum):
    """Broad class of a failure."""

    PHASE = "phase"
    AUTHORITY = "authority"
    NOT_FOUND = "not_found"
    RULE = "rule"
    MINIMUM = "minimum"
    CONFIGURATION = "configuration"
    ROOM = "room"
    RATE_LIMIT = "rate_limit"
    VALIDATION = "validation"


class ErrorCode(str, Enum):
    """Stable error codes sent to clients."""

    # Engine
    GAME_NOT_PLAYING = "GAME_NOT_PLAYING"
    GAME_NOT_IN_LOBBY = "GAME_NOT_IN_LOBBY"
    NOT_PLAYER_TURN = "NOT_PLAYER_TURN"
    NOT_HOST = "NOT_HOST"
    PLAYER_NOT_FOUND = "PLAYER_NOT_FOUND"
    CARD_NOT_FOUND = "CARD_NOT_FOUND"
    PILE_NOT_FOUND = "PILE_NOT_FOUND"
    INVALID_PLAY = "INVALID_PLAY"
    MIN_CARDS_NOT_MET = "MIN_CARDS_NOT_MET"
    INVALID_PLAYER_COUNT = "INVALID_PLAYER_COUNT"
    SOLITAIRE_PLAYER_COUNT_INVALID = "SOLITAIRE_PLAYER_COUNT_INVALID"
    SOLITAIRE_SETTINGS_INVALID = "SOLITAIRE_SETTINGS_INVALID"
    HOST_NOT_IN_PLAYERS = "HOST_NOT_IN_PLAYERS"
    EXCEPTION_NOT_ALLOWED = "EXCEPTION_NOT_ALLOWED"
    EXCEPTION_ALREADY_USED = "EXCEPTION_ALREADY_USED"
    DRAW_PILE_EMPTY = "DRAW_PILE_EMPTY"

    # Rooms
    ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
    ROOM_FULL = "ROOM_FULL"
    GAME_ALREADY_STARTED = "GAME_ALREADY_STARTED"
    LEAVE_DURING_GAME = "LEAVE_DURING_GAME"
    CODE_GENERATION_FAILED = "CODE_GENERATION_FAILED"

    # Gateway
    RATE_LIMITED = "RATE_LIMITED"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    UNKNOWN_ACTION = "UNKNOWN_ACTION"
    INTERNAL_ERROR = "INTERNAL_ERROR"


ERROR_CATEGORIES: dict[ErrorCode, ErrorCategory] = {
    ErrorCode.GAME_NOT_PLAYING: ErrorCategory.PHASE,
    ErrorCode.GAME_NOT_IN_LOBBY: ErrorCategory.PHASE,
    ErrorCode.NOT_PLAYER_TURN: ErrorCategory.AUTHORITY,
    ErrorCode.NOT_HOST: ErrorCategory.AUTHORITY,
    ErrorCode.PLAYER_NOT_FOUND: ErrorCategory.AUTHORITY,
    ErrorCode.CARD_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorCode.PILE_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorCode.INVALID_PLAY: ErrorCategory.RULE,
    ErrorCode.MIN_CARDS_NOT_MET: ErrorCategory.MINIMUM,
    ErrorCode.INVALID_PLAYER_COUNT: ErrorCategory.CONFIGURATION,
    ErrorCode.SOLITAIRE_PLAYER_COUNT_INVALID: ErrorCategory.CONFIGURATION,
    ErrorCode.SOLITAIRE_SETTINGS_INVALID: ErrorCategory.CONFIGURATION,
    ErrorCode.HOST_NOT_IN_PLAYERS: ErrorCategory.CONFIGURATION,
    ErrorCode.EXCEPTION_NOT_ALLOWED: ErrorCategory.AUTHORITY,
    ErrorCode.EXCEPTION_ALREADY_USED: ErrorCategory.RULE,
    ErrorCode.DRAW_PILE_EMPTY: ErrorCategory.RULE,
    ErrorCode.ROOM_NOT_FOUND: ErrorCategory.ROOM,
    ErrorCode.ROOM_FULL: ErrorCategory.ROOM,
    ErrorCode.GAME_ALREADY_STARTED: ErrorCategory.ROOM,
    ErrorCode.LEAVE_DURING_GAME: ErrorCategory.ROOM,
    ErrorCode.CODE_GENERATION_FAILED: ErrorCategory.ROOM,
    ErrorCode.RATE_LIMITED: ErrorCategory.RATE_LIMIT,
    ErrorCode.INVALID_PAYLOAD: ErrorCategory.VALIDATION,
    ErrorCode.UNKNOWN_ACTION: ErrorCategory.VALIDATION,
    ErrorCode.INTERNAL_ERROR: ErrorCategory.VALIDATION,
}

# Categories that occur routinely during play and are not logged as failures
EXPECTED_CATEGORIES = frozenset({
    ErrorCategory.RULE,
    ErrorCategory.MINIMUM,
    ErrorCategory.NOT_FOUND,
    ErrorCategory.PHASE,
    ErrorCategory.AUTHORITY,
})


class UpDownError(Exception):
    """Base exception for rejected actions."""

    def __init__(self, code: ErrorCode, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[{code.value}] {message}")

    @property
    def category(self) -> ErrorCategory:
        return ERROR_CATEGORIES[self.code]

    def to_dict(self) -> dict:
        return {"code": self.code.value, "error": self.message}


class EngineError(UpDownError):
    """A game action rejected by the engine. The state is left unchanged."""


class RoomError(UpDownError):
    """A room lifecycle action rejected by the room manager."""


class RateLimitExceeded(UpDownError):
    """Too many actions of one type from one connection."""

    def __init__(self, message: str, retry_after: int):
        super().__init__(ErrorCode.RATE_LIMITED, message)
        self.retry_after = retry_after


class PayloadInvalid(UpDownError):
    """An inbound payload failed schema validation."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.INVALID_PAYLOAD, message)


class InvariantViolation(AssertionError):
    """Game state reached a shape that only a bug can produce."""
