"""
Inbound payload schemas.

Every WebSocket action payload is validated here before it reaches the room
manager. Validation failures become PayloadInvalid with the first error
formatted for the client; nothing downstream re-checks ranges.
"""

from typing import Annotated, Any, Optional, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
    field_validator,
    model_validator,
)

from constants import (
    CARD_VALUE_MAX,
    CARD_VALUE_MIN,
    CARDS_PER_TURN_MAX,
    CARDS_PER_TURN_MIN,
    FOUNDATION_PILE_COUNT,
    HAND_SIZE_MAX,
    HAND_SIZE_MIN,
    MIN_DECK_SIZE,
    PLAYER_NAME_MAX_LENGTH,
    PLAYERS_MAX,
    PLAYERS_MIN,
    ROOM_CODE_PATTERN,
)
from errors import PayloadInvalid
from game import GameSettings

PlayerName = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=1, max_length=PLAYER_NAME_MAX_LENGTH),
]

ModelT = TypeVar("ModelT", bound=BaseModel)


# =============================================================================
# Settings
# =============================================================================

class GameSettingsModel(BaseModel):
    """Game settings as accepted from clients."""

    model_config = ConfigDict(strict=True, extra="forbid")

    min_card_value: int = Field(2, ge=CARD_VALUE_MIN, le=CARD_VALUE_MAX)
    max_card_value: int = Field(99, ge=CARD_VALUE_MIN, le=CARD_VALUE_MAX)
    hand_size: int = Field(7, ge=HAND_SIZE_MIN, le=HAND_SIZE_MAX)
    min_players: int = Field(2, ge=PLAYERS_MIN, le=PLAYERS_MAX)
    max_players: int = Field(6, ge=PLAYERS_MIN, le=PLAYERS_MAX)
    min_cards_per_turn: int = Field(2, ge=CARDS_PER_TURN_MIN, le=CARDS_PER_TURN_MAX)
    auto_refill_hand: bool = False
    allow_undo: bool = False
    private_game: bool = False

    @model_validator(mode="after")
    def check_ranges(self) -> "GameSettingsModel":
        if self.max_card_value <= self.min_card_value:
            raise ValueError("max_card_value must be greater than min_card_value")
        if self.max_card_value - self.min_card_value + 1 < MIN_DECK_SIZE:
            raise ValueError(f"card range must span at least {MIN_DECK_SIZE} values")
        if self.max_players < self.min_players:
            raise ValueError("max_players must be at least min_players")
        return self

    def to_settings(self) -> GameSettings:
        return GameSettings(**self.model_dump())


# =============================================================================
# Action payloads
# =============================================================================

class CreateRoomPayload(BaseModel):
    player_name: PlayerName
    settings: Optional[dict[str, Any]] = None
    is_solitaire: bool = False


class RoomCodePayload(BaseModel):
    code: str = Field(pattern=ROOM_CODE_PATTERN)

    @field_validator("code", mode="before")
    @classmethod
    def normalize_code(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value


class JoinRoomPayload(RoomCodePayload):
    player_name: PlayerName


class PlayCardPayload(BaseModel):
    card_id: str = Field(min_length=1)
    pile_id: int = Field(ge=0, lt=FOUNDATION_PILE_COUNT, strict=True)


class UseExceptionPayload(BaseModel):
    card_id: str = Field(min_length=1)


class UpdateSettingsPayload(BaseModel):
    settings: dict[str, Any]


# =============================================================================
# Helpers
# =============================================================================

def _format_error(exc: ValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = error.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def parse_payload(model: type[ModelT], data: dict) -> ModelT:
    """
    Validate a raw payload.

    Raises:
        PayloadInvalid: With the first validation error.
    """
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise PayloadInvalid(_format_error(e)) from e


def resolve_settings(
    overrides: Optional[dict[str, Any]],
    base: dict[str, Any],
    is_solitaire: bool,
) -> GameSettings:
    """
    Merge client overrides onto base settings and validate the result.

    Args:
        overrides: Fields sent by the client, possibly partial.
        base: Server defaults or the room's current settings.
        is_solitaire: Whether the room is single player.

    Raises:
        PayloadInvalid: On out-of-range values or a solitaire/multiplayer mismatch.
    """
    merged = {**base, **(overrides or {})}
    model = parse_payload(GameSettingsModel, merged)

    if is_solitaire:
        if model.min_players != 1 or model.max_players != 1:
            raise PayloadInvalid("Solitaire requires min_players=1 and max_players=1")
        if not model.auto_refill_hand:
            raise PayloadInvalid("Solitaire requires auto_refill_hand=true")
    elif model.min_players < 2:
        raise PayloadInvalid("Multiplayer requires min_players of at least 2")

    return model.to_settings()
