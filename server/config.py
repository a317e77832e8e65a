"""
Centralized configuration for the Up-N-Down game server.

Configuration is loaded from (in order of precedence):
1. Environment variables
2. .env file (if exists)
3. Default values

Usage:
    from config import config
    print(config.PORT)
    print(config.game_defaults.hand_size)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from constants import DEFAULT_EXCEPTION_TRIGGER_NAME

env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_env(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    if val in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


@dataclass
class GameDefaults:
    """Default game settings offered to clients that do not send their own."""
    min_card_value: int = 2
    max_card_value: int = 99
    hand_size: int = 7
    min_players: int = 2
    max_players: int = 6
    min_cards_per_turn: int = 2
    auto_refill_hand: bool = False

    def to_dict(self, solitaire: bool = False) -> dict:
        """
        Get defaults as a settings dict.

        Solitaire always seats exactly one player and refills after every play.
        """
        return {
            "min_card_value": self.min_card_value,
            "max_card_value": self.max_card_value,
            "hand_size": self.hand_size,
            "min_players": 1 if solitaire else self.min_players,
            "max_players": 1 if solitaire else self.max_players,
            "min_cards_per_turn": self.min_cards_per_turn,
            "auto_refill_hand": True if solitaire else self.auto_refill_hand,
            "allow_undo": False,
            "private_game": solitaire,
        }


@dataclass
class ServerConfig:
    """Server configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 3001
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Redis backs the HTTP API rate limiter only
    REDIS_URL: Optional[str] = None
    RATE_LIMIT_ENABLED: bool = True

    # Orphan room reclamation
    LOBBY_ROOM_TTL_SECONDS: int = 5 * 60
    ACTIVE_ROOM_TTL_SECONDS: int = 30 * 60
    ROOM_SWEEP_INTERVAL_SECONDS: int = 60
    ROOM_CODE_ATTEMPTS: int = 20

    EXCEPTION_TRIGGER_NAME: str = DEFAULT_EXCEPTION_TRIGGER_NAME

    game_defaults: GameDefaults = field(default_factory=GameDefaults)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        return cls(
            HOST=get_env("HOST", "0.0.0.0"),
            PORT=get_env_int("PORT", 3001),
            DEBUG=get_env_bool("DEBUG", False),
            LOG_LEVEL=get_env("LOG_LEVEL", "INFO"),
            ENVIRONMENT=get_env("ENVIRONMENT", "development"),
            REDIS_URL=get_env("REDIS_URL") or None,
            RATE_LIMIT_ENABLED=get_env_bool("RATE_LIMIT_ENABLED", True),
            LOBBY_ROOM_TTL_SECONDS=get_env_int("LOBBY_ROOM_TTL_SECONDS", 5 * 60),
            ACTIVE_ROOM_TTL_SECONDS=get_env_int("ACTIVE_ROOM_TTL_SECONDS", 30 * 60),
            ROOM_SWEEP_INTERVAL_SECONDS=get_env_int("ROOM_SWEEP_INTERVAL_SECONDS", 60),
            ROOM_CODE_ATTEMPTS=get_env_int("ROOM_CODE_ATTEMPTS", 20),
            EXCEPTION_TRIGGER_NAME=get_env("EXCEPTION_TRIGGER_NAME", DEFAULT_EXCEPTION_TRIGGER_NAME),
            game_defaults=GameDefaults(
                min_card_value=get_env_int("DEFAULT_MIN_CARD_VALUE", 2),
                max_card_value=get_env_int("DEFAULT_MAX_CARD_VALUE", 99),
                hand_size=get_env_int("DEFAULT_HAND_SIZE", 7),
                min_players=get_env_int("DEFAULT_MIN_PLAYERS", 2),
                max_players=get_env_int("DEFAULT_MAX_PLAYERS", 6),
                min_cards_per_turn=get_env_int("DEFAULT_MIN_CARDS_PER_TURN", 2),
                auto_refill_hand=get_env_bool("DEFAULT_AUTO_REFILL_HAND", False),
            ),
        )


# Global config instance - loaded once at module import
config = ServerConfig.from_env()


def reload_config() -> ServerConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = ServerConfig.from_env()
    return config
