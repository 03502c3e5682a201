from .game_config import GAME_CONFIG, GameSettings, Ship
from .coordinator_config import CoordinatorSettings
from .state_models import (
    ResourceKind,
    ResourceVector,
    QueueKind,
    Building,
    ResearchType,
    UpgradeQueueEntry,
    City,
    GameState,
)
from .redis_config import REDIS_SETTINGS, RedisSettings

__all__ = [
    "GAME_CONFIG",
    "GameSettings",
    "Ship",
    "CoordinatorSettings",
    "ResourceKind",
    "ResourceVector",
    "QueueKind",
    "Building",
    "ResearchType",
    "UpgradeQueueEntry",
    "City",
    "GameState",
    "REDIS_SETTINGS",
    "RedisSettings",
]
