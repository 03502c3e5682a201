from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, PositiveFloat  # type: ignore
from typing import Optional

from .game_config import GAME_CONFIG


class CoordinatorSettings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=False, populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="GATEWARS_USER_ID")
    resource_tick_seconds: PositiveFloat = Field(
        default=GAME_CONFIG.loop_intervals.resource_tick_seconds,
        alias="RESOURCE_TICK_SECONDS",
    )
    reconcile_poll_seconds: PositiveFloat = Field(
        default=GAME_CONFIG.loop_intervals.reconcile_poll_seconds,
        alias="RECONCILE_POLL_SECONDS",
    )
    persist_save_seconds: PositiveFloat = Field(
        default=GAME_CONFIG.loop_intervals.persist_save_seconds,
        alias="PERSIST_SAVE_SECONDS",
    )
    change_feed_enabled: bool = Field(default=False, alias="CHANGE_FEED_ENABLED")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
