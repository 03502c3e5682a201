from pydantic import Field, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="")

    redis_url: RedisDsn = Field(
        default="redis://localhost:6379/0", validate_default=True
    )
    change_stream: str = "gatewars:changes"


REDIS_SETTINGS = RedisSettings()
