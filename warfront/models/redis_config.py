from pydantic import RedisDsn, PositiveInt
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="")

    redis_url: RedisDsn = "redis://localhost:6379/0"  # type: ignore[assignment]
    key_prefix: str = "warfront"
    activity_stream: str = "warfront:activity"
    activity_maxlen: PositiveInt = 10000
    lease_ttl_ms: PositiveInt = 5000
    lease_wait_ms: PositiveInt = 2000
    capture_result_ttl_seconds: PositiveInt = 86400


REDIS_SETTINGS = RedisSettings()
