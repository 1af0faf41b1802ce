from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./orderflow.db"
    redis_url: str = "redis://localhost:6379/0"
    secret_key: str = "change-me"

    # Internal API security
    staff_api_key: str = ""

    # Tracing
    tracing_enabled: bool = False

    # Staff passcode gate
    staff_passcode_length: int = 4
    # security-lockout: passcode brute force (off by default, trusted staff population)
    staff_passcode_lockout_enabled: bool = False
    staff_passcode_lockout_threshold: int = 5
    staff_passcode_lockout_window_seconds: int = 300
    staff_passcode_lockout_duration_seconds: int = 900

    # Realtime change feed
    realtime_max_retries: int = 3
    realtime_backoff_base_seconds: float = 1.0
    realtime_backoff_max_seconds: float = 10.0
    realtime_queue_size: int = 1000
    realtime_stream_keepalive_seconds: int = 15

    # Kitchen board
    kitchen_waiting_thresholds_minutes: list[int] = Field(default_factory=lambda: [5, 10, 15])
    default_outlet_name: str = "WonderStars"

    @field_validator("kitchen_waiting_thresholds_minutes", mode="before")
    @classmethod
    def _parse_thresholds(cls, value: object) -> list[int]:
        if value is None:
            return [5, 10, 15]
        if isinstance(value, str):
            return [int(item.strip()) for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple)):
            return [int(item) for item in value]
        return [5, 10, 15]


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
