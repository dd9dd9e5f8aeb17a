"""
Environment-based runtime settings.

All fields can be overridden with ``PERSISTQ_*`` environment variables or a
``.env`` file, e.g. ``PERSISTQ_MAX_SIZE=500``.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class QueueRuntimeSettings(BaseSettings):
    queue_name: str = "default"
    persistence_interval_ms: int = Field(default=0, ge=0)
    persistence_directory: str = "queues"
    max_size: int = Field(default=0, ge=0)

    max_retries: int = Field(default=5, ge=0)
    initial_backoff_ms: int = Field(default=100, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)

    remote_timeout_sec: float = Field(default=10.0, gt=0)
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="PERSISTQ_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> QueueRuntimeSettings:
    return QueueRuntimeSettings()
