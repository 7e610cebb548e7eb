"""Settings for the peerlink suggestion and sync core."""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
    if env_names:
        alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
        return Field(default=default, validation_alias=alias)
    return Field(default=default)


class Settings(BaseSettings):
    redis_url: str = _env_field("redis://localhost:6379/0", "REDIS_URL")
    environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
    service_name: str = _env_field("peerlink", "SERVICE_NAME")
    # Stable per-device replica id; a random one is generated when unset.
    # Pending-connection dots are named from this id and the local sequence, so a
    # fixed id must not be reused after losing state that peers already received.
    replica_id: Optional[str] = _env_field(None, "REPLICA_ID")

    obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
    obs_log_sampling_rate_info: float = _env_field(1.0, "LOG_SAMPLING_RATE_INFO")

    snapshot_key_prefix: str = _env_field("peerlink:doc:", "SNAPSHOT_KEY_PREFIX")
    snapshot_retry_delay_seconds: float = _env_field(1.0, "SNAPSHOT_RETRY_DELAY_SECONDS")

    sync_url: str = _env_field("http://localhost:8000", "SYNC_URL")
    sync_namespace: str = _env_field("/sync", "SYNC_NAMESPACE")
    sync_connect_timeout_seconds: float = _env_field(5.0, "SYNC_CONNECT_TIMEOUT_SECONDS")
    sync_reconnect_base_seconds: float = _env_field(5.0, "SYNC_RECONNECT_BASE_SECONDS")
    sync_reconnect_factor: float = _env_field(2.0, "SYNC_RECONNECT_FACTOR")
    sync_reconnect_max_seconds: float = _env_field(60.0, "SYNC_RECONNECT_MAX_SECONDS")

    # Simulated network behaviour of the connect intent
    connect_failure_probability: float = _env_field(0.1, "CONNECT_FAILURE_PROBABILITY")
    connect_delay_seconds: float = _env_field(0.8, "CONNECT_DELAY_SECONDS")

    default_suggestion_limit: int = _env_field(8, "DEFAULT_SUGGESTION_LIMIT")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("obs_log_level", mode="before")
    def _normalise_level(cls, value):  # type: ignore[override]
        if value in (None, ""):
            return "INFO"
        return str(value).strip().upper()

    @field_validator("connect_failure_probability", "obs_log_sampling_rate_info", mode="after")
    def _clamp_rate(cls, value: float) -> float:  # type: ignore[override]
        return max(0.0, min(1.0, float(value)))


settings = Settings()
