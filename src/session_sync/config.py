"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Server settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    admin_token: str
    adapter_base_url: str
    adapter_token: str
    stream_heartbeat_seconds: float = 15.0
    subscriber_queue_size: int = 100
    audit_enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 3000
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


class ClientSettings(BaseSettings):
    """Settings for the status client running on the device side."""

    api_base_url: str = "http://localhost:3000"
    reconnect_delay_seconds: float = 5.0
    status_check_interval_seconds: float = 600.0
    min_connecting_seconds: float = 3.0
    stream_read_timeout_seconds: float = 45.0

    model_config = SettingsConfigDict(
        env_prefix="SESSION_SYNC_",
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def normalize_identifier(raw: str | None) -> str | None:
    """Strip a user or session id, returning None when it is blank."""
    if raw is None:
        return None
    cleaned = raw.strip()
    return cleaned or None
