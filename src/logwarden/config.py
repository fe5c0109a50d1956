"""Configuration via pydantic-settings — 12-factor app style."""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Logwarden configuration — loaded from env vars / .env file."""

    model_config = SettingsConfigDict(env_prefix="LOGWARDEN_", env_file=".env")

    evaluation_interval: float = Field(default=30.0, description="Seconds between alert evaluation ticks")
    message_preview_chars: int = Field(default=200, description="Max log message length stored in trigger data")
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis URL for the alert state store")
    redis_prefix: str = Field(default="logwarden", description="Key prefix for everything written to Redis")
    smtp_host: str = Field(default="localhost", description="SMTP server for email alerts")
    smtp_port: int = Field(default=587, description="SMTP port")
    smtp_user: str = Field(default="", description="SMTP login user (empty = no auth)")
    smtp_password: str = Field(default="", description="SMTP login password")
    smtp_use_tls: bool = Field(default=True, description="Issue STARTTLS before sending")
    alert_from_email: str = Field(default="alerts@logwarden.local", description="From address on alert emails")
    pushover_api_url: str = Field(
        default="https://api.pushover.net/1/messages.json",
        description="Pushover messages endpoint",
    )
    notify_timeout: float = Field(default=10.0, description="Per-delivery network timeout in seconds")
    log_level: str = Field(default="INFO", description="Root log level for the CLI")


settings = Settings()
