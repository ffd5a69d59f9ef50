from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./repaircoin.db"
    database_echo: bool = False
    log_level: str = "INFO"

    # Internal API security
    admin_api_key: str = ""

    # RCG governance token reads
    rpc_url: str | None = None
    rcg_contract_address: str | None = None
    rcg_token_decimals: int = 18
    rpc_timeout_seconds: float = 10.0

    # Scheduled cleanup
    cleanup_schedule_enabled: bool = False
    cleanup_interval_hours: float = 24.0
    cleanup_webhook_retention_days: int = 90
    cleanup_transaction_archive_days: int = 365

    # Recurring job scheduler
    job_scheduler_enabled: bool = False
    job_schedule_path: str = "config/schedules.toml"

    # Webhook delivery logging
    webhook_logging_enabled: bool = True
    webhook_max_retry_attempts: int = 3
    webhook_retry_cooldown_seconds: int = 5 * 60
    webhook_retry_batch_size: int = 100

    # No-show notifications
    no_show_notifications_enabled: bool = True
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    smtp_sender_email: str | None = None
    operator_alert_recipients: list[str] = Field(default_factory=list)

    @field_validator("operator_alert_recipients", mode="before")
    @classmethod
    def _parse_recipient_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
