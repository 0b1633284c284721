from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./vista_coupons.db"
    tracing_enabled: bool = True
    device_id: str = "kiosk-01"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Promotion calendar
    promotions_path: str = "config/promotions.toml"
    timezone: str = "Asia/Bangkok"

    # Identity validation service
    validation_endpoint_url: str = ""
    validation_max_attempts: int = 2
    validation_initial_timeout_seconds: float = 35.0
    validation_timeout_increment_seconds: float = 10.0
    validation_retry_delay_seconds: float = 2.0

    # Usage logging sink (fire-and-forget)
    usage_log_endpoint_url: str = ""
    usage_log_enabled: bool = True
    usage_log_timeout_seconds: float = 10.0

    # Branch lookup
    branch_lookup_timeout_seconds: float = 10.0
    branch_name: str | None = None

    # Journey timing
    registration_settle_delay_seconds: float = 3.0
    redemption_countdown_seconds: int = 300

    # Redemption codes
    member_code_prefix: str = "VM"
    guest_code_prefix: str = "LF"

    # Kiosk front-end origins allowed to call the journey API
    cors_origins: list[str] = Field(default_factory=list)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _parse_origin_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []

    @field_validator("validation_max_attempts")
    @classmethod
    def _at_least_one_attempt(cls, value: int) -> int:
        return max(value, 1)


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
