from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    app_env: str = "dev"
    log_level: str = "INFO"
    port: int = Field(default=3000, validation_alias="PORT")
    database_url: str = Field(..., validation_alias="DATABASE_URL")
    ghl_api_base: str = Field(
        default="https://services.leadconnectorhq.com", validation_alias="GHL_API_BASE"
    )
    ghl_api_key: str = Field(..., validation_alias="GHL_API_KEY")
    ghl_location_id: str = Field(..., validation_alias="GHL_LOCATION_ID")
    ghl_api_version: str = Field(default="2021-07-28", validation_alias="GHL_API_VERSION")
    ghl_timeout_seconds: int = Field(default=15, validation_alias="GHL_TIMEOUT_SECONDS")
    site_url: str = Field("http://localhost:3000", validation_alias="SITE_URL")
    affiliate_tag: str = Field(default="affiliate-active", validation_alias="AFFILIATE_TAG")
    email_subject: str = Field(
        default="Your Apex Automation Login Link", validation_alias="EMAIL_SUBJECT"
    )
    token_sweep_interval_seconds: int = Field(
        default=900, validation_alias="TOKEN_SWEEP_INTERVAL_SECONDS"
    )
    rate_limit_link_requests: int = Field(default=5, validation_alias="RATE_LIMIT_LINK_REQUESTS")
    rate_limit_link_window_seconds: int = Field(
        default=60, validation_alias="RATE_LIMIT_LINK_WINDOW_SECONDS"
    )
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"], validation_alias="CORS_ALLOW_ORIGINS"
    )

    @field_validator("ghl_api_key", "ghl_location_id")
    @classmethod
    def _not_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("CRM credentials must not be empty")
        return value.strip()

    @field_validator("site_url", "ghl_api_base")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("token_sweep_interval_seconds")
    @classmethod
    def _positive_interval(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("TOKEN_SWEEP_INTERVAL_SECONDS must be positive")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()
