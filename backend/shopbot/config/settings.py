# /shopbot/config/settings.py

import sys
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App Behavior
    environment: str = Field(default="production")
    log_level: str = "INFO"
    api_version: str = "v1"
    host: str = "0.0.0.0"
    port: int = 8000
    mock_mode: bool = False

    # Conversation
    trigger_code: Optional[str] = None
    flow_definition_path: Optional[str] = None
    messages_path: Optional[str] = None
    session_sweep_interval_seconds: int = 60
    catalog_list_limit: int = 20

    # Green API (WhatsApp)
    green_api_instance_id: Optional[str] = None
    green_api_token: Optional[str] = None
    green_api_base_url: str = "https://api.green-api.com"

    # WooCommerce
    woocommerce_store_url: Optional[str] = None
    woocommerce_consumer_key: Optional[str] = None
    woocommerce_consumer_secret: Optional[str] = None

    # ---------------- Validators ---------------- #

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        level = v.upper()
        if level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG (got {v!r})")
        return level

    @field_validator("trigger_code")
    @classmethod
    def blank_trigger_code_means_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("green_api_base_url", "woocommerce_store_url")
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return v
        return v.rstrip("/")

    @field_validator("session_sweep_interval_seconds", "catalog_list_limit")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @property
    def woocommerce_configured(self) -> bool:
        return bool(self.woocommerce_store_url and self.woocommerce_consumer_key and self.woocommerce_consumer_secret)

    @property
    def green_api_configured(self) -> bool:
        return bool(self.green_api_instance_id and self.green_api_token)


def validate_environment(settings_obj: Settings):
    try:
        if not settings_obj.mock_mode and settings_obj.environment != "test":
            if not settings_obj.green_api_configured:
                raise ValueError("GREEN_API_INSTANCE_ID and GREEN_API_TOKEN are required unless MOCK_MODE is enabled")

        if settings_obj.environment == "production" and settings_obj.mock_mode:
            print("--- [WARNING] MOCK_MODE is enabled in production; no messages will be delivered.")

        return settings_obj

    except Exception as e:
        print(f"--- [ERROR] Environment validation failed: {e}")
        sys.exit(1)


settings = Settings()
validate_environment(settings)
