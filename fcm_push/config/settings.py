from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    log_level: str = "INFO"
    environment: str = "dev"
    # Push backend used for every platform: fcm | logging
    push_backend: str = "fcm"
    # Push (FCM HTTP v1)
    fcm_service_account_file: str | None = None  # Path or inline JSON
    fcm_endpoint: str = "https://fcm.googleapis.com"
    fcm_timeout_seconds: float = 10.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator("push_backend")
    @classmethod
    def normalize_push_backend(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in {"fcm", "logging"}:
            raise ValueError(f"Unsupported push backend: {value}")
        return value

    @field_validator("fcm_endpoint")
    @classmethod
    def ensure_https_endpoint(cls, value: str) -> str:
        if not value.startswith("https://"):
            raise ValueError("fcm_endpoint must use https://")
        return value.rstrip("/")

    @property
    def fcm_service_account_is_inline(self) -> bool:
        """True when fcm_service_account_file holds the JSON document itself."""
        content = (self.fcm_service_account_file or "").strip()
        return content.startswith("{")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
