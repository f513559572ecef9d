"""Runtime configuration based on environment variables."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, HttpUrl, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderSettings(BaseModel):
    base_url: HttpUrl = Field(default="https://api.waqi.info")
    api_token: SecretStr | None = Field(
        default=None,
        description="WAQI token injected into every upstream request.",
    )
    request_timeout_seconds: float = Field(default=10.0, gt=0, le=120)
    retry_attempts: int = Field(default=2, ge=1, le=5)
    retry_base_delay: float = Field(default=0.5, ge=0)


class GeocodingSettings(BaseModel):
    base_url: HttpUrl = Field(default="https://nominatim.openstreetmap.org")
    user_agent: str = Field(default="AQI-Pro-App/1.0", min_length=1)
    result_limit: int = Field(default=1, ge=1, le=10)


class DatabaseSettings(BaseModel):
    dsn: str = Field(
        default="sqlite+aiosqlite:///./aqi_dashboard.db",
        description="SQLAlchemy async DSN for the reading cache and preferences.",
    )
    echo: bool = False


class CacheSettings(BaseModel):
    reading_ttl_seconds: int = Field(default=30 * 60, ge=1)


class SearchSettings(BaseModel):
    debounce_ms: int = Field(default=300, ge=0, le=5000)
    min_query_length: int = Field(default=2, ge=1)
    max_suggestions: int = Field(default=5, ge=1, le=50)
    recent_capacity: int = Field(default=5, ge=1, le=50)


class ServerSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class ShareCardSettings(BaseModel):
    font_path: str | None = None
    brand: str = "AQI PRO"

    @field_validator("font_path", mode="before")
    @classmethod
    def _empty_str_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AQI_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    environment: Literal["dev", "staging", "prod"] = "dev"
    default_city: str = "Pune"
    nearby_delta_degrees: float = Field(default=0.5, gt=0, le=5)

    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    geocoding: GeocodingSettings = Field(default_factory=GeocodingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    share_card: ShareCardSettings = Field(default_factory=ShareCardSettings)


@lru_cache
def get_settings() -> AppSettings:
    """Return cached settings instance."""

    return AppSettings()


__all__ = [
    "AppSettings",
    "CacheSettings",
    "DatabaseSettings",
    "GeocodingSettings",
    "ProviderSettings",
    "SearchSettings",
    "ServerSettings",
    "ShareCardSettings",
    "get_settings",
]
