"""
Centralized configuration for the Rapid Offer pipeline.

All settings are loaded from environment variables via .env file.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_title: str = Field(default="Rapid Offer Pipeline API")
    api_version: str = Field(default="1.0.0")
    api_key: Optional[str] = Field(default=None)
    cors_origins: str = Field(default="*")
    rate_limit_per_minute: int = Field(default=300)

    # Auth
    jwt_secret_key: str = Field(default="change-me-in-production")
    jwt_algorithm: str = Field(default="HS256")
    jwt_expire_minutes: int = Field(default=60)

    # Database
    database_url: str = Field(default="sqlite+aiosqlite:///./rapid_offer.db")
    db_pool_size: int = Field(default=5)
    db_max_overflow: int = Field(default=10)

    # Routing SLAs (hours)
    sla_hours_a: int = Field(default=2)
    sla_hours_b: int = Field(default=24)
    sla_hours_c: int = Field(default=72)

    # Queues / reports
    queue_page_size: int = Field(default=100)
    routing_performance_default_days: int = Field(default=30)

    # Scheduler
    scheduler_enabled: bool = Field(default=False)
    reconciliation_interval_minutes: int = Field(default=15)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="text")  # text | json
    debug: bool = Field(default=False)

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def sla_hours(self) -> dict:
        return {"A": self.sla_hours_a, "B": self.sla_hours_b, "C": self.sla_hours_c}


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
