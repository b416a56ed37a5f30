from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional
import os


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )
    # Application
    app_name: str = "Standup Scribe"
    app_version: str = "1.0.0"
    debug: bool = Field(default=False)

    # Database
    database_url: str = Field(default="sqlite+aiosqlite:///./standup_scribe.db")
    database_echo: bool = Field(default=False)

    # Authentication & Security
    secret_key: str = Field(default="change-me")
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # Slack
    slack_bot_token: Optional[str] = Field(default=None)
    slack_signing_secret: Optional[str] = Field(default=None)

    # Google Sheets (service account JSON, inline)
    google_service_account_json: Optional[str] = Field(default=None)

    # Notion
    notion_token: Optional[str] = Field(default=None)

    # CSV exports
    exports_dir: str = Field(default="exports")

    # Workflow & Scheduling
    enable_scheduled_tasks: bool = Field(default=True)
    default_timezone: str = Field(default="UTC")
    scheduler_interval_seconds: int = Field(default=60, ge=1)
    delivery_interval_seconds: int = Field(default=60, ge=1)
    cleanup_interval_seconds: int = Field(default=60, ge=1)
    cleanup_hour: int = Field(default=2, ge=0, le=23)  # UTC

    # Delivery retry policy
    delivery_batch_size: int = Field(default=10, ge=1)
    max_delivery_attempts: int = Field(default=8, ge=1)
    delivery_backoff_minutes: List[int] = Field(
        default=[1, 5, 15, 60, 360, 1440]  # 1m, 5m, 15m, 1h, 6h, 24h
    )

    # CORS
    allowed_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"]
    )

    # Logging
    log_level: str = Field(default="INFO")


# Global settings instance
settings = Settings()


# Environment-specific configurations
class DevelopmentConfig(Settings):
    debug: bool = True
    database_echo: bool = True
    log_level: str = "DEBUG"


class ProductionConfig(Settings):
    debug: bool = False
    database_echo: bool = False
    log_level: str = "WARNING"


class TestingConfig(Settings):
    database_url: str = "sqlite+aiosqlite:///:memory:"
    secret_key: str = "test-secret-key"
    enable_scheduled_tasks: bool = False


def get_settings() -> Settings:
    """Factory function to get settings based on environment"""
    env = os.getenv("ENVIRONMENT", "development").lower()

    if env == "production":
        return ProductionConfig()
    elif env == "testing":
        return TestingConfig()
    else:
        return DevelopmentConfig()
