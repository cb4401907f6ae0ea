"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is malformed.
"""
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 5000
    log_level: str = "INFO"
    allowed_origins: str = ""  # Comma-separated CORS origins (localhost dev origins always allowed)

    # Database
    database_url: str = "sqlite+aiosqlite:///./whatsapp.db"
    database_pool_size: int = 20
    database_max_overflow: int = 10
    database_auto_create: bool = True  # create_all on startup; disable when Alembic owns the schema

    # Webhook relay
    default_webhook_url: str = ""  # Used when no destination is configured from the dashboard

    # Media
    media_dir: str = "uploads"
    max_upload_bytes: int = 10 * 1024 * 1024

    # Messaging client (Evolution API gateway)
    evolution_api_url: str = "http://localhost:8080"
    evolution_api_key: str = ""
    evolution_instance_name: str = "whatsapp-web-client"
    messaging_auto_connect: bool = True
    messaging_connect_delay_seconds: float = 2.0
    # Sent-message echoes wait this long so the admin send path logs first
    sent_echo_log_delay_seconds: float = 2.0
    event_queue_size: int = 1000

    # Sentry
    sentry_dsn: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
