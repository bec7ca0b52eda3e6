"""Application configuration."""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Upstream storefront API
    api_base_url: str = "http://localhost:5000/api/v1"
    request_timeout: float = 30.0

    # Payload encryption (AES-256-CBC, 32 byte key)
    encryption_key: str = "12345678901234567890123456789012"

    # Client store
    database_url: str = "sqlite+aiosqlite:///./storefront.db"

    # Session
    token_expiry_threshold_minutes: int = 5
    login_path: str = "/login"

    # Orders
    cancellation_window_hours: int = 8

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()
