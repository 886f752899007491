"""Configuration management for PayBack."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PAYBACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Account
    account_email: str = ""
    current_user_name: str = "Me"

    # Backend (friends roster)
    convex_url: str | None = None
    convex_auth_token: str | None = None

    # Link state reconciliation
    reconcile_cooldown_seconds: float = 300.0  # 5 minutes
    link_failure_retention_seconds: float = 3600.0  # 1 hour
    max_link_retries: int = 5

    # Database path
    database_path: Path = Path.home() / ".payback" / "payback.db"

    def __init__(self, **kwargs):
        """Initialize settings and create database directory if needed."""
        super().__init__(**kwargs)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Check your PAYBACK_* environment "
            f"variables or .env file.\n"
            f"Error: {e}"
        ) from e
