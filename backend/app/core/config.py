"""Configuration settings for the replay registry application."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Primary (write) database
    postgres_db: str = Field(default="replays_db")
    postgres_user: str = Field(default="replays_user")
    postgres_password: str = Field(default="dev_password")
    postgres_host: str = Field(default="postgres")
    postgres_port: int = Field(default=5432)

    # Read replica, queries fall back to the primary when unset
    postgres_replica_host: Optional[str] = Field(default=None)
    postgres_replica_port: Optional[int] = Field(default=None)

    query_timeout_ms: int = Field(
        default=30000,
        ge=1,
        description="Maximum execution time for catalog queries on the replica",
    )

    @property
    def database_url(self) -> str:
        """Construct async database URL for the primary."""
        return self._build_url(self.postgres_host, self.postgres_port)

    @property
    def replica_database_url(self) -> str:
        """Construct async database URL for the read replica."""
        if not self.postgres_replica_host:
            return self.database_url
        return self._build_url(
            self.postgres_replica_host,
            self.postgres_replica_port or self.postgres_port,
        )

    def _build_url(self, host: str, port: int) -> str:
        return f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}@{host}:{port}/{self.postgres_db}"

    # Application Configuration
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)

    # CORS Configuration
    cors_origins: str = Field(default="http://localhost:3000,http://127.0.0.1:3000")

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list."""
        return [
            origin.strip() for origin in self.cors_origins.split(",") if origin.strip()
        ]

    # Replay file storage
    replay_storage_dir: Path = Field(default=Path("storage/replays"))
    replay_base_url: str = Field(default="http://localhost:8000/files")

    # External replay parser
    parser_command: str = Field(
        default="hots-parser --json",
        description="Executable (and leading arguments) that prints a parsed replay as JSON",
    )
    parser_timeout_seconds: float = Field(default=60.0, gt=0)

    # Upload relay
    relay_enabled: bool = Field(default=True)
    relay_url: str = Field(default="https://relay.example.com/api/replays")
    relay_workers: int = Field(default=2, ge=1)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalise and validate the configured log level."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log level: {v}")
        return level

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix for environment variables
        extra="ignore",
    )


def get_settings() -> Settings:
    """Get application settings instance."""
    return Settings()


# Create a global settings instance lazily
settings: Settings | None = None


def get_global_settings() -> Settings:
    """Get or create the global settings instance."""
    global settings
    if settings is None:
        settings = get_settings()
    return settings
