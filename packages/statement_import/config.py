"""Centralized import configuration via Pydantic Settings.

Loads the tunables of the CSV import pipeline (row caps, size limits,
duplicate-check timeout, data-source credentials) into a typed Settings
instance.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Import settings loaded from environment variables."""

    # Supabase
    SUPABASE_URL: str = Field(default="", description="Supabase project URL")
    SUPABASE_KEY: str = Field(
        default="",
        description="Supabase key used to read existing transactions",
    )
    TRANSACTIONS_TABLE: str = Field(
        default="transactions",
        description="Table holding committed ledger transactions",
    )

    # Parsing limits
    MAX_ROWS: int = Field(default=1000, description="Rows kept before truncating")
    MAX_FILE_SIZE: int = Field(
        default=5 * 1024 * 1024,
        description="Largest accepted CSV payload in bytes",
    )
    MAX_DESCRIPTION_LENGTH: int = Field(
        default=500,
        description="Sanitized descriptions are cut to this many characters",
    )
    DEFAULT_DATE_FORMAT: str = Field(
        default="DD/MM/YYYY",
        description="Date format assumed when no bank preset matches",
    )

    # Duplicate detection
    DUPLICATE_FETCH_TIMEOUT: float = Field(
        default=10.0,
        description="Seconds to wait for the existing-transaction fetch",
    )

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Python log level")
    ENVIRONMENT: str = Field(
        default="development",
        description="Runtime environment: development, staging, production",
    )

    @property
    def json_logs(self) -> bool:
        """JSON log lines everywhere except local development."""
        return self.ENVIRONMENT != "development"

    model_config = {"env_file": ".env", "extra": "ignore"}


def get_settings() -> Settings:
    """Factory for Settings, allows test override."""
    return Settings()


settings = get_settings()
