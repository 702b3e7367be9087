"""Application configuration using pydantic-settings."""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOT_METHODS = ("FIFO", "LIFO", "HIFO", "AVG")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = "sqlite:///./wealth_ledger.db"

    # Lot accounting
    DEFAULT_LOT_METHOD: str = "HIFO"
    LONG_TERM_HOLDING_DAYS: int = 365

    # CSV import
    IMPORT_PREVIEW_ROWS: int = 10
    IMPORT_MAX_ROWS: int = 50_000
    IMPORT_TIMEOUT_SECONDS: float = 120.0

    # App settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize LOG_LEVEL to an uppercase Python logging level."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}, got {v!r}")
        return v.upper()

    @field_validator("DEFAULT_LOT_METHOD", mode="before")
    @classmethod
    def validate_lot_method(cls, v: str) -> str:
        """Normalize DEFAULT_LOT_METHOD and reject unknown accounting methods."""
        if v.upper() not in LOT_METHODS:
            raise ValueError(
                f"DEFAULT_LOT_METHOD must be one of {LOT_METHODS}, got {v!r}"
            )
        return v.upper()

    @field_validator("IMPORT_PREVIEW_ROWS", "IMPORT_MAX_ROWS")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Import row limits must be positive")
        return v


settings = Settings()
