import os
from pathlib import Path

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_database_url() -> str:
    """Get database URL, using absolute path for SQLite to avoid path resolution issues.

    ⚠️ WARNING: SQLite is for local development only.
    - Row-level locking is emulated by taking the database write lock per transaction
    - Use PostgreSQL by setting DATABASE_URL environment variable
    """
    db_url = os.getenv("DATABASE_URL", "")
    if db_url:
        logger.info(f"Using DATABASE_URL from environment: {db_url}")
        return db_url

    db_path = Path(__file__).parent.parent.parent / "catalogue.db"
    abs_path = db_path.resolve()
    db_url = f"sqlite:///{abs_path}"
    logger.warning(
        f"⚠️ Using SQLite database (LOCAL DEV ONLY): {db_url}\n"
        "⚠️ Concurrent edits serialize on the whole database file.\n"
        "⚠️ Set DATABASE_URL environment variable to use PostgreSQL in production."
    )
    return db_url


class Settings(BaseSettings):
    database_url: str = Field(
        default_factory=get_database_url,
        validation_alias="DATABASE_URL",
    )
    db_pool_recycle: int = Field(
        default=3600,
        validation_alias="DB_POOL_RECYCLE",
        description="Seconds before a pooled connection is recycled",
    )
    sqlite_busy_timeout: float = Field(
        default=30.0,
        validation_alias="SQLITE_BUSY_TIMEOUT",
        description="Seconds a SQLite writer waits for the database lock",
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")
    log_json: bool = Field(
        default=False,
        validation_alias="LOG_JSON",
        description="Write the log file as JSON lines",
    )
    like_max_retries: int = Field(
        default=2,
        validation_alias="LIKE_MAX_RETRIES",
        description="Retries of a like transaction after a serialization failure (0 disables)",
    )
    like_retry_delay: float = Field(
        default=0.05,
        validation_alias="LIKE_RETRY_DELAY",
        description="Initial delay between like retries in seconds, doubled per attempt",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate that log level is one of the standard logging levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in valid_levels:
            logger.warning(f"Invalid LOG_LEVEL '{value}'. Valid levels are: {', '.join(valid_levels)}. Defaulting to INFO.")
            return "INFO"
        return upper_value

    @field_validator("like_max_retries")
    @classmethod
    def validate_like_max_retries(cls, value: int) -> int:
        """Negative retry counts are treated as 'no retry'."""
        if value < 0:
            logger.warning(f"LIKE_MAX_RETRIES must be >= 0, got {value}. Disabling retries.")
            return 0
        return value

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
