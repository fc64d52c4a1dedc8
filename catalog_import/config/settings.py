"""
Configuration settings for the catalog import pipeline
Loads from environment variables and .env file
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ImportSettings(BaseSettings):
    """
    Import pipeline settings.

    Load from environment variables with IMPORT_ prefix.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="IMPORT_LOG_LEVEL")

    # Storage
    database_url: str = Field(default="sqlite:///catalog_import.db", alias="DATABASE_URL")
    db_pool_size: int = Field(default=5, alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=10, alias="DB_MAX_OVERFLOW")

    # Redis / Celery
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    celery_broker_url: str = Field(default="", alias="CELERY_BROKER_URL")
    celery_result_backend: str = Field(default="", alias="CELERY_RESULT_BACKEND")

    # Chunk sizing
    memory_limit_mb: int = Field(default=512, alias="IMPORT_MEMORY_LIMIT_MB")
    min_chunk_size: int = Field(default=100, alias="IMPORT_MIN_CHUNK_SIZE")
    max_chunk_size: int = Field(default=5000, alias="IMPORT_MAX_CHUNK_SIZE")
    estimated_row_bytes: int = Field(default=1024, alias="IMPORT_ESTIMATED_ROW_BYTES")
    memory_pressure_threshold: float = Field(default=0.85, alias="IMPORT_MEMORY_PRESSURE")
    chunk_shrink_factor: float = Field(default=0.8, alias="IMPORT_CHUNK_SHRINK_FACTOR")

    # Worksheet analysis
    exact_row_count_threshold: int = Field(default=1000, alias="IMPORT_EXACT_ROW_COUNT_THRESHOLD")
    max_worksheets: int = Field(default=50, alias="IMPORT_MAX_WORKSHEETS")
    header_sample_rows: int = Field(default=5, alias="IMPORT_HEADER_SAMPLE_ROWS")

    # Transformation
    target_encoding: str = Field(default="utf-8", alias="IMPORT_TARGET_ENCODING")
    drop_threshold_cm: float = Field(default=120.0, alias="IMPORT_DROP_THRESHOLD_CM")

    # Progress
    progress_every_rows: int = Field(default=50, alias="IMPORT_PROGRESS_EVERY_ROWS")
    progress_cache_ttl: int = Field(default=86400, alias="IMPORT_PROGRESS_CACHE_TTL")  # 24 hours
    inline_result_limit_bytes: int = Field(default=65536, alias="IMPORT_INLINE_RESULT_LIMIT")
    temp_data_dir: str = Field(default="temp_data", alias="IMPORT_TEMP_DATA_DIR")
    cleanup_days_old: int = Field(default=7, alias="IMPORT_CLEANUP_DAYS_OLD")

    # Dry run
    dry_run_max_rows: int = Field(default=1000, alias="IMPORT_DRY_RUN_MAX_ROWS")
    dry_run_check_rows: int = Field(default=100, alias="IMPORT_DRY_RUN_CHECK_ROWS")

    @field_validator("memory_pressure_threshold", "chunk_shrink_factor")
    @classmethod
    def validate_ratio(cls, v: float) -> float:
        """Ratios must sit in (0, 1]."""
        if not 0 < v <= 1:
            raise ValueError(f"Ratio must be between 0 and 1, got {v}")
        return v

    @field_validator("min_chunk_size", "max_chunk_size")
    @classmethod
    def validate_chunk_bounds(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Chunk size bounds must be positive")
        return v

    @property
    def broker_url(self) -> str:
        return self.celery_broker_url or self.redis_url

    @property
    def result_backend(self) -> str:
        return self.celery_result_backend or self.redis_url


@lru_cache()
def get_settings() -> ImportSettings:
    """Get cached settings instance"""
    return ImportSettings()
