"""Admin back office configuration."""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class WebSettings(BaseSettings):
    """Settings for the admin back office API."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    # App
    debug: bool = Field(default=False, alias="WEB_DEBUG")
    secret_key: str = Field(..., alias="WEB_SECRET_KEY")
    host: str = Field(default="0.0.0.0", alias="WEB_HOST")
    port: int = Field(default=8081, alias="WEB_PORT")

    # JWT (tokens are issued by the storefront auth service)
    jwt_algorithm: str = Field(default="HS256", alias="WEB_JWT_ALGORITHM")

    # CORS
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="WEB_CORS_ORIGINS"
    )

    # Database
    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")
    db_pool_min_size: int = Field(default=2, alias="DB_POOL_MIN_SIZE")
    db_pool_max_size: int = Field(default=10, alias="DB_POOL_MAX_SIZE")

    # Bulk operations
    bulk_max_rows: int = Field(default=100, alias="BULK_MAX_ROWS")
    import_max_bytes: int = Field(default=5 * 1024 * 1024, alias="IMPORT_MAX_BYTES")  # 5 MB upload
    import_max_rows: int = Field(default=1000, alias="IMPORT_MAX_ROWS")
    export_max_rows: int = Field(default=10000, alias="EXPORT_MAX_ROWS")

    # Logging
    log_level: str = Field(default="INFO", alias="WEB_LOG_LEVEL")
    log_dir: str = Field(default="/app/logs", alias="WEB_LOG_DIR")

    @field_validator("jwt_algorithm", mode="before")
    @classmethod
    def validate_jwt_algorithm(cls, v):
        """Only allow secure HMAC-based JWT algorithms."""
        allowed = {"HS256", "HS384", "HS512"}
        if v not in allowed:
            raise ValueError(f"JWT algorithm must be one of {allowed}, got: {v}")
        return v

    @field_validator("bulk_max_rows", "export_max_rows", "import_max_bytes", "import_max_rows")
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("must be a positive integer")
        return v

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        if not self.cors_origins_raw:
            return []
        return [origin.strip() for origin in self.cors_origins_raw.split(",") if origin.strip()]


@lru_cache()
def get_web_settings() -> WebSettings:
    """Get cached web settings."""
    return WebSettings()
