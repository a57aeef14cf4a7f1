"""Configuration settings for dynamiccrud."""

# flake8: noqa: E501


from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

CACHE_BACKENDS = ("none", "memory", "file", "redis")


class Settings(BaseSettings):
    """Main configuration for dynamiccrud applications."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
    )

    # Application
    app_name: str = Field(default="DynamicCRUD", description="Application title")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: str = Field(
        default="development",
        description="Runtime environment (development, production, testing)",
    )
    secret_key: str = Field(
        default="change-me",
        description="Flask secret key used to sign sessions and CSRF tokens",
    )
    csrf_enabled: bool = Field(default=True, description="Enable CSRF protection")

    # Database Configuration
    database_url: Optional[str] = Field(
        default=None,
        description="Full database URI (takes precedence over DB_* components)",
    )
    db_type: str = Field(
        default="mysql", description="Database type (mysql, postgresql, sqlite)"
    )
    db_host: str = Field(default="localhost", description="Database host")
    db_port: Optional[int] = Field(
        default=None,
        description="Database port (defaults to 3306 for MySQL, 5432 for PostgreSQL)",
    )
    db_name: str = Field(default="test", description="Database name")
    db_user: str = Field(default="root", description="Database username")
    db_password: str = Field(default="", description="Database password")
    db_pool_size: int = Field(default=10, description="Connection pool size")
    db_folder: str = Field(
        default="databases", description="pyDAL metadata folder"
    )
    db_connect_retries: int = Field(
        default=30, description="Connection attempts before giving up"
    )
    db_retry_delay: float = Field(
        default=1.0, description="Seconds between connection attempts"
    )

    # Schema cache
    cache_backend: str = Field(
        default="file", description="Schema cache backend (none, memory, file, redis)"
    )
    cache_dir: str = Field(
        default=".dynamiccrud_cache", description="Directory for the file cache"
    )
    cache_ttl: int = Field(
        default=3600, description="Schema cache TTL in seconds (default: 1 hour)"
    )
    redis_url: Optional[str] = Field(
        default=None, description="Redis URL for the redis cache backend"
    )

    # File uploads
    upload_dir: str = Field(default="uploads", description="Upload directory")
    upload_url_prefix: str = Field(
        default="/uploads/", description="Public URL prefix for uploaded files"
    )
    upload_max_size: int = Field(
        default=5 * 1024 * 1024, description="Maximum upload size in bytes (5MB)"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(
        default="console", description="Log format: console or json"
    )

    # Presentation
    theme: Optional[str] = Field(
        default=None, description="Theme activated at startup (minimal, modern, classic)"
    )
    tables: str = Field(
        default="",
        description="Comma-separated list of tables exposed through the web UI",
    )
    per_page: int = Field(default=20, description="Default rows per list page")

    @field_validator("cache_backend")
    @classmethod
    def validate_cache_backend(cls, v: str) -> str:
        """Ensure the cache backend is one we know how to build."""
        v = v.lower()
        if v not in CACHE_BACKENDS:
            raise ValueError(f"cache_backend must be one of {', '.join(CACHE_BACKENDS)}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Ensure the log format is console or json."""
        v = v.lower()
        if v not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return v

    @property
    def table_list(self) -> List[str]:
        """Tables exposed through the web UI."""
        return [t.strip() for t in self.tables.split(",") if t.strip()]

    @property
    def is_testing(self) -> bool:
        """Check whether the settings describe a test run."""
        return self.environment == "testing"


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
