"""
Settings Module
===============

Pydantic-based configuration with environment variable loading.

Version: 0.1.0
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LedgerMode(str, Enum):
    """Ledger backend selection."""

    MOCK = "mock"
    JOURNAL = "journal"


class StorageBackend(str, Enum):
    """Payload / metadata storage selection."""

    MEMORY = "memory"
    LOCAL = "local"
    POSTGRES = "postgres"


class PostgresSettings(BaseSettings):
    """PostgreSQL database configuration."""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = "localhost"
    port: int = 5432
    user: str = "custody"
    password: SecretStr = SecretStr("custody_dev_password")
    db: str = "custody"

    # Full URL override (e.g. sqlite+aiosqlite:///custody.db)
    url_override: str = Field(default="", alias="DATABASE_URL")

    @property
    def async_url(self) -> str:
        """Generate async SQLAlchemy connection URL."""
        if self.url_override:
            return self.url_override
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.db}"


class StorageSettings(BaseSettings):
    """Evidence payload and metadata storage."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    payload_backend: StorageBackend = StorageBackend.LOCAL
    metadata_backend: StorageBackend = StorageBackend.MEMORY
    base_dir: Path = Path("storage")


class LedgerSettings(BaseSettings):
    """Append-only ledger configuration."""

    model_config = SettingsConfigDict(env_prefix="LEDGER_")

    mode: LedgerMode = LedgerMode.MOCK
    journal_path: Path = Path("storage/ledger.jsonl")

    # Ledger calls are network-bound in real deployments
    timeout_seconds: float = 30.0
    read_retries: int = Field(default=3, ge=1)
    retry_backoff_seconds: float = 0.2


class CustodySettings(BaseSettings):
    """Custody engine policy knobs."""

    model_config = SettingsConfigDict(env_prefix="CUSTODY_")

    require_ledger_permission: bool = True
    default_transfer_role: str = "viewer"
    log_write_attempts: int = Field(default=2, ge=1)


class JWTSettings(BaseSettings):
    """JWT authentication configuration."""

    model_config = SettingsConfigDict(env_prefix="JWT_")

    secret_key: SecretStr = SecretStr("your-jwt-secret-key-min-32-chars-long")
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24


class CORSSettings(BaseSettings):
    """CORS configuration."""

    model_config = SettingsConfigDict(env_prefix="CORS_")

    origins: str = "http://localhost:3000,http://localhost:5173"
    allow_credentials: bool = True

    @property
    def origins_list(self) -> list[str]:
        """Parse origins string into list."""
        return [o.strip() for o in self.origins.split(",") if o.strip()]


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables with sensible defaults.
    Use the global `settings` singleton or call `get_settings()`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # General
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = True
    log_level: LogLevel = LogLevel.INFO
    port: int = Field(default=8000, alias="EVIDENCE_SERVICE_PORT")

    postgres: PostgresSettings = Field(default_factory=PostgresSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    custody: CustodySettings = Field(default_factory=CustodySettings)

    # Authentication
    jwt: JWTSettings = Field(default_factory=JWTSettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Ensure log level is uppercase."""
        if isinstance(v, str):
            return LogLevel(v.upper())
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        """Check if running in test mode."""
        return self.environment == Environment.TESTING


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings singleton.
    """
    return Settings()
