"""
Configuration management using Pydantic Settings.

All configuration values are loaded from environment variables
with sensible defaults where appropriate.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Repository root (where the .env file is located)
ROOT_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = ROOT_DIR / ".env"

# Load .env into environment for nested settings models
load_dotenv(ENV_FILE)


class AppSettings(BaseSettings):
    """Application-level configuration."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_env: Literal["development", "staging", "production"] = "development"
    app_name: str = "authengine"
    app_version: str = "1.0.0"
    app_debug: bool = False


class DatabaseSettings(BaseSettings):
    """Database configuration."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_prefix="DB_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Full SQLAlchemy URL; takes precedence over the discrete fields (e.g. sqlite+aiosqlite:///auth.db)
    url: str = ""
    host: str = "localhost"
    port: int = 5432
    name: str = "monitoring"
    user: str = "monitoring"
    password: str = ""
    pool_size: int = 10
    max_overflow: int = 5

    @property
    def dsn(self) -> str:
        """Get async database DSN."""
        if self.url:
            return self.url
        auth_part = f"{self.user}:{self.password}@" if self.password else f"{self.user}@"
        return f"postgresql+asyncpg://{auth_part}{self.host}:{self.port}/{self.name}"

    @property
    def is_sqlite(self) -> bool:
        return self.dsn.startswith("sqlite")


class LogSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_prefix="LOG_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    level: str = "INFO"
    format: Literal["json", "text"] = "json"


class CredentialSettings(BaseSettings):
    """Encryption key for secrets stored at rest (LDAP bind passwords)."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_prefix="CREDENTIAL_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    master_key: str = ""
    master_key_previous: str = ""

    @field_validator("master_key")
    @classmethod
    def validate_master_key(cls, v: str) -> str:
        """Validate master key is set in production."""
        if os.getenv("APP_ENV") == "production" and len(v) < 32:
            raise ValueError("CREDENTIAL_MASTER_KEY must be at least 32 characters long in production")
        return v or "dev-master-key-change-in-production-32chars"


class LdapSettings(BaseSettings):
    """LDAP directory defaults and test-bind limits."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_prefix="LDAP_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    default_port: int = Field(default=389, ge=0, le=65535)
    test_timeout: int = Field(default=10, ge=1, le=300)  # seconds


class PasswordSettings(BaseSettings):
    """Password policy defaults applied when the config row is provisioned."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_prefix="PASSWORD_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    min_length: int = Field(default=8, ge=1, le=255)
    check_rules: int = Field(default=0x18, ge=0, le=0x1F)  # length | simple


class Settings(BaseSettings):
    """Main settings class that aggregates all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app: AppSettings = Field(default_factory=AppSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    credential: CredentialSettings = Field(default_factory=CredentialSettings)
    ldap: LdapSettings = Field(default_factory=LdapSettings)
    password: PasswordSettings = Field(default_factory=PasswordSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
