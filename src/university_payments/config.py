"""Runtime configuration for the payments service.

Settings are read from environment variables (and an optional ``.env``
file) by pydantic-settings. They are built once at startup and handed to
the components that need them. Nothing in the package reads configuration
from module-level state.
"""

import logging
from decimal import Decimal
from typing import Annotated, Any, Dict, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./university_payments.db"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ValidationRules(BaseSettings):
    """Field rules applied to incoming payment notifications.

    Read from ``PAYMENT_*`` variables, e.g. ``PAYMENT_MAX_AMOUNT``.
    """

    model_config = SettingsConfigDict(env_prefix="PAYMENT_", env_file=".env", extra="ignore")

    student_number_min_length: int = 5
    student_number_max_length: int = 20
    reference_min_length: int = 5
    reference_max_length: int = 50
    max_amount: Decimal = Decimal("1000000")
    max_decimal_places: int = 2
    lookback_years: int = 10


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Database
    database_url: str = DEFAULT_DATABASE_URL
    database_echo: bool = False

    log_level: str = "INFO"

    # API key -> role name, from API_KEYS="key:Role,key2:Role2"
    api_keys: Annotated[Dict[str, str], NoDecode] = Field(default_factory=dict)
    # Bare key registered with the Admin role
    api_key: Optional[str] = None
    rate_limit: str = "100/minute"

    validation: ValidationRules = Field(default_factory=ValidationRules)
    max_batch_size: int = 100
    reject_inactive_students: bool = False

    @field_validator("database_url", mode="before")
    @classmethod
    def _async_driver(cls, v: Any) -> Any:
        return normalize_database_url(v) if isinstance(v, str) else v

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.upper()

    @field_validator("api_keys", mode="before")
    @classmethod
    def _parse_api_keys(cls, v: Any) -> Any:
        return parse_api_keys(v) if isinstance(v, str) else v

    @model_validator(mode="after")
    def _register_admin_key(self) -> "Settings":
        if self.api_key:
            self.api_keys.setdefault(self.api_key, "Admin")
        return self


def normalize_database_url(db_url: str) -> str:
    """Rewrite sync PostgreSQL URLs to the asyncpg driver."""
    if db_url.startswith("postgresql://"):
        return db_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if db_url.startswith("postgres://"):
        return db_url.replace("postgres://", "postgresql+asyncpg://", 1)
    return db_url


def parse_api_keys(raw: str) -> Dict[str, str]:
    """Parse ``key:Role,key2:Role2`` into a key -> role mapping."""
    keys: Dict[str, str] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        key, sep, role = entry.partition(":")
        if not sep or not key.strip() or not role.strip():
            raise ValueError(f"Invalid API_KEYS entry: {entry!r}. Expected key:Role")
        keys[key.strip()] = role.strip()
    return keys


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the service and CLI."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
