#!/usr/bin/env python3
"""
Configuration Management for the Envelope Ledger

Handles environment-based configuration with defaults and validation.
Supports multiple environments (development, test, production).

Ledger operations never read this module directly: callers build a
`LedgerSettings` (usually via `get_config().ledger`) and pass it in.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from dotenv import load_dotenv
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

# Load environment variables from .env file
load_dotenv()


class Environment(Enum):
    """Application environment types."""

    DEVELOPMENT = "development"
    TEST = "test"
    PRODUCTION = "production"


@dataclass
class DatabaseConfig:
    """Database configuration settings."""

    url: str = "sqlite:///envelopes.db"
    echo: bool = False


@dataclass
class LedgerSettings:
    """Business-rule knobs for transaction validation and housekeeping."""

    # Transactions dated later than today + grace are rejected (timezone slack)
    future_date_grace_days: int = 1
    max_description_length: int = 500
    # Soft-deleted transactions older than this may be purged
    purge_retention_days: int = 30


@dataclass
class Config:
    """
    Main configuration class for the envelope ledger.

    Loads configuration from environment variables with defaults
    and validation for each environment type.
    """

    environment: Environment
    database: DatabaseConfig
    ledger: LedgerSettings = field(default_factory=LedgerSettings)

    # Application settings
    debug: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_environment(cls) -> "Config":
        """Create configuration from environment variables."""
        env = Environment(os.getenv("ENVELOPES_ENV", "development"))

        if env == Environment.TEST:
            default_url = "sqlite:///:memory:"
        else:
            default_url = "sqlite:///envelopes.db"

        database = DatabaseConfig(
            url=os.getenv("ENVELOPES_DATABASE_URL", default_url),
            echo=os.getenv("ENVELOPES_DB_ECHO", "false").lower() == "true",
        )

        ledger = LedgerSettings(
            future_date_grace_days=int(os.getenv("ENVELOPES_FUTURE_DATE_GRACE_DAYS", "1")),
            max_description_length=int(os.getenv("ENVELOPES_MAX_DESCRIPTION_LENGTH", "500")),
            purge_retention_days=int(os.getenv("ENVELOPES_PURGE_RETENTION_DAYS", "30")),
        )

        return cls(
            environment=env,
            database=database,
            ledger=ledger,
            debug=os.getenv("DEBUG", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> list:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.database.url:
            errors.append("ENVELOPES_DATABASE_URL must not be empty")

        if self.environment == Environment.PRODUCTION and self.database.url.startswith("sqlite:///:memory:"):
            errors.append("In-memory database is not allowed in production")

        if self.ledger.future_date_grace_days < 0:
            errors.append("Future date grace days must be non-negative")
        if self.ledger.max_description_length <= 0:
            errors.append("Max description length must be positive")
        if self.ledger.purge_retention_days < 0:
            errors.append("Purge retention days must be non-negative")

        if self.log_level not in logging.getLevelNamesMapping():
            errors.append(f"Unknown log level: {self.log_level}")

        return errors

    def setup_logging(self) -> None:
        """Configure logging based on configuration."""
        level = getattr(logging, self.log_level, logging.INFO)

        if self.environment == Environment.DEVELOPMENT:
            format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        else:
            format_str = "%(asctime)s - %(levelname)s - %(message)s"

        logging.basicConfig(level=level, format=format_str, datefmt="%Y-%m-%d %H:%M:%S")

        # SQL echo goes through the engine logger; keep it quiet unless asked
        if not self.database.echo:
            logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    def get_sensitive_fields(self) -> list:
        """Get list of field names that contain sensitive data."""
        return ["database.url"]

    def to_dict(self, include_sensitive: bool = False) -> dict[str, Any]:
        """Convert configuration to dictionary, optionally excluding sensitive data."""
        result: dict[str, Any] = {}

        for field_name, field_value in self.__dict__.items():
            if hasattr(field_value, "__dict__") and not isinstance(field_value, Enum):
                nested_dict: dict[str, Any] = {}
                for nested_name, nested_value in field_value.__dict__.items():
                    full_field_name = f"{field_name}.{nested_name}"

                    if not include_sensitive and full_field_name in self.get_sensitive_fields():
                        nested_dict[nested_name] = _redact_url(nested_value)
                    else:
                        nested_dict[nested_name] = nested_value

                result[field_name] = nested_dict
            elif isinstance(field_value, Enum):
                result[field_name] = field_value.value
            else:
                result[field_name] = field_value

        return result


def _redact_url(url: str) -> str:
    """Hide the password portion of a database URL."""
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        # Unparseable URLs are hidden entirely
        return "***"


# Global configuration instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        config = Config.from_environment()

        errors = config.validate()
        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")

        config.setup_logging()
        _config = config

    return _config


def reload_config() -> Config:
    """Reload configuration from environment (useful for testing)."""
    global _config
    _config = None
    return get_config()


def is_development() -> bool:
    """Check if running in development environment."""
    return get_config().environment == Environment.DEVELOPMENT


def is_test() -> bool:
    """Check if running in test environment."""
    return get_config().environment == Environment.TEST


def is_production() -> bool:
    """Check if running in production environment."""
    return get_config().environment == Environment.PRODUCTION
