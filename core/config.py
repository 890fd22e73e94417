"""
Core Module - Configuration.

============================================================
PURPOSE
============================================================
Runtime configuration for the moderation core.

Values come from environment variables (a local .env file is
loaded first). Every setting has a documented default so the
process starts without any environment at all.

============================================================
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from dotenv import load_dotenv

from .constants import (
    ADMIN_ROLE,
    BAN_SWEEP_INTERVAL,
    MAX_PHOTO_BYTES,
    PROPOSAL_MAX_PENDING_AGE,
    PROPOSAL_SWEEP_INTERVAL,
)
from .exceptions import ConfigurationError


logger = logging.getLogger(__name__)


# ============================================================
# SECTIONS
# ============================================================

@dataclass
class DatabaseConfig:
    """Relational store settings."""

    url: str = "sqlite:///fuelwatch.db"
    """SQLAlchemy database URL."""

    echo: bool = False
    """Log SQL statements."""


@dataclass
class CacheConfig:
    """Cache-aside layer settings."""

    redis_url: Optional[str] = None
    """Redis URL. When unset an in-process store is used."""

    default_ttl_seconds: int = 1800
    """TTL applied when a caller does not pass one."""

    enabled: bool = True
    """When disabled every lookup is a miss."""


@dataclass
class SweeperConfig:
    """Background sweeper settings."""

    ban_interval_seconds: float = BAN_SWEEP_INTERVAL.total_seconds()
    """Seconds between ban expiration sweeps."""

    proposal_interval_seconds: float = PROPOSAL_SWEEP_INTERVAL.total_seconds()
    """Seconds between proposal expiration sweeps."""

    proposal_max_pending_hours: float = PROPOSAL_MAX_PENDING_AGE.total_seconds() / 3600
    """Pending proposals older than this are auto-rejected."""

    stop_timeout_seconds: float = 10.0
    """How long stop() waits for a running tick before cancelling it."""

    @property
    def max_pending_age(self) -> timedelta:
        return timedelta(hours=self.proposal_max_pending_hours)


@dataclass
class ModerationConfig:
    """Lifecycle service settings."""

    admin_role: str = ADMIN_ROLE
    max_photo_bytes: int = MAX_PHOTO_BYTES


@dataclass
class AppConfig:
    """Aggregate configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    sweepers: SweeperConfig = field(default_factory=SweeperConfig)
    moderation: ModerationConfig = field(default_factory=ModerationConfig)
    log_level: str = "INFO"


# ============================================================
# LOADING
# ============================================================

def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_number(name: str, default: float, cast=float):
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = cast(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid value for {name}",
            config_key=name,
            actual_value=raw,
            cause=e,
        ) from e
    if value <= 0:
        raise ConfigurationError(
            f"{name} must be positive",
            config_key=name,
            actual_value=raw,
        )
    return value


def load_config(env_file: Optional[str] = None) -> AppConfig:
    """
    Build configuration from the environment.

    Args:
        env_file: Optional path to a .env file (defaults to ./.env)

    Raises:
        ConfigurationError: if a numeric variable cannot be parsed
    """
    load_dotenv(env_file)

    config = AppConfig(
        database=DatabaseConfig(
            url=os.getenv("DATABASE_URL") or DatabaseConfig.url,
            echo=_env_bool("DATABASE_ECHO", False),
        ),
        cache=CacheConfig(
            redis_url=os.getenv("REDIS_URL") or None,
            default_ttl_seconds=_env_number(
                "CACHE_DEFAULT_TTL_SECONDS", CacheConfig.default_ttl_seconds, int
            ),
            enabled=_env_bool("CACHE_ENABLED", True),
        ),
        sweepers=SweeperConfig(
            ban_interval_seconds=_env_number(
                "BAN_SWEEP_INTERVAL_SECONDS", SweeperConfig.ban_interval_seconds
            ),
            proposal_interval_seconds=_env_number(
                "PROPOSAL_SWEEP_INTERVAL_SECONDS", SweeperConfig.proposal_interval_seconds
            ),
            proposal_max_pending_hours=_env_number(
                "PROPOSAL_MAX_PENDING_HOURS", SweeperConfig.proposal_max_pending_hours
            ),
        ),
        moderation=ModerationConfig(
            admin_role=os.getenv("ADMIN_ROLE") or ADMIN_ROLE,
            max_photo_bytes=_env_number("MAX_PHOTO_BYTES", MAX_PHOTO_BYTES, int),
        ),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )

    logger.debug(
        f"Configuration loaded: db={config.database.url.split('@')[-1]} "
        f"redis={'yes' if config.cache.redis_url else 'no'}"
    )
    return config


__all__ = [
    "DatabaseConfig",
    "CacheConfig",
    "SweeperConfig",
    "ModerationConfig",
    "AppConfig",
    "load_config",
]
