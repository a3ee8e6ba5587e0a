from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

from .models import SchedulerSettings

load_dotenv()

logger = logging.getLogger(__name__)

# Repository root
REPO_ROOT = Path(__file__).resolve().parent.parent
# Default database location
DB_FILE = REPO_ROOT / "badminton.db"


class BaseConfig:
    """Base settings shared across environments."""

    LOG_LEVEL = "INFO"
    K_FACTOR = 32


class ProductionConfig(BaseConfig):
    LOG_LEVEL = "WARNING"


class DevelopmentConfig(BaseConfig):
    LOG_LEVEL = "DEBUG"


class TestingConfig(BaseConfig):
    pass


_CONFIGS = {
    "production": ProductionConfig,
    "development": DevelopmentConfig,
    "testing": TestingConfig,
}

# Current active configuration determined by the ``APP_ENV`` environment
# variable. Defaults to development.
APP_ENV = os.getenv("APP_ENV", "development")
ActiveConfig = _CONFIGS.get(APP_ENV, DevelopmentConfig)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid float for %s: %s; using default %.2f", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid int for %s: %s; using default %d", name, raw, default)
        return default


def get_database_url() -> str:
    """Return the configured database connection string.

    An empty string selects the sqlite file at ``DB_FILE``.
    """
    return os.getenv("DATABASE_URL", "")


def get_redis_url() -> str | None:
    """Return the Redis connection string if set."""
    return os.getenv("REDIS_URL")


def get_cache_ttl() -> int:
    """Return the cache TTL in seconds."""
    return _env_int("CACHE_TTL", 300)


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", ActiveConfig.LOG_LEVEL).upper()


def get_k_factor() -> float:
    """Return the Elo K-factor applied to recorded results."""
    return _env_float("K_FACTOR", ActiveConfig.K_FACTOR)


def get_scheduler_settings() -> SchedulerSettings:
    """Build scheduler tuning from the environment, falling back to defaults."""
    defaults = SchedulerSettings()
    attempts = _env_int("MAX_SWAP_ATTEMPTS", defaults.max_swap_attempts)
    if attempts < 0:
        logger.warning("MAX_SWAP_ATTEMPTS must not be negative; using default %d", defaults.max_swap_attempts)
        attempts = defaults.max_swap_attempts
    half_life = _env_float("RECENCY_HALF_LIFE_DAYS", defaults.recency_half_life_days)
    if half_life <= 0:
        logger.warning("RECENCY_HALF_LIFE_DAYS must be positive; using default %.2f", defaults.recency_half_life_days)
        half_life = defaults.recency_half_life_days
    return SchedulerSettings(
        alpha=_env_float("FAIRNESS_ALPHA", defaults.alpha),
        beta=_env_float("FAIRNESS_BETA", defaults.beta),
        recency_weight=_env_float("RECENCY_WEIGHT", defaults.recency_weight),
        recency_half_life_days=half_life,
        max_swap_attempts=attempts,
        mixed_bonus=_env_float("MIXED_DOUBLES_BONUS", defaults.mixed_bonus),
    )


__all__ = [
    "DB_FILE",
    "get_database_url",
    "get_redis_url",
    "get_cache_ttl",
    "get_log_level",
    "get_k_factor",
    "get_scheduler_settings",
]
