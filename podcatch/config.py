import logging
import os
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger(__name__)

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _get_int_env(
    name: str,
    default: int,
    min_val: Optional[int] = None,
) -> int:
    """Parse an integer from an environment variable with validation.

    Args:
        name: Environment variable name.
        default: Default value if env var is not set.
        min_val: Minimum allowed value (inclusive), or None for no minimum.

    Returns:
        The parsed and validated integer value.

    Raises:
        ConfigError: If the value cannot be parsed as an integer or is out of range.
    """
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default

    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(
            f"Invalid value for {name}: '{raw}' is not a valid integer"
        )

    if min_val is not None and value < min_val:
        raise ConfigError(
            f"Invalid value for {name}: {value} must be >= {min_val}"
        )

    return value


def _get_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def parse_log_level(name: Optional[str]) -> int:
    """Map a level name (debug/info/warn/error) to a logging level.

    Unknown names fall back to INFO.
    """
    if not name:
        return logging.INFO
    level = LOG_LEVELS.get(name.strip().lower())
    if level is None:
        logger.warning(f"Unknown log level '{name}', falling back to INFO")
        return logging.INFO
    return level


class Config:
    def __init__(self, env_file=None):
        """
        Initialize configuration by loading environment variables and setting default attributes.

        Loads environment variables from the provided .env file path when `env_file` is given; otherwise loads from the default .env discovery. After loading, sets the catalog location, download settings, concurrency limits, timeouts and logging options using environment values with defaults.

        Parameters:
            env_file (str | None): Optional path to a .env file to load environment variables from.

        Raises:
            ConfigError: If a numeric setting is not a valid integer or is out of range.
        """
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        # Catalog store
        self.DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./podcasts.db")
        self.DB_ECHO = _get_bool_env("DB_ECHO", False)

        # Owner of the catalog (single owner today)
        self.OWNER_ID = _get_int_env("PODCATCH_OWNER_ID", 1, min_val=1)

        # Download root, one subdirectory per subscription
        self.DOWNLOAD_DIRECTORY = os.getenv("PODCATCH_DOWNLOAD_DIR", "./downloads")

        # Concurrency limits
        self.MAX_CONCURRENT_DOWNLOADS = _get_int_env("PODCATCH_MAX_DOWNLOADS", 10, min_val=1)
        self.MAX_CONCURRENT_FEEDS = _get_int_env("PODCATCH_MAX_FEEDS", 5, min_val=1)

        # Timeouts in seconds
        self.FEED_TIMEOUT = _get_int_env("PODCATCH_FEED_TIMEOUT", 30, min_val=1)
        self.DOWNLOAD_TIMEOUT = _get_int_env("PODCATCH_DOWNLOAD_TIMEOUT", 300, min_val=1)

        self.CHUNK_SIZE = _get_int_env("PODCATCH_CHUNK_SIZE", 8192, min_val=1)

        # Logging
        self.LOG_TIME = _get_bool_env("PODCATCH_LOG_TIME", True)
        self.LOG_LEVEL = parse_log_level(os.getenv("PODCATCH_LOG_LEVEL", "debug"))
