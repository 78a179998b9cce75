"""Configuration and environment handling.

Settings are read from the environment (a ``.env`` file in the working
directory is loaded first). Getters are cached; call :func:`reset_config`
after changing the environment.
"""

import os
from functools import lru_cache
from pathlib import Path

from .errors import ConfigError

DEFAULT_DB_PATH = Path.home() / ".revue" / "revue.db"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8766
DEFAULT_MAX_REPLY_DEPTH = 64
DEFAULT_VIDEO_SPAN = 5.0

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def load_env() -> None:
    """Load variables from a .env file if one exists."""
    from dotenv import load_dotenv

    load_dotenv()


def _read_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _read_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _read_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


@lru_cache
def get_db_path() -> Path:
    """Get the SQLite database path.

    Set REVUE_DB_PATH to override.
    """
    raw = os.environ.get("REVUE_DB_PATH")
    return Path(raw).expanduser() if raw else DEFAULT_DB_PATH


@lru_cache
def get_host() -> str:
    """Get the API bind host (REVUE_HOST)."""
    return os.environ.get("REVUE_HOST", DEFAULT_HOST)


@lru_cache
def get_port() -> int:
    """Get the API bind port (REVUE_PORT)."""
    return _read_int("REVUE_PORT", DEFAULT_PORT, minimum=1)


@lru_cache
def rollback_on_failure() -> bool:
    """Whether a rejected remote write reverts its optimistic local change.

    Set REVUE_ROLLBACK_ON_FAILURE=false to keep the optimistic copy until
    the next canonical snapshot replaces it.
    """
    return _read_bool("REVUE_ROLLBACK_ON_FAILURE", True)


@lru_cache
def get_max_reply_depth() -> int:
    """Traversal cap for reply trees (REVUE_MAX_REPLY_DEPTH)."""
    return _read_int("REVUE_MAX_REPLY_DEPTH", DEFAULT_MAX_REPLY_DEPTH, minimum=1)


@lru_cache
def get_default_video_span() -> float:
    """Default width in seconds of a new video comment (REVUE_DEFAULT_VIDEO_SPAN)."""
    return _read_float("REVUE_DEFAULT_VIDEO_SPAN", DEFAULT_VIDEO_SPAN)


def reset_config() -> None:
    """Clear cached settings so the next read sees the current environment."""
    for getter in (
        get_db_path,
        get_host,
        get_port,
        rollback_on_failure,
        get_max_reply_depth,
        get_default_video_span,
    ):
        getter.cache_clear()
