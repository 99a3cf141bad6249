"""Process-level settings loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass

from loadgate._internal.errors import ConfigError


@dataclass(frozen=True)
class Settings:
    """Environment-driven defaults shared by every run.

    Attributes:
        request_timeout: Total per-request timeout in seconds.
        graceful_stop: Seconds in-flight iterations may keep running after
            the test duration has elapsed.
        connection_pool_size: Maximum open connections per virtual user.
    """

    request_timeout: float = 60.0
    graceful_stop: float = 30.0
    connection_pool_size: int = 100


def _read_float(name: str, default: str, *, allow_zero: bool) -> float:
    raw = os.environ.get(name, default)
    try:
        value = float(raw)
    except ValueError:
        msg = f"{name} must be a number, got: {raw!r}"
        raise ConfigError(msg) from None

    if value < 0 or (value == 0 and not allow_zero):
        qualifier = "non-negative" if allow_zero else "positive"
        msg = f"{name} must be {qualifier}, got: {value}"
        raise ConfigError(msg)
    return value


def load_settings() -> Settings:
    """Load settings from environment variables with defaults.

    Environment variables:
        LOADGATE_TIMEOUT: Request timeout in seconds (default: 60.0).
        LOADGATE_GRACEFUL_STOP: Graceful stop window in seconds (default: 30.0).
        LOADGATE_POOL_SIZE: Connection pool size per virtual user (default: 100).

    Returns:
        Populated Settings instance.

    Raises:
        ConfigError: If an environment variable has an invalid value.
    """
    timeout = _read_float("LOADGATE_TIMEOUT", "60.0", allow_zero=False)
    graceful_stop = _read_float("LOADGATE_GRACEFUL_STOP", "30.0", allow_zero=True)

    pool_size_str = os.environ.get("LOADGATE_POOL_SIZE", "100")
    try:
        pool_size = int(pool_size_str)
    except ValueError:
        msg = f"LOADGATE_POOL_SIZE must be an integer, got: {pool_size_str!r}"
        raise ConfigError(msg) from None

    if pool_size < 1:
        msg = f"LOADGATE_POOL_SIZE must be >= 1, got: {pool_size}"
        raise ConfigError(msg)

    return Settings(
        request_timeout=timeout,
        graceful_stop=graceful_stop,
        connection_pool_size=pool_size,
    )
