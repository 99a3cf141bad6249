"""Run configuration: what to hit, how hard, and for how long."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from loadgate._internal.config import Settings, load_settings
from loadgate._internal.errors import ConfigError
from loadgate.thresholds import Threshold, parse_thresholds

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from loadgate._internal.types import ThinkTime

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(text: str) -> float:
    """Parse a duration string into seconds.

    Accepts a bare number of seconds (``"30"``) or a sequence of
    ``<number><unit>`` parts with units ``ms``, ``s``, ``m`` and ``h``
    (``"1m30s"``, ``"500ms"``, ``"1h2m3.5s"``).

    Args:
        text: Duration string.

    Returns:
        Duration in seconds, always > 0.

    Raises:
        ConfigError: If the string is empty, malformed, or not positive.
    """
    raw = text.strip()
    if not raw:
        msg = "duration must not be empty"
        raise ConfigError(msg)

    try:
        seconds = float(raw)
    except ValueError:
        position = 0
        seconds = 0.0
        for match in _DURATION_PART_RE.finditer(raw):
            if match.start() != position:
                break
            seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
            position = match.end()
        if position != len(raw):
            msg = f"invalid duration {text!r}, expected e.g. '30s', '1m30s' or '500ms'"
            raise ConfigError(msg) from None

    if not math.isfinite(seconds) or seconds <= 0:
        msg = f"duration must be positive and finite, got {text!r}"
        raise ConfigError(msg)
    return seconds


def parse_think_time(value: str | float | tuple[float, float]) -> ThinkTime:
    """Normalize a think-time value into a ``(min, max)`` range in seconds.

    Args:
        value: A single number, a ``"min-max"`` string, or a tuple.

    Returns:
        The ``(min, max)`` range.

    Raises:
        ConfigError: If a bound is negative, non-finite, non-numeric, or
            min > max.
    """
    if isinstance(value, tuple):
        low, high = float(value[0]), float(value[1])
    elif isinstance(value, str):
        low_str, sep, high_str = value.strip().partition("-")
        try:
            low = float(low_str)
            high = float(high_str) if sep else low
        except ValueError:
            msg = f"invalid think time {value!r}, expected e.g. '0.1' or '0.05-0.2'"
            raise ConfigError(msg) from None
    else:
        low = high = float(value)

    if not (math.isfinite(low) and math.isfinite(high)):
        msg = f"think time must be finite, got {value!r}"
        raise ConfigError(msg)
    if low < 0 or high < 0:
        msg = f"think time must be non-negative, got {value!r}"
        raise ConfigError(msg)
    if low > high:
        msg = f"think time minimum exceeds maximum: {value!r}"
        raise ConfigError(msg)
    return (low, high)


@dataclass(frozen=True)
class RunConfig:
    """Immutable parameters of a single load test run.

    Build instances with :meth:`create`, which validates everything before
    a single request is issued.

    Attributes:
        target_url: URL requested with GET on every iteration.
        vus: Number of concurrent virtual users.
        duration: Duration as written by the user, e.g. ``"30s"``.
        duration_seconds: Parsed duration.
        think_time: ``(min, max)`` pause between iterations in seconds.
        thresholds: Parsed pass/fail thresholds.
        request_timeout: Total per-request timeout in seconds.
        graceful_stop: Seconds in-flight iterations may finish after the
            duration has elapsed.
        connection_pool_size: Maximum open connections per virtual user.
        tick_interval: Seconds between progress ticks.
    """

    target_url: str
    vus: int
    duration: str
    duration_seconds: float
    think_time: ThinkTime = (0.0, 0.0)
    thresholds: tuple[Threshold, ...] = field(default_factory=tuple)
    request_timeout: float = 60.0
    graceful_stop: float = 30.0
    connection_pool_size: int = 100
    tick_interval: float = 1.0

    @classmethod
    def create(
        cls,
        target_url: str,
        *,
        vus: int,
        duration: str,
        think_time: str | float | tuple[float, float] = 0.0,
        thresholds: Mapping[str, Sequence[str]] | None = None,
        settings: Settings | None = None,
        tick_interval: float = 1.0,
    ) -> RunConfig:
        """Validate raw parameters and build a RunConfig.

        Args:
            target_url: Absolute http(s) URL to request.
            vus: Number of virtual users, at least 1.
            duration: Duration string, see :func:`parse_duration`.
            think_time: Think time, see :func:`parse_think_time`.
            thresholds: Threshold expressions keyed by metric name.
            settings: Environment defaults. Loaded from the environment
                when omitted.
            tick_interval: Seconds between progress ticks.

        Returns:
            A validated RunConfig.

        Raises:
            ConfigError: If any parameter is invalid.
        """
        if vus < 1:
            msg = f"vus must be >= 1, got {vus}"
            raise ConfigError(msg)

        parts = urlsplit(target_url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            msg = f"target URL must be an absolute http(s) URL, got {target_url!r}"
            raise ConfigError(msg)

        if tick_interval <= 0:
            msg = f"tick_interval must be positive, got {tick_interval}"
            raise ConfigError(msg)

        settings = settings if settings is not None else load_settings()

        return cls(
            target_url=target_url,
            vus=vus,
            duration=duration.strip(),
            duration_seconds=parse_duration(duration),
            think_time=parse_think_time(think_time),
            thresholds=tuple(parse_thresholds(thresholds or {})),
            request_timeout=settings.request_timeout,
            graceful_stop=settings.graceful_stop,
            connection_pool_size=settings.connection_pool_size,
            tick_interval=tick_interval,
        )
