"""HDR histogram wrapper used as the streaming quantile digest for trends.

Wraps ``hdrh.histogram.HdrHistogram`` so callers work in milliseconds.
Values are stored as integer microseconds because the HDR histogram only
accepts integers.
"""

from __future__ import annotations

from hdrh.histogram import HdrHistogram  # type: ignore[import-untyped]

# Range: 1 microsecond to 1 hour (in microseconds)
_LOWEST_TRACKABLE_US = 1
_HIGHEST_TRACKABLE_US = 3_600_000_000
_SIGNIFICANT_DIGITS = 3


class HdrHistogramWrapper:
    """Constant-memory latency distribution with percentile queries.

    All public methods accept and return values in **milliseconds**.
    Resolution is exact up to about 2ms and three significant digits
    above that.

    Attributes:
        lowest_us: Lowest trackable value in microseconds.
        highest_us: Highest trackable value in microseconds.
    """

    def __init__(
        self,
        lowest_us: int = _LOWEST_TRACKABLE_US,
        highest_us: int = _HIGHEST_TRACKABLE_US,
        significant_digits: int = _SIGNIFICANT_DIGITS,
    ) -> None:
        """Initialize the histogram.

        Args:
            lowest_us: Lowest trackable value in microseconds.
            highest_us: Highest trackable value in microseconds.
            significant_digits: Number of significant value digits to maintain.
        """
        self.lowest_us = lowest_us
        self.highest_us = highest_us
        self._histogram: HdrHistogram = HdrHistogram(  # type: ignore[no-any-unimported]
            lowest_us, highest_us, significant_digits
        )

    def record_latency_ms(self, latency_ms: float) -> bool:
        """Record a value in milliseconds.

        Values are clamped to the trackable range [lowest_us, highest_us]
        when converted to microseconds.

        Args:
            latency_ms: Latency in milliseconds.

        Returns:
            True if the value was successfully recorded, False otherwise.
        """
        value_us = round(latency_ms * 1000)
        value_us = max(self.lowest_us, min(value_us, self.highest_us))
        return bool(self._histogram.record_value(value_us))

    def get_percentile(self, percentile: float) -> float:
        """Get the value at a given percentile.

        Args:
            percentile: Percentile to compute (0.0 to 100.0).

        Returns:
            Value in milliseconds at the given percentile, or 0.0 if the
            histogram is empty.
        """
        if self._histogram.total_count == 0:
            return 0.0
        value_us = self._histogram.get_value_at_percentile(percentile)
        return float(value_us) / 1000.0

    def get_total_count(self) -> int:
        """Return the number of recorded values."""
        return int(self._histogram.total_count)
