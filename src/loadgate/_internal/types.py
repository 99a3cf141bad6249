"""Shared type aliases for loadgate."""

from __future__ import annotations

# Think time range (min_seconds, max_seconds).
ThinkTime = tuple[float, float]

# Threshold expressions keyed by metric name.
ThresholdSpec = dict[str, list[str]]
