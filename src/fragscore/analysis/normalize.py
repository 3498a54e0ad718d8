"""
Metric normalisation.

Maps a raw counting statistic onto a bounded 0-100 score against a fixed
reference ceiling. Everything here is pure and safe to call from any thread.
"""

import math


def safe_divide(numerator: float | None, denominator: float | None) -> float:
    """Divide, returning 0.0 when either side is absent or the denominator is zero."""
    if numerator is None or not denominator:
        return 0.0
    return numerator / denominator


def calculate_percentage(part: float | None, whole: float | None) -> float:
    """Percentage of ``part`` in ``whole``; 0.0 when ``whole`` is zero or absent."""
    return safe_divide(part, whole) * 100


def clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    return max(lower, min(value, upper))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 always going up."""
    return int(math.floor(value + 0.5))


def normalise(metric: float | None, ceiling: float, higher_is_better: bool = True) -> int:
    """
    Normalise a metric into an integer score in [0, 100].

    Args:
        metric: Raw metric value. ``None`` or NaN means the input is absent
            and scores 0 whatever the polarity.
        ceiling: Reference maximum for the metric. Must be positive.
        higher_is_better: When False the scale is inverted, so a metric of 0
            scores 100 and a metric at the ceiling scores 0.

    Returns:
        Integer score between 0 and 100 inclusive.

    Raises:
        ValueError: If ``ceiling`` is zero or negative.
    """
    if ceiling <= 0:
        raise ValueError(f"Metric ceiling must be positive, got {ceiling!r}")
    if metric is None or math.isnan(metric):
        return 0

    ratio = metric / ceiling
    raw = ratio if higher_is_better else 1 - ratio

    return round_half_up(clamp(raw) * 100)
