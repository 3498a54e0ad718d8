"""
Trend calculation between two aggregate windows.

The caller supplies a current and a previous aggregate computed over
disjoint windows of equal size ("last N matches" vs "the N before those");
nothing here does any windowing.

``calculate_trend`` always reports the factual direction. Whether "up" is
good is a presentation concern handled by ``build_stat_with_trend`` through
its ``lower_is_better`` flag, which only adds an ``improving`` verdict.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from fragscore.core.constants import Trend
from fragscore.core.schemas import StatMover, StatWithTrend


@dataclass(frozen=True)
class TrendResult:
    """Direction and signed percentage change of a stat."""

    trend: Trend
    change: float

    def to_dict(self) -> dict:
        return {"trend": self.trend.value, "change": self.change}


def calculate_change(current: float, previous: float, precision: int = 1) -> float:
    """
    Signed percentage change from ``previous`` to ``current``.

    A zero baseline has no meaningful ratio: the change is reported as 100
    when the stat appeared from nothing and 0 when both are zero.
    """
    if previous == 0:
        return 0 if current == 0 else 100
    return round((current - previous) / previous * 100, precision)


def classify_trend(current: float, previous: float) -> Trend:
    if current > previous:
        return Trend.UP
    if current < previous:
        return Trend.DOWN
    return Trend.NEUTRAL


def calculate_trend(current: float, previous: float, precision: int = 1) -> TrendResult:
    """
    Compare two aggregates.

    Examples:
        >>> calculate_trend(10, 5)
        TrendResult(trend=<Trend.UP: 'up'>, change=100.0)
        >>> calculate_trend(5, 10).change
        -50.0
    """
    return TrendResult(
        trend=classify_trend(current, previous),
        change=calculate_change(current, previous, precision),
    )


def build_stat_with_trend(
    current: float,
    previous: float,
    lower_is_better: bool = False,
    precision: int = 1,
) -> StatWithTrend:
    """
    Dashboard stat bundle.

    Args:
        current: Aggregate for the current window
        previous: Aggregate for the comparison window
        lower_is_better: Polarity of the stat (e.g. time to damage); only
            affects ``improving``
        precision: Decimal places kept on ``change``
    """
    result = calculate_trend(current, previous, precision)

    if result.trend is Trend.NEUTRAL:
        improving = False
    else:
        improving = (result.trend is Trend.DOWN) if lower_is_better else (result.trend is Trend.UP)

    return {
        "value": current,
        "trend": result.trend.value,
        "change": result.change,
        "improving": improving,
    }


def rank_movers(
    stats: Mapping[str, StatWithTrend],
    limit: int = 2,
) -> tuple[list[StatMover], list[StatMover]]:
    """
    Pick the biggest improvements and declines from named stats.

    Movers are ordered by absolute change, largest first; ties keep the
    order of ``stats``. Neutral stats are never movers.

    Returns:
        (most_improved, least_improved), each at most ``limit`` long
    """
    moving = [
        {**stat, "name": name}
        for name, stat in stats.items()
        if stat["trend"] != Trend.NEUTRAL.value and stat["change"] != 0
    ]
    moving.sort(key=lambda s: abs(s["change"]), reverse=True)

    improved = [s for s in moving if s.get("improving")][:limit]
    declined = [s for s in moving if not s.get("improving")][:limit]
    return improved, declined
