"""
fragscore Data Contracts

Every structure handed to the (external) HTTP layer is defined here so the
JSON shape has a single source of truth.

Producers: complexion.py, top_roles.py, trends.py, dashboard.py
Consumers: cli.py, the API layer
"""

from __future__ import annotations

from typing import NotRequired, TypedDict

# ============================================================
# ROLE SCORES
# ============================================================


class RoleScoreBundle(TypedDict):
    """Complexion scores for one player in one match, each 0-100."""

    opener: int
    closer: int
    support: int
    fragger: int


class TopRolePlayer(TypedDict):
    """Best player in a single role for a match."""

    name: str | None
    steam_id: str | None
    score: int
    stats: NotRequired[dict[str, str | int | float]]


class TopRoleBundle(TypedDict):
    """Best player per role for a match."""

    opener: TopRolePlayer
    closer: TopRolePlayer
    support: TopRolePlayer
    fragger: TopRolePlayer


# ============================================================
# TRENDS
# ============================================================


class StatWithTrend(TypedDict):
    """A dashboard value paired with its movement against the prior window."""

    value: float
    trend: str  # "up", "down", "neutral"
    change: float  # signed percentage
    improving: NotRequired[bool]  # direction judged against the stat's polarity


class StatMover(StatWithTrend):
    """A StatWithTrend labelled with its display name (summary movers)."""

    name: str


# ============================================================
# DASHBOARD AGGREGATES
# ============================================================


class ClutchSizeStats(TypedDict):
    """Clutch totals for one size class (or overall)."""

    total: int
    attempts: int
    winrate: float
