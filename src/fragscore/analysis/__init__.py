"""
fragscore Analysis - Scoring and aggregation over match events.

This module contains:
- models: Per-match player events and the event source protocol
- normalize: Metric normalisation onto 0-100
- complexion: Role scores per player per match
- top_roles: Best player per role in a match
- trends: Trend direction and change between two windows
- dashboard: Windowed player and utility stats with trends
"""

from fragscore.analysis.complexion import PlayerComplexionService, RoleScoreAggregator
from fragscore.analysis.models import (
    InMemoryEventSource,
    MatchEventSource,
    Participant,
    PlayerMatchEvent,
)
from fragscore.analysis.top_roles import TopRoleSelector
from fragscore.analysis.trends import TrendResult, calculate_trend

__all__: list[str] = [
    "InMemoryEventSource",
    "MatchEventSource",
    "Participant",
    "PlayerMatchEvent",
    "PlayerComplexionService",
    "RoleScoreAggregator",
    "TopRoleSelector",
    "TrendResult",
    "calculate_trend",
]
