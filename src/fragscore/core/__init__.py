"""
fragscore Core - Foundation modules shared by analysis and infrastructure.

This module contains:
- constants: Roles, trend directions and role metric ceilings
- config: Application configuration management
- schemas: Data contracts for module boundaries
"""

from fragscore.core.constants import (
    CLUTCH_SIZES,
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_FILTER_SENTINEL,
    ROLE_METRICS,
    ROLES,
    Role,
    RoleMetric,
    Trend,
)
from fragscore.core.schemas import (
    ClutchSizeStats,
    RoleScoreBundle,
    StatMover,
    StatWithTrend,
    TopRoleBundle,
    TopRolePlayer,
)

__all__ = [
    # Enums
    "Role",
    "Trend",
    # Constants
    "CLUTCH_SIZES",
    "DEFAULT_CACHE_TTL_SECONDS",
    "DEFAULT_FILTER_SENTINEL",
    "ROLE_METRICS",
    "ROLES",
    "RoleMetric",
    # Schemas (data contracts)
    "ClutchSizeStats",
    "RoleScoreBundle",
    "StatMover",
    "StatWithTrend",
    "TopRoleBundle",
    "TopRolePlayer",
]
