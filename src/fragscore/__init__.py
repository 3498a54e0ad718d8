"""
fragscore - CS2 Player Metrics Engine

Turns per-match player events into role scores (opener, closer, support,
fragger), picks the best player per role in a match, and reports dashboard
stats with trends against the previous window of matches.

Usage:
    from fragscore import build_services, load_config

    services = build_services(load_config())
    bundle = services.complexion.get("76561198000000001", match_id=42)
    print(bundle["fragger"])
"""

__version__ = "0.1.0"
__author__ = "fragscore Contributors"


def __getattr__(name):
    """Lazy import for heavy dependencies."""
    if name == "build_services":
        from fragscore.services import build_services
        return build_services
    elif name == "load_config":
        from fragscore.core.config import load_config
        return load_config
    elif name == "RoleScoreAggregator":
        from fragscore.analysis.complexion import RoleScoreAggregator
        return RoleScoreAggregator
    elif name == "PlayerComplexionService":
        from fragscore.analysis.complexion import PlayerComplexionService
        return PlayerComplexionService
    elif name == "TopRoleSelector":
        from fragscore.analysis.top_roles import TopRoleSelector
        return TopRoleSelector
    elif name == "DashboardService":
        from fragscore.analysis.dashboard import DashboardService
        return DashboardService
    elif name == "calculate_trend":
        from fragscore.analysis.trends import calculate_trend
        return calculate_trend
    elif name == "normalise":
        from fragscore.analysis.normalize import normalise
        return normalise
    elif name == "MatchScopedCache":
        from fragscore.infra.cache import MatchScopedCache
        return MatchScopedCache
    elif name == "build_cache_key":
        from fragscore.infra.cache import build_cache_key
        return build_cache_key
    elif name == "DatabaseManager":
        from fragscore.infra.database import DatabaseManager
        return DatabaseManager
    raise AttributeError(f"module 'fragscore' has no attribute '{name}'")


__all__ = [
    # Version
    "__version__",
    # Wiring
    "build_services",
    "load_config",
    # Scoring
    "RoleScoreAggregator",
    "PlayerComplexionService",
    "TopRoleSelector",
    "DashboardService",
    "calculate_trend",
    "normalise",
    # Infrastructure
    "MatchScopedCache",
    "build_cache_key",
    "DatabaseManager",
]
