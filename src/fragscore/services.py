"""
Service wiring.

Builds the engine's services from a FragscoreConfig: the cache enable switch
and TTL are read once here and passed to MatchScopedCache, and the event
store is told to purge cached aggregates whenever a match's rows change.
"""

import logging
from dataclasses import dataclass

from fragscore.analysis.complexion import PlayerComplexionService, RoleScoreAggregator
from fragscore.analysis.dashboard import DashboardService
from fragscore.analysis.models import MatchEventSource
from fragscore.analysis.top_roles import TopRoleSelector
from fragscore.auth.access import MatchAccessPolicy
from fragscore.core.config import FragscoreConfig
from fragscore.infra.cache import MatchScopedCache
from fragscore.infra.database import DatabaseManager

logger = logging.getLogger(__name__)


@dataclass
class Services:
    source: MatchEventSource
    cache: MatchScopedCache
    complexion: PlayerComplexionService
    top_roles: TopRoleSelector
    dashboard: DashboardService
    access: MatchAccessPolicy

    def invalidate_match(self, match_id: int, steam_ids: list[str]) -> None:
        """Purge a match's cached aggregates and the dashboards of its players."""
        self.cache.invalidate_match(match_id)
        for steam_id in steam_ids:
            self.dashboard.invalidate_player(steam_id)


def build_services(
    config: FragscoreConfig | None = None,
    source: MatchEventSource | None = None,
) -> Services:
    """
    Assemble services around an event source.

    Args:
        config: Loaded configuration; defaults when None
        source: Event source; a DatabaseManager on ``config.database.path`` when None
    """
    config = config or FragscoreConfig()
    if source is None:
        source = DatabaseManager(config.database.path, echo=config.database.echo)

    cache = MatchScopedCache.from_config(config.cache)
    aggregator = RoleScoreAggregator()
    access = MatchAccessPolicy(source)
    complexion = PlayerComplexionService(source, cache, aggregator, access_policy=access)

    services = Services(
        source=source,
        cache=cache,
        complexion=complexion,
        top_roles=TopRoleSelector(source, complexion),
        dashboard=DashboardService(source, cache, config.dashboard, aggregator),
        access=access,
    )

    if isinstance(source, DatabaseManager):
        source.add_invalidation_listener(services.invalidate_match)

    if not cache.enabled:
        logger.info("Match cache disabled; every aggregate will be recomputed")

    return services
