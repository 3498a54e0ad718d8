"""
fragscore Player Complexion

Scores a player against four tactical roles (opener, closer, support,
fragger). Each role is a fixed set of sub-metrics from ROLE_METRICS; every
sub-metric is normalised to 0-100 against its ceiling and the role score is
the truncated, unweighted mean of those sub-scores.

A missing PlayerMatchEvent is "no data" and yields an empty dict, never a
bundle of zeros: callers must be able to tell "absent" from "scored zero".
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from fragscore.analysis.models import MatchEventSource, PlayerMatchEvent
from fragscore.analysis.normalize import normalise
from fragscore.core.constants import ROLE_METRICS, ROLES, Role, RoleMetric
from fragscore.core.schemas import RoleScoreBundle
from fragscore.infra.cache import MatchScopedCache

if TYPE_CHECKING:
    from fragscore.auth.access import MatchAccessPolicy

logger = logging.getLogger(__name__)


def _adr(event: PlayerMatchEvent) -> float:
    # ADR is a per-round figure: no rounds means nothing to average
    return event.adr if event.total_rounds_played > 0 else 0.0


# Raw value of each sub-metric, keyed by RoleMetric.name
METRIC_EXTRACTORS: dict[str, Callable[[PlayerMatchEvent], float | None]] = {
    "average_round_time_of_death": lambda e: e.average_round_time_of_death,
    "average_time_to_contact": lambda e: e.average_time_to_contact,
    "first_kills_plus_minus": lambda e: e.first_kills - e.first_deaths,
    "first_kill_attempts": lambda e: e.first_kills + e.first_deaths,
    "traded_death_percentage": lambda e: e.traded_death_percentage,
    "clutch_win_percentage": lambda e: e.clutch_win_percentage,
    "clutch_attempts": lambda e: e.clutch_attempts,
    "grenades_thrown": lambda e: e.grenades_thrown,
    "grenade_damage_dealt": lambda e: e.damage_dealt,
    "enemy_flash_duration": lambda e: e.enemy_flash_duration,
    "average_grenade_effectiveness": lambda e: e.average_grenade_effectiveness,
    "flashes_leading_to_kills": lambda e: e.flashes_leading_to_kills,
    "kill_death_ratio": lambda e: e.kill_death_ratio,
    "kills_per_round": lambda e: e.per_round(e.kills),
    "average_damage_per_round": _adr,
    "trade_kill_percentage": lambda e: e.trade_kill_percentage,
    "trade_opportunities_per_round": lambda e: e.per_round(e.total_possible_trades),
}


def _resolve_role(role: Role | str) -> Role:
    try:
        return Role(role)
    except ValueError:
        raise ValueError(f"Unknown role: {role!r}") from None


class RoleScoreAggregator:
    """Combines normalised sub-metrics into role scores."""

    def __init__(self, role_metrics: dict[Role, tuple[RoleMetric, ...]] | None = None):
        self.role_metrics = role_metrics or ROLE_METRICS

        for role, metrics in self.role_metrics.items():
            for metric in metrics:
                if metric.name not in METRIC_EXTRACTORS:
                    raise ValueError(f"No extractor for {role} metric {metric.name!r}")
                if metric.ceiling <= 0:
                    raise ValueError(f"Ceiling for {role} metric {metric.name!r} must be positive")

    def sub_scores(self, role: Role | str, event: PlayerMatchEvent) -> dict[str, int]:
        """Normalised score of every sub-metric of a role, keyed by metric name."""
        role = _resolve_role(role)
        return {
            metric.name: normalise(
                METRIC_EXTRACTORS[metric.name](event),
                metric.ceiling,
                metric.higher_is_better,
            )
            for metric in self.role_metrics[role]
        }

    def score(self, role: Role | str, event: PlayerMatchEvent) -> int:
        """
        Role score for one player, an int in [0, 100].

        Raises:
            ValueError: If ``role`` is not one of the four roles.
        """
        scores = list(self.sub_scores(role, event).values())
        # Sub-scores are non-negative, so int() truncates toward zero
        return int(sum(scores) / len(scores))

    def bundle(self, event: PlayerMatchEvent) -> RoleScoreBundle:
        return {
            "opener": self.score(Role.OPENER, event),
            "closer": self.score(Role.CLOSER, event),
            "support": self.score(Role.SUPPORT, event),
            "fragger": self.score(Role.FRAGGER, event),
        }

    def average_bundle(self, events: Iterable[PlayerMatchEvent]) -> RoleScoreBundle | dict:
        """Per-role mean over several matches, truncated; empty dict for no events."""
        bundles = [self.bundle(event) for event in events]
        if not bundles:
            return {}
        return {role.value: int(sum(b[role.value] for b in bundles) / len(bundles)) for role in ROLES}


class PlayerComplexionService:
    """Role scores for a player in a match, memoised per match."""

    CACHE_KEY_PREFIX = "player-complexion"

    def __init__(
        self,
        source: MatchEventSource,
        cache: MatchScopedCache | None = None,
        aggregator: RoleScoreAggregator | None = None,
        access_policy: MatchAccessPolicy | None = None,
    ):
        self.source = source
        self.cache = cache if cache is not None else MatchScopedCache()
        self.aggregator = aggregator or RoleScoreAggregator()
        self.access_policy = access_policy

    def cache_key(self, steam_id: str) -> str:
        return f"{self.CACHE_KEY_PREFIX}_{steam_id}"

    def get(self, steam_id: str, match_id: int) -> RoleScoreBundle | dict:
        """Complexion bundle, or {} when the player has no event row for the match."""
        return self.cache.remember(
            self.cache_key(steam_id),
            match_id,
            lambda: self._build(steam_id, match_id),
        )

    def get_match(self, match_id: int) -> dict[str, RoleScoreBundle]:
        """Bundles for every player with an event row in the match, in one source query."""
        bundles: dict[str, RoleScoreBundle] = {}
        for event in self.source.get_player_match_events(match_id):
            bundles[event.player_steam_id] = self.cache.remember(
                self.cache_key(event.player_steam_id),
                match_id,
                lambda event=event: self.aggregator.bundle(event),
            )
        return bundles

    def get_for_user(self, user_steam_id: str, steam_id: str, match_id: int) -> RoleScoreBundle | dict:
        """Like ``get`` but returns {} unless the requesting user played in the match."""
        if self.access_policy is None:
            raise ValueError("get_for_user requires an access policy")
        if not self.access_policy.has_user_access_to_match(user_steam_id, match_id):
            logger.debug(f"User {user_steam_id} has no access to match {match_id}")
            return {}
        return self.get(steam_id, match_id)

    def _build(self, steam_id: str, match_id: int) -> RoleScoreBundle | dict:
        event = self.source.get_player_match_event(match_id, steam_id)
        if event is None:
            logger.debug(f"No match event for player {steam_id} in match {match_id}")
            return {}
        return self.aggregator.bundle(event)
