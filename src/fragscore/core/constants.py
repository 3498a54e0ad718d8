"""
fragscore - Constants

Roles, trend directions and the per-role metric ceilings used to turn raw
counting statistics into bounded 0-100 complexion scores.
"""

from dataclasses import dataclass
from enum import StrEnum


class Role(StrEnum):
    """Tactical roles a player is scored against."""

    OPENER = "opener"  # first engagement of the round
    CLOSER = "closer"  # late-round and clutch play
    SUPPORT = "support"  # grenade usage
    FRAGGER = "fragger"  # raw kill/damage output


class Trend(StrEnum):
    """Factual direction of a stat between two windows."""

    UP = "up"
    DOWN = "down"
    NEUTRAL = "neutral"


ROLES: tuple[Role, ...] = (Role.OPENER, Role.CLOSER, Role.SUPPORT, Role.FRAGGER)

# Clutch size classes tracked per player (1v1 .. 1v5)
CLUTCH_SIZES: tuple[int, ...] = (1, 2, 3, 4, 5)


@dataclass(frozen=True)
class RoleMetric:
    """A single sub-metric of a role score."""

    name: str
    ceiling: float
    higher_is_better: bool = True


# Ceilings are domain reference maxima: reaching one scores 100 on that
# sub-metric. Order matters only for display.
ROLE_METRICS: dict[Role, tuple[RoleMetric, ...]] = {
    Role.OPENER: (
        RoleMetric("average_round_time_of_death", 25, higher_is_better=False),
        RoleMetric("average_time_to_contact", 20, higher_is_better=False),
        RoleMetric("first_kills_plus_minus", 3),
        RoleMetric("first_kill_attempts", 4),
        RoleMetric("traded_death_percentage", 50),
    ),
    Role.CLOSER: (
        RoleMetric("average_round_time_of_death", 40),
        RoleMetric("average_time_to_contact", 35),
        RoleMetric("clutch_win_percentage", 25),
        RoleMetric("clutch_attempts", 5),
    ),
    Role.SUPPORT: (
        RoleMetric("grenades_thrown", 25),
        RoleMetric("grenade_damage_dealt", 200),
        RoleMetric("enemy_flash_duration", 30),
        RoleMetric("average_grenade_effectiveness", 50),
        RoleMetric("flashes_leading_to_kills", 5),
    ),
    Role.FRAGGER: (
        RoleMetric("kill_death_ratio", 1.5),
        RoleMetric("kills_per_round", 0.9),
        RoleMetric("average_damage_per_round", 90),
        RoleMetric("trade_kill_percentage", 50),
        RoleMetric("trade_opportunities_per_round", 1.5),
    ),
}

# Default time-to-live for match-scoped cache entries (30 minutes)
DEFAULT_CACHE_TTL_SECONDS = 1800

# Sentinel used in cache keys when no filters are applied
DEFAULT_FILTER_SENTINEL = "default"

# Dashboard window size when the caller does not pass past_match_count
DEFAULT_PAST_MATCH_COUNT = 10
