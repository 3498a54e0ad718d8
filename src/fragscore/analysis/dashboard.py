"""
fragscore Dashboard Aggregation

Aggregates a player's recent matches into dashboard stats and pairs each one
with the same stat over the window of matches before it:

    current  = last N matches          (offset 0,  limit N)
    previous = the N matches before    (offset N,  limit N)

Both windows are pulled with one query each and aggregated in pandas.
Empty windows aggregate to zero-filled defaults, never to an error.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

import numpy as np
import pandas as pd

from fragscore.analysis.complexion import RoleScoreAggregator
from fragscore.analysis.models import MatchEventSource, PlayerMatchEvent
from fragscore.analysis.normalize import calculate_percentage, safe_divide
from fragscore.analysis.trends import build_stat_with_trend, rank_movers
from fragscore.core.config import DashboardConfig
from fragscore.core.constants import CLUTCH_SIZES
from fragscore.core.schemas import ClutchSizeStats, StatWithTrend
from fragscore.infra.cache import MatchScopedCache, build_cache_key

logger = logging.getLogger(__name__)

# Window sizes precomputed by DashboardService.warm_cache_for_match
WARM_MATCH_COUNTS: tuple[int, ...] = (5, 10, 15, 30)


# =============================================================================
# Windows
# =============================================================================


@dataclass
class MatchWindows:
    """Two disjoint, equally sized windows of a player's match rows."""

    current: list[PlayerMatchEvent]
    previous: list[PlayerMatchEvent]


def fetch_windows(
    source: MatchEventSource,
    steam_id: str,
    match_count: int,
    map_name: str | None = None,
) -> MatchWindows:
    if match_count <= 0:
        raise ValueError(f"match_count must be positive, got {match_count}")

    current = source.get_player_matches(steam_id, map_name=map_name, offset=0, limit=match_count)
    previous = source.get_player_matches(
        steam_id, map_name=map_name, offset=match_count, limit=match_count
    )
    return MatchWindows(current=current, previous=previous)


def events_to_frame(events: list[PlayerMatchEvent]) -> pd.DataFrame:
    """One row per match with raw columns plus the derived grenade total."""
    rows = []
    for event in events:
        row = asdict(event)
        row["grenades_thrown"] = event.grenades_thrown
        rows.append(row)
    return pd.DataFrame(rows)


# =============================================================================
# Aggregation
# =============================================================================


def _pct(part: float, whole: float) -> float:
    return round(calculate_percentage(part, whole), 1)


def _avg(total: float, count: int) -> float:
    return round(safe_divide(total, count), 1)


def _clutch_stats(wins: int, attempts: int) -> ClutchSizeStats:
    return {"total": wins, "attempts": attempts, "winrate": _pct(wins, attempts)}


def empty_player_stats() -> dict[str, Any]:
    clutch_stats = {f"1v{size}": _clutch_stats(0, 0) for size in CLUTCH_SIZES}
    clutch_stats["overall"] = _clutch_stats(0, 0)
    return {
        "total_matches": 0,
        "win_percentage": 0.0,
        "total_kills": 0,
        "total_deaths": 0,
        "average_kills": 0.0,
        "average_deaths": 0.0,
        "average_kd": 0.0,
        "average_adr": 0.0,
        "total_opening_kills": 0,
        "total_opening_deaths": 0,
        "opening_duel_winrate": 0.0,
        "average_opening_kills": 0.0,
        "average_opening_deaths": 0.0,
        "average_duel_winrate": 0.0,
        "total_trades": 0,
        "total_possible_trades": 0,
        "total_traded_deaths": 0,
        "total_possible_traded_deaths": 0,
        "average_trades": 0.0,
        "average_traded_deaths": 0.0,
        "average_trade_success_rate": 0.0,
        "average_traded_death_success_rate": 0.0,
        "clutch_stats": clutch_stats,
    }


def aggregate_player_stats(events: list[PlayerMatchEvent]) -> dict[str, Any]:
    """Combat, opening, trading and clutch aggregates over a window."""
    if not events:
        return empty_player_stats()

    df = events_to_frame(events)
    matches = len(df)

    total_kills = int(df["kills"].sum())
    total_deaths = int(df["deaths"].sum())

    opening_kills = int(df["first_kills"].sum())
    opening_deaths = int(df["first_deaths"].sum())
    first_kills = df["first_kills"].to_numpy(dtype=float)
    duels = first_kills + df["first_deaths"].to_numpy(dtype=float)
    # Per-match duel win rate, matches without an opening duel count as 0
    duel_winrates = np.divide(first_kills, duels, out=np.zeros_like(duels), where=duels > 0) * 100

    trades = int(df["total_successful_trades"].sum())
    possible_trades = int(df["total_possible_trades"].sum())
    traded_deaths = int(df["total_successful_traded_deaths"].sum())
    possible_traded_deaths = int(df["total_possible_traded_deaths"].sum())

    clutch_stats: dict[str, ClutchSizeStats] = {}
    for size in CLUTCH_SIZES:
        clutch_stats[f"1v{size}"] = _clutch_stats(
            int(df[f"clutch_wins_1v{size}"].sum()),
            int(df[f"clutch_attempts_1v{size}"].sum()),
        )
    clutch_stats["overall"] = _clutch_stats(
        sum(s["total"] for s in clutch_stats.values()),
        sum(s["attempts"] for s in clutch_stats.values()),
    )

    return {
        "total_matches": matches,
        "win_percentage": _pct(int(df["won_match"].sum()), matches),
        "total_kills": total_kills,
        "total_deaths": total_deaths,
        "average_kills": _avg(total_kills, matches),
        "average_deaths": _avg(total_deaths, matches),
        "average_kd": round(safe_divide(total_kills, total_deaths), 2),
        "average_adr": _avg(float(df["adr"].sum()), matches),
        "total_opening_kills": opening_kills,
        "total_opening_deaths": opening_deaths,
        "opening_duel_winrate": _pct(opening_kills, opening_kills + opening_deaths),
        "average_opening_kills": _avg(opening_kills, matches),
        "average_opening_deaths": _avg(opening_deaths, matches),
        "average_duel_winrate": round(float(duel_winrates.mean()), 1),
        "total_trades": trades,
        "total_possible_trades": possible_trades,
        "total_traded_deaths": traded_deaths,
        "total_possible_traded_deaths": possible_traded_deaths,
        "average_trades": _avg(trades, matches),
        "average_traded_deaths": _avg(traded_deaths, matches),
        "average_trade_success_rate": _pct(trades, possible_trades),
        "average_traded_death_success_rate": _pct(traded_deaths, possible_traded_deaths),
        "clutch_stats": clutch_stats,
    }


def empty_utility_stats() -> dict[str, float]:
    return {
        "enemy_flash_duration": 0.0,
        "friendly_flash_duration": 0.0,
        "enemy_players_blinded": 0.0,
        "friendly_players_blinded": 0.0,
        "he_molotov_damage": 0.0,
        "grenade_effectiveness": 0.0,
        "grenade_usage": 0.0,
    }


def aggregate_utility_stats(events: list[PlayerMatchEvent]) -> dict[str, float]:
    """Per-match averages of grenade usage over a window."""
    if not events:
        return empty_utility_stats()

    means = events_to_frame(events).mean(numeric_only=True)
    return {
        "enemy_flash_duration": round(float(means["enemy_flash_duration"]), 2),
        "friendly_flash_duration": round(float(means["friendly_flash_duration"]), 2),
        "enemy_players_blinded": round(float(means["enemy_players_affected"]), 1),
        "friendly_players_blinded": round(float(means["friendly_players_affected"]), 1),
        "he_molotov_damage": round(float(means["damage_dealt"]), 1),
        "grenade_effectiveness": round(float(means["average_grenade_effectiveness"]), 1),
        "grenade_usage": round(float(means["grenades_thrown"]), 1),
    }


def empty_map_stats() -> dict[str, Any]:
    return {"maps": [], "total_matches": 0}


def aggregate_map_stats(
    events: list[PlayerMatchEvent],
    aggregator: RoleScoreAggregator | None = None,
) -> dict[str, Any]:
    """
    Per-map breakdown of a window, most played map first.

    Maps with equal match counts keep the order in which they first appear in
    ``events`` (newest first). Rows without a map are grouped as "unknown".
    """
    if not events:
        return empty_map_stats()

    aggregator = aggregator or RoleScoreAggregator()
    df = events_to_frame(events)
    df["map_name"] = df["map_name"].fillna("unknown")
    df["row"] = range(len(df))

    grouped = df.groupby("map_name", sort=False).agg(
        matches=("row", "count"),
        wins=("won_match", "sum"),
        kills=("kills", "sum"),
        assists=("assists", "sum"),
        deaths=("deaths", "sum"),
        adr=("adr", "sum"),
        opening_kills=("first_kills", "sum"),
        opening_deaths=("first_deaths", "sum"),
        rows=("row", list),
    )
    grouped = grouped.sort_values("matches", ascending=False, kind="stable")

    maps = []
    for map_name, group in grouped.iterrows():
        matches = int(group["matches"])
        kills = int(group["kills"])
        deaths = int(group["deaths"])
        maps.append(
            {
                "map": map_name,
                "matches": matches,
                "wins": int(group["wins"]),
                "win_rate": _pct(int(group["wins"]), matches),
                "avg_kills": _avg(kills, matches),
                "avg_assists": _avg(int(group["assists"]), matches),
                "avg_deaths": _avg(deaths, matches),
                "avg_kd": round(safe_divide(kills, deaths), 2),
                "avg_adr": _avg(float(group["adr"]), matches),
                "avg_opening_kills": _avg(int(group["opening_kills"]), matches),
                "avg_opening_deaths": _avg(int(group["opening_deaths"]), matches),
                "avg_complexion": aggregator.average_bundle(events[i] for i in group["rows"]),
            }
        )

    return {"maps": maps, "total_matches": len(events)}


# =============================================================================
# Dashboard service
# =============================================================================


class DashboardService:
    """
    Dashboard tabs with trends against the previous window.

    Results are memoised per player (scope ``player:<steam_id>``) with a key
    derived from the filters, so identical filter maps share an entry
    regardless of key order.
    """

    def __init__(
        self,
        source: MatchEventSource,
        cache: MatchScopedCache | None = None,
        config: DashboardConfig | None = None,
        aggregator: RoleScoreAggregator | None = None,
    ):
        self.source = source
        self.cache = cache if cache is not None else MatchScopedCache()
        self.config = config or DashboardConfig()
        self.aggregator = aggregator or RoleScoreAggregator()

    @staticmethod
    def player_scope(steam_id: str) -> str:
        return f"player:{steam_id}"

    def invalidate_player(self, steam_id: str) -> int:
        return self.cache.invalidate_match(self.player_scope(steam_id))

    def _windows(self, steam_id: str, filters: dict[str, Any]) -> MatchWindows:
        count = int(filters.get("past_match_count") or self.config.default_match_count)
        return fetch_windows(self.source, steam_id, count, map_name=filters.get("map"))

    def _remember(self, tab: str, steam_id: str, filters: dict[str, Any] | None, build):
        filters = dict(filters or {})
        key = build_cache_key(f"dashboard-{tab}", filters)
        return self.cache.remember(key, self.player_scope(steam_id), lambda: build(steam_id, filters))

    def _trend(self, current: float, previous: float, lower_is_better: bool = False) -> StatWithTrend:
        return build_stat_with_trend(
            current, previous, lower_is_better, precision=self.config.trend_precision
        )

    def player_stats(self, steam_id: str, filters: dict[str, Any] | None = None) -> dict[str, Any]:
        return self._remember("player-stats", steam_id, filters, self._build_player_stats)

    def utility_stats(self, steam_id: str, filters: dict[str, Any] | None = None) -> dict[str, Any]:
        return self._remember("utility", steam_id, filters, self._build_utility_stats)

    def summary(self, steam_id: str, filters: dict[str, Any] | None = None) -> dict[str, Any]:
        return self._remember("summary", steam_id, filters, self._build_summary)

    def map_stats(self, steam_id: str, filters: dict[str, Any] | None = None) -> dict[str, Any]:
        return self._remember("map-stats", steam_id, filters, self._build_map_stats)

    def warm_cache_for_match(
        self,
        match_id: int,
        match_counts: tuple[int, ...] = WARM_MATCH_COUNTS,
    ) -> int:
        """
        Precompute every tab for each participant of a freshly ingested match.

        Returns:
            Number of player dashboards warmed
        """
        participants = self.source.get_participants(match_id)
        for participant in participants:
            for count in match_counts:
                filters = {"past_match_count": count}
                self.player_stats(participant.steam_id, filters)
                self.utility_stats(participant.steam_id, filters)
                self.summary(participant.steam_id, filters)
                self.map_stats(participant.steam_id, filters)
        logger.info(f"Warmed dashboards for {len(participants)} players of match {match_id}")
        return len(participants)

    def _build_map_stats(self, steam_id: str, filters: dict[str, Any]) -> dict[str, Any]:
        return aggregate_map_stats(self._windows(steam_id, filters).current, self.aggregator)

    def _build_player_stats(self, steam_id: str, filters: dict[str, Any]) -> dict[str, Any]:
        windows = self._windows(steam_id, filters)
        current = aggregate_player_stats(windows.current)
        previous = aggregate_player_stats(windows.previous)

        def trend(name: str, lower_is_better: bool = False) -> StatWithTrend:
            return self._trend(current[name], previous[name], lower_is_better)

        return {
            "opening_stats": {
                "total_opening_kills": trend("total_opening_kills"),
                "total_opening_deaths": trend("total_opening_deaths", lower_is_better=True),
                "opening_duel_winrate": trend("opening_duel_winrate"),
                "average_opening_kills": trend("average_opening_kills"),
                "average_opening_deaths": trend("average_opening_deaths", lower_is_better=True),
                "average_duel_winrate": trend("average_duel_winrate"),
            },
            "trading_stats": {
                "total_trades": trend("total_trades"),
                "total_possible_trades": trend("total_possible_trades"),
                "total_traded_deaths": trend("total_traded_deaths"),
                "total_possible_traded_deaths": trend("total_possible_traded_deaths"),
                "average_trades": trend("average_trades"),
                "average_traded_deaths": trend("average_traded_deaths"),
                "average_trade_success_rate": trend("average_trade_success_rate"),
                "average_traded_death_success_rate": trend("average_traded_death_success_rate"),
            },
            "clutch_stats": current["clutch_stats"],
        }

    def _build_utility_stats(self, steam_id: str, filters: dict[str, Any]) -> dict[str, Any]:
        windows = self._windows(steam_id, filters)
        current = aggregate_utility_stats(windows.current)
        previous = aggregate_utility_stats(windows.previous)

        def trend(name: str, lower_is_better: bool = False) -> StatWithTrend:
            return self._trend(current[name], previous[name], lower_is_better)

        return {
            "avg_blind_duration_enemy": trend("enemy_flash_duration"),
            "avg_blind_duration_friendly": trend("friendly_flash_duration", lower_is_better=True),
            "avg_players_blinded_enemy": trend("enemy_players_blinded"),
            "avg_players_blinded_friendly": trend("friendly_players_blinded", lower_is_better=True),
            "he_molotov_damage": trend("he_molotov_damage"),
            "grenade_effectiveness": trend("grenade_effectiveness"),
            "average_grenade_usage": trend("grenade_usage"),
        }

    def _build_summary(self, steam_id: str, filters: dict[str, Any]) -> dict[str, Any]:
        windows = self._windows(steam_id, filters)
        player = aggregate_player_stats(windows.current)
        previous_player = aggregate_player_stats(windows.previous)
        utility = aggregate_utility_stats(windows.current)
        previous_utility = aggregate_utility_stats(windows.previous)

        candidates = {
            "Win Rate": self._trend(player["win_percentage"], previous_player["win_percentage"]),
            "K/D Ratio": self._trend(player["average_kd"], previous_player["average_kd"]),
            "Average Kills": self._trend(player["average_kills"], previous_player["average_kills"]),
            "ADR": self._trend(player["average_adr"], previous_player["average_adr"]),
            "Opening Duel Win Rate": self._trend(
                player["opening_duel_winrate"], previous_player["opening_duel_winrate"]
            ),
            "Grenade Effectiveness": self._trend(
                utility["grenade_effectiveness"], previous_utility["grenade_effectiveness"]
            ),
            "Enemy Flash Duration": self._trend(
                utility["enemy_flash_duration"], previous_utility["enemy_flash_duration"]
            ),
            "Team Flash Duration": self._trend(
                utility["friendly_flash_duration"],
                previous_utility["friendly_flash_duration"],
                lower_is_better=True,
            ),
        }
        improved, declined = rank_movers(candidates, limit=self.config.mover_limit)

        return {
            "most_improved_stats": improved or None,
            "least_improved_stats": declined or None,
            "average_utility_effectiveness": {
                "value": utility["grenade_effectiveness"],
                "max": 100,
            },
            "player_card": {
                "average_kd": player["average_kd"],
                "average_adr": player["average_adr"],
                "average_kills": player["average_kills"],
                "average_deaths": player["average_deaths"],
                "total_kills": player["total_kills"],
                "total_deaths": player["total_deaths"],
                "total_matches": player["total_matches"],
                "win_percentage": player["win_percentage"],
                "player_complexion": self.aggregator.average_bundle(windows.current),
            },
        }
