"""Tests for windowed dashboard aggregation."""

import pytest
from builders import STRONG_ID, WEAK_ID, CountingEventSource, make_event, match_time

from fragscore.analysis.dashboard import (
    DashboardService,
    WARM_MATCH_COUNTS,
    aggregate_map_stats,
    aggregate_player_stats,
    aggregate_utility_stats,
    empty_map_stats,
    empty_player_stats,
    empty_utility_stats,
    events_to_frame,
    fetch_windows,
)
from fragscore.core.config import DashboardConfig
from fragscore.infra.cache import MatchScopedCache, build_cache_key


def history_source() -> CountingEventSource:
    """Four matches: two strong recent ones after two weaker ones."""
    src = CountingEventSource()
    for match_id in (1, 2):
        src.add_event(
            make_event(
                match_id,
                kills=10,
                deaths=10,
                adr=70.0,
                first_kills=1,
                total_rounds_played=20,
                map_name="de_mirage",
                played_at=match_time(match_id),
            )
        )
    for match_id in (3, 4):
        src.add_event(
            make_event(
                match_id,
                kills=20,
                deaths=10,
                adr=80.0,
                first_kills=2,
                won_match=True,
                total_rounds_played=20,
                map_name="de_mirage" if match_id == 3 else "de_inferno",
                played_at=match_time(match_id),
            )
        )
    return src


class TestWindows:
    """Current and previous windows are disjoint and equally sized."""

    def test_newest_first(self):
        windows = fetch_windows(history_source(), STRONG_ID, 2)
        assert [e.match_id for e in windows.current] == [4, 3]
        assert [e.match_id for e in windows.previous] == [2, 1]

    def test_map_filter(self):
        windows = fetch_windows(history_source(), STRONG_ID, 2, map_name="de_mirage")
        assert [e.match_id for e in windows.current] == [3, 2]
        assert [e.match_id for e in windows.previous] == [1]

    def test_non_positive_count_rejected(self):
        with pytest.raises(ValueError):
            fetch_windows(history_source(), STRONG_ID, 0)

    def test_frame_has_derived_grenades(self):
        df = events_to_frame([make_event(flashes_thrown=2, smokes_thrown=1)])
        assert df.loc[0, "grenades_thrown"] == 3


class TestAggregation:
    """Window aggregates in pandas."""

    def test_empty_window_defaults(self):
        assert aggregate_player_stats([]) == empty_player_stats()
        assert aggregate_utility_stats([]) == empty_utility_stats()

    def test_player_stats(self):
        events = [
            make_event(1, kills=20, deaths=10, adr=80.0, first_kills=2, first_deaths=2, won_match=True),
            make_event(2, kills=10, deaths=10, adr=60.0, first_kills=0, first_deaths=0),
        ]
        stats = aggregate_player_stats(events)

        assert stats["total_matches"] == 2
        assert stats["win_percentage"] == 50.0
        assert stats["average_kills"] == 15.0
        assert stats["average_kd"] == 1.5
        assert stats["average_adr"] == 70.0
        assert stats["opening_duel_winrate"] == 50.0
        # 50% in the first match, no duel in the second
        assert stats["average_duel_winrate"] == 25.0

    def test_clutch_stats(self):
        events = [
            make_event(1, clutch_wins_1v1=1, clutch_attempts_1v1=2, clutch_attempts_1v3=1),
            make_event(2, clutch_wins_1v1=1, clutch_attempts_1v1=1),
        ]
        clutches = aggregate_player_stats(events)["clutch_stats"]
        assert clutches["1v1"] == {"total": 2, "attempts": 3, "winrate": 66.7}
        assert clutches["1v3"] == {"total": 0, "attempts": 1, "winrate": 0.0}
        assert clutches["overall"] == {"total": 2, "attempts": 4, "winrate": 50.0}

    def test_trade_rates(self):
        stats = aggregate_player_stats(
            [
                make_event(
                    total_successful_trades=1,
                    total_possible_trades=4,
                    total_successful_traded_deaths=3,
                    total_possible_traded_deaths=4,
                )
            ]
        )
        assert stats["average_trade_success_rate"] == 25.0
        assert stats["average_traded_death_success_rate"] == 75.0

    def test_utility_stats(self):
        events = [
            make_event(1, enemy_flash_duration=10.0, flashes_thrown=4, damage_dealt=50),
            make_event(2, enemy_flash_duration=20.0, flashes_thrown=2, damage_dealt=0),
        ]
        stats = aggregate_utility_stats(events)
        assert stats["enemy_flash_duration"] == 15.0
        assert stats["grenade_usage"] == 3.0
        assert stats["he_molotov_damage"] == 25.0


class TestMapStats:
    """Per-map breakdown of the current window."""

    def test_empty_window(self):
        assert aggregate_map_stats([]) == empty_map_stats() == {"maps": [], "total_matches": 0}

    def test_grouped_by_map(self):
        events = fetch_windows(history_source(), STRONG_ID, 4).current
        result = aggregate_map_stats(events)

        assert result["total_matches"] == 4
        assert [m["map"] for m in result["maps"]] == ["de_mirage", "de_inferno"]

        mirage = result["maps"][0]
        assert mirage["matches"] == 3
        assert mirage["wins"] == 1
        assert mirage["win_rate"] == 33.3
        assert mirage["avg_kills"] == 13.3
        assert mirage["avg_deaths"] == 10.0
        assert mirage["avg_kd"] == 1.33
        assert mirage["avg_adr"] == 73.3
        assert mirage["avg_opening_kills"] == 1.3
        assert mirage["avg_opening_deaths"] == 0.0
        assert set(mirage["avg_complexion"]) == {"opener", "closer", "support", "fragger"}

        inferno = result["maps"][1]
        assert inferno["matches"] == 1
        assert inferno["win_rate"] == 100.0
        assert inferno["avg_kd"] == 2.0

    def test_zero_deaths_kd(self):
        result = aggregate_map_stats([make_event(kills=5, deaths=0, map_name="de_nuke")])
        assert result["maps"][0]["avg_kd"] == 0.0

    def test_ties_keep_newest_first(self):
        events = fetch_windows(history_source(), STRONG_ID, 2).current
        assert [m["map"] for m in aggregate_map_stats(events)["maps"]] == ["de_inferno", "de_mirage"]

    def test_missing_map_grouped_as_unknown(self):
        result = aggregate_map_stats([make_event(1), make_event(2)])
        assert result["maps"][0]["map"] == "unknown"
        assert result["maps"][0]["matches"] == 2


class TestDashboardService:
    """Tabs with trends, memoised per player."""

    def make_service(self, src, **config):
        return DashboardService(src, MatchScopedCache(), DashboardConfig(**config))

    def test_player_stats_trends(self):
        service = self.make_service(history_source())
        stats = service.player_stats(STRONG_ID, {"past_match_count": 2})

        opening_kills = stats["opening_stats"]["total_opening_kills"]
        assert opening_kills == {"value": 4, "trend": "up", "change": 100.0, "improving": True}

        opening_deaths = stats["opening_stats"]["total_opening_deaths"]
        assert opening_deaths["trend"] == "neutral"
        assert opening_deaths["improving"] is False

    def test_summary_movers(self):
        service = self.make_service(history_source())
        summary = service.summary(STRONG_ID, {"past_match_count": 2})

        improved = [s["name"] for s in summary["most_improved_stats"]]
        assert improved == ["Win Rate", "K/D Ratio"]
        assert summary["least_improved_stats"] is None

        card = summary["player_card"]
        assert card["total_matches"] == 2
        assert card["average_kd"] == 2.0
        assert set(card["player_complexion"]) == {"opener", "closer", "support", "fragger"}

    def test_summary_without_history(self):
        service = self.make_service(CountingEventSource())
        summary = service.summary(STRONG_ID)

        assert summary["most_improved_stats"] is None
        assert summary["least_improved_stats"] is None
        assert summary["player_card"]["total_matches"] == 0
        assert summary["player_card"]["player_complexion"] == {}
        assert summary["average_utility_effectiveness"] == {"value": 0.0, "max": 100}

    def test_default_match_count_from_config(self):
        src = history_source()
        service = self.make_service(src, default_match_count=3)
        assert service.player_stats(STRONG_ID)["clutch_stats"]["overall"]["attempts"] == 0
        windows = fetch_windows(src, STRONG_ID, 3)
        assert len(windows.current) == 3
        assert len(windows.previous) == 1

    def test_filter_order_shares_cache_entry(self):
        src = history_source()
        service = self.make_service(src)
        service.summary(STRONG_ID, {"past_match_count": 2, "map": "de_mirage"})
        service.summary(STRONG_ID, {"map": "de_mirage", "past_match_count": 2})
        # One miss, two window queries
        assert src.calls["get_player_matches"] == 2

    def test_invalidate_player(self):
        src = history_source()
        service = self.make_service(src)
        service.utility_stats(STRONG_ID)
        assert service.invalidate_player(STRONG_ID) == 1
        service.utility_stats(STRONG_ID)
        assert src.calls["get_player_matches"] == 4

    def test_entries_scoped_to_player(self):
        service = self.make_service(history_source())
        service.summary(STRONG_ID)
        entry = service.cache.list_entries()[0]
        assert entry["match_id"] == f"player:{STRONG_ID}"
        assert entry["key"] == "dashboard-summary_default"

    def test_map_stats_tab(self):
        service = self.make_service(history_source())
        result = service.map_stats(STRONG_ID, {"past_match_count": 4, "map": "de_inferno"})
        assert result["total_matches"] == 1
        assert [m["map"] for m in result["maps"]] == ["de_inferno"]
        assert service.cache.has(
            build_cache_key("dashboard-map-stats", {"past_match_count": 4, "map": "de_inferno"}),
            f"player:{STRONG_ID}",
        )


class TestWarmCache:
    """Precomputing every tab for a match's participants."""

    def test_warms_every_tab_and_count(self, source):
        service = DashboardService(source, MatchScopedCache())
        assert service.warm_cache_for_match(1) == 2

        for steam_id in (STRONG_ID, WEAK_ID):
            for count in WARM_MATCH_COUNTS:
                filters = {"past_match_count": count}
                for tab in ("player-stats", "utility", "summary", "map-stats"):
                    assert service.cache.has(build_cache_key(f"dashboard-{tab}", filters), f"player:{steam_id}")

    def test_warmed_tabs_served_from_cache(self, source):
        service = DashboardService(source, MatchScopedCache())
        service.warm_cache_for_match(1, match_counts=(5,))
        queries = source.calls["get_player_matches"]

        service.summary(STRONG_ID, {"past_match_count": 5})
        service.map_stats(WEAK_ID, {"past_match_count": 5})
        assert source.calls["get_player_matches"] == queries

    def test_unknown_match_warms_nobody(self, source):
        service = DashboardService(source, MatchScopedCache())
        assert service.warm_cache_for_match(404) == 0
        assert service.cache.get_stats().total_entries == 0
