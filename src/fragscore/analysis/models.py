"""
Value objects consumed by the scoring engine.

PlayerMatchEvent is the finalized per-(match, player) row produced by the
external ingestion pipeline. It is immutable once the match is finalized, so
it is modelled as a frozen dataclass; derived ratios are read-only properties.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from fragscore.analysis.normalize import calculate_percentage, safe_divide
from fragscore.core.constants import CLUTCH_SIZES


@dataclass(frozen=True)
class Participant:
    """A player taking part in a match."""

    steam_id: str
    name: str


@dataclass(frozen=True)
class PlayerMatchEvent:
    """Counting statistics for one player in one finalized match."""

    match_id: int
    player_steam_id: str

    # Core
    kills: int = 0
    deaths: int = 0
    assists: int = 0
    damage: int = 0
    adr: float = 0.0
    headshots: int = 0
    total_rounds_played: int = 0

    # Opening duels
    first_kills: int = 0
    first_deaths: int = 0

    # Timing (seconds into the round); None when never recorded
    average_round_time_of_death: float | None = None
    average_time_to_contact: float | None = None

    # Trades
    total_successful_trades: int = 0
    total_possible_trades: int = 0
    total_successful_traded_deaths: int = 0
    total_possible_traded_deaths: int = 0

    # Clutches, 1v1 .. 1v5
    clutch_wins_1v1: int = 0
    clutch_wins_1v2: int = 0
    clutch_wins_1v3: int = 0
    clutch_wins_1v4: int = 0
    clutch_wins_1v5: int = 0
    clutch_attempts_1v1: int = 0
    clutch_attempts_1v2: int = 0
    clutch_attempts_1v3: int = 0
    clutch_attempts_1v4: int = 0
    clutch_attempts_1v5: int = 0

    # Utility
    flashes_thrown: int = 0
    fire_grenades_thrown: int = 0
    smokes_thrown: int = 0
    hes_thrown: int = 0
    decoys_thrown: int = 0
    damage_dealt: int = 0  # grenade damage
    enemy_flash_duration: float = 0.0
    friendly_flash_duration: float = 0.0
    enemy_players_affected: int = 0
    friendly_players_affected: int = 0
    flashes_leading_to_kills: int = 0
    average_grenade_effectiveness: float = 0.0

    # Match context, used when the row is part of a player's history
    map_name: str | None = None
    won_match: bool = False
    played_at: datetime | None = field(default=None, compare=False)

    @property
    def grenades_thrown(self) -> int:
        return (
            self.flashes_thrown
            + self.fire_grenades_thrown
            + self.smokes_thrown
            + self.hes_thrown
            + self.decoys_thrown
        )

    def clutch_wins_for(self, size: int) -> int:
        return getattr(self, f"clutch_wins_1v{size}")

    def clutch_attempts_for(self, size: int) -> int:
        return getattr(self, f"clutch_attempts_1v{size}")

    @property
    def clutch_wins(self) -> int:
        return sum(self.clutch_wins_for(size) for size in CLUTCH_SIZES)

    @property
    def clutch_attempts(self) -> int:
        return sum(self.clutch_attempts_for(size) for size in CLUTCH_SIZES)

    @property
    def clutch_win_percentage(self) -> float:
        return calculate_percentage(self.clutch_wins, self.clutch_attempts)

    @property
    def kill_death_ratio(self) -> float:
        """K/D with deaths floored at one, so a deathless game is not infinite."""
        return self.kills / max(self.deaths, 1)

    @property
    def trade_kill_percentage(self) -> float:
        return calculate_percentage(self.total_successful_trades, self.total_possible_trades)

    @property
    def traded_death_percentage(self) -> float:
        return calculate_percentage(
            self.total_successful_traded_deaths, self.total_possible_traded_deaths
        )

    def per_round(self, value: float) -> float:
        """Per-round rate; 0.0 for a player with no rounds played."""
        return safe_divide(value, self.total_rounds_played)


class MatchEventSource(Protocol):
    """Read side of the event store the engine depends on."""

    def get_player_match_event(self, match_id: int, steam_id: str) -> PlayerMatchEvent | None: ...

    def get_player_match_events(self, match_id: int) -> list[PlayerMatchEvent]: ...

    def get_participants(self, match_id: int) -> list[Participant]: ...

    def get_player_matches(
        self,
        steam_id: str,
        *,
        map_name: str | None = None,
        offset: int = 0,
        limit: int = 10,
    ) -> list[PlayerMatchEvent]: ...


class InMemoryEventSource:
    """
    Dict-backed MatchEventSource.

    Participants keep insertion order, which is the order TopRoleSelector
    uses to break ties. ``get_player_matches`` orders by ``played_at``
    newest first, falling back to match id.
    """

    def __init__(self) -> None:
        self._participants: dict[int, list[Participant]] = {}
        self._events: dict[tuple[int, str], PlayerMatchEvent] = {}

    def add_participant(self, match_id: int, participant: Participant) -> None:
        self._participants.setdefault(match_id, []).append(participant)

    def add_event(self, event: PlayerMatchEvent) -> None:
        self._events[(event.match_id, event.player_steam_id)] = event

    def get_player_match_event(self, match_id: int, steam_id: str) -> PlayerMatchEvent | None:
        return self._events.get((match_id, steam_id))

    def get_player_match_events(self, match_id: int) -> list[PlayerMatchEvent]:
        return [event for (mid, _), event in self._events.items() if mid == match_id]

    def get_participants(self, match_id: int) -> list[Participant]:
        return list(self._participants.get(match_id, []))

    def get_player_matches(
        self,
        steam_id: str,
        *,
        map_name: str | None = None,
        offset: int = 0,
        limit: int = 10,
    ) -> list[PlayerMatchEvent]:
        rows = [
            event
            for event in self._events.values()
            if event.player_steam_id == steam_id
            and (map_name is None or event.map_name == map_name)
        ]
        rows.sort(
            key=lambda e: (e.played_at or datetime.min, e.match_id),
            reverse=True,
        )
        return rows[offset : offset + limit]
