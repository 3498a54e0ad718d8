"""
Best player per role for a match.

Participants are scanned in the order the event source returns them and the
strict maximum per role is kept, so on a tie the first participant
encountered wins. The policy is arbitrary but deterministic.
"""

from __future__ import annotations

import logging

from fragscore.analysis.complexion import PlayerComplexionService
from fragscore.analysis.models import MatchEventSource, PlayerMatchEvent
from fragscore.core.constants import ROLES, Role
from fragscore.core.schemas import RoleScoreBundle, TopRoleBundle, TopRolePlayer
from fragscore.infra.cache import build_cache_key

logger = logging.getLogger(__name__)


def empty_top_role_player() -> TopRolePlayer:
    return {"name": None, "steam_id": None, "score": 0}


def empty_top_role_bundle() -> TopRoleBundle:
    return {role.value: empty_top_role_player() for role in ROLES}


def _seconds(value: float | None) -> str:
    return f"{round(value or 0.0, 1)}s"


def _percent(value: float) -> str:
    return f"{round(value, 1)}%"


def role_stats(event: PlayerMatchEvent, role: Role | str) -> dict[str, str | int | float]:
    """Headline stats shown next to the top player of a role."""
    role = Role(role)

    if role is Role.OPENER:
        return {
            "First Kills": event.first_kills,
            "First Deaths": event.first_deaths,
            "Avg Time to Contact": _seconds(event.average_time_to_contact),
            "Avg Time of Death": _seconds(event.average_round_time_of_death),
            "Traded Death Rate": _percent(event.traded_death_percentage),
        }
    if role is Role.CLOSER:
        return {
            "Clutch Wins": event.clutch_wins,
            "Clutch Attempts": event.clutch_attempts,
            "Clutch Win Rate": _percent(event.clutch_win_percentage),
            "Avg Time to Contact": _seconds(event.average_time_to_contact),
            "Avg Time of Death": _seconds(event.average_round_time_of_death),
        }
    if role is Role.SUPPORT:
        return {
            "Grenades Thrown": event.grenades_thrown,
            "Damage from Grenades": event.damage_dealt,
            "Enemy Flash Duration": _seconds(event.enemy_flash_duration),
            "Grenade Effectiveness": _percent(event.average_grenade_effectiveness),
            "Flashes Leading to Kills": event.flashes_leading_to_kills,
        }
    return {
        "Kills": event.kills,
        "Deaths": event.deaths,
        "K/D Ratio": round(event.kill_death_ratio, 2),
        "ADR": round(event.adr),
        "Trade Success Rate": _percent(event.trade_kill_percentage),
    }


def select_top_per_role(
    candidates: list[tuple[str, str, RoleScoreBundle]],
) -> TopRoleBundle:
    """
    Pick the highest scorer per role.

    Args:
        candidates: (steam_id, name, bundle) in stable input order

    Returns:
        Bundle of the winner per role; empty slots when there are no candidates
    """
    result = empty_top_role_bundle()

    for role in ROLES:
        top: TopRolePlayer | None = None
        top_score = -1
        for steam_id, name, bundle in candidates:
            score = bundle.get(role.value, 0)
            # Strict comparison: the first participant keeps a tied lead
            if score > top_score:
                top_score = score
                top = {"name": name, "steam_id": steam_id, "score": score}
        if top is not None:
            result[role.value] = top

    return result


class TopRoleSelector:
    """Best opener, closer, support and fragger of a match."""

    CACHE_NAME = "top-role-players"

    def __init__(self, source: MatchEventSource, complexion_service: PlayerComplexionService):
        self.source = source
        self.complexion_service = complexion_service

    @property
    def cache(self):
        return self.complexion_service.cache

    def top_per_role(self, match_id: int, include_stats: bool = False) -> TopRoleBundle:
        """
        Best player per role.

        An unknown match or one without scored participants resolves to
        empty slots ({name: None, steam_id: None, score: 0}) rather than an
        error, since the match may simply still be ingesting.
        """
        key = build_cache_key(self.CACHE_NAME, {"include_stats": True} if include_stats else None)
        return self.cache.remember(key, match_id, lambda: self._build(match_id, include_stats))

    def _build(self, match_id: int, include_stats: bool) -> TopRoleBundle:
        participants = self.source.get_participants(match_id)
        if not participants:
            logger.debug(f"No participants for match {match_id}")
            return empty_top_role_bundle()

        bundles = self.complexion_service.get_match(match_id)
        candidates = [
            (p.steam_id, p.name, bundles[p.steam_id])
            for p in participants
            if bundles.get(p.steam_id)
        ]
        result = select_top_per_role(candidates)

        if include_stats:
            events = {e.player_steam_id: e for e in self.source.get_player_match_events(match_id)}
            for role in ROLES:
                slot = result[role.value]
                event = events.get(slot["steam_id"]) if slot["steam_id"] else None
                slot["stats"] = role_stats(event, role) if event else {}

        return result
