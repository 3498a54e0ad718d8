"""
Match access checks.

A user may see per-match breakdowns only for matches they played in. The
check is a small stateless collaborator handed to the services that need it.
"""

import logging

from fragscore.analysis.models import MatchEventSource

logger = logging.getLogger(__name__)


class MatchAccessPolicy:
    """Grants access to a match when the user's Steam ID is among its participants."""

    def __init__(self, source: MatchEventSource):
        self.source = source

    def has_user_access_to_match(self, user_steam_id: str | None, match_id: int) -> bool:
        if not user_steam_id:
            return False
        return any(p.steam_id == user_steam_id for p in self.source.get_participants(match_id))
