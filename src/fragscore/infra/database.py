"""
fragscore Match Event Store.

Persists finalized per-(match, player) event rows and match participants in
SQLite through the SQLAlchemy ORM, and serves them back to the scoring engine
as PlayerMatchEvent value objects.

Rows are written by the ingestion callback once a demo has been parsed.
Rewriting the rows of a match (a reprocessed demo) notifies the registered
invalidation listeners so cached aggregates for that match are purged.
"""

import logging
import os
from collections.abc import Callable, Iterable
from dataclasses import fields
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    create_engine,
)
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker

from fragscore.analysis.models import Participant, PlayerMatchEvent

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


DEFAULT_DB_PATH = Path.home() / ".fragscore" / "events.db"
Base = declarative_base()

# Fields of PlayerMatchEvent that come from the match, not the event row
_MATCH_CONTEXT_FIELDS = {"match_id", "player_steam_id", "map_name", "won_match", "played_at"}
EVENT_STAT_FIELDS = [f.name for f in fields(PlayerMatchEvent) if f.name not in _MATCH_CONTEXT_FIELDS]


# =============================================================================
# Database Models
# =============================================================================


class Match(Base):
    """A completed match."""

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    map_name = Column(String(50), index=True)
    played_at = Column(DateTime, index=True)
    winning_team = Column(String(20))
    created_at = Column(DateTime, default=_utc_now)

    players = relationship(
        "MatchPlayer",
        back_populates="match",
        cascade="all, delete-orphan",
        order_by="MatchPlayer.id",
    )
    events = relationship(
        "PlayerMatchEventRow", back_populates="match", cascade="all, delete-orphan"
    )


class MatchPlayer(Base):
    """A participant of a match. Insertion order is preserved via the primary key."""

    __tablename__ = "match_players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False, index=True)
    steam_id = Column(String(20), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    team = Column(String(20))

    match = relationship("Match", back_populates="players")

    __table_args__ = (Index("idx_match_player", "match_id", "steam_id", unique=True),)


class PlayerMatchEventRow(Base):
    """Finalized counting statistics for one player in one match."""

    __tablename__ = "player_match_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False, index=True)
    player_steam_id = Column(String(20), nullable=False, index=True)

    # Core
    kills = Column(Integer, default=0)
    deaths = Column(Integer, default=0)
    assists = Column(Integer, default=0)
    damage = Column(Integer, default=0)
    adr = Column(Float, default=0.0)
    headshots = Column(Integer, default=0)
    total_rounds_played = Column(Integer, default=0)

    # Opening duels
    first_kills = Column(Integer, default=0)
    first_deaths = Column(Integer, default=0)

    # Timing
    average_round_time_of_death = Column(Float)
    average_time_to_contact = Column(Float)

    # Trades
    total_successful_trades = Column(Integer, default=0)
    total_possible_trades = Column(Integer, default=0)
    total_successful_traded_deaths = Column(Integer, default=0)
    total_possible_traded_deaths = Column(Integer, default=0)

    # Clutches
    clutch_wins_1v1 = Column(Integer, default=0)
    clutch_wins_1v2 = Column(Integer, default=0)
    clutch_wins_1v3 = Column(Integer, default=0)
    clutch_wins_1v4 = Column(Integer, default=0)
    clutch_wins_1v5 = Column(Integer, default=0)
    clutch_attempts_1v1 = Column(Integer, default=0)
    clutch_attempts_1v2 = Column(Integer, default=0)
    clutch_attempts_1v3 = Column(Integer, default=0)
    clutch_attempts_1v4 = Column(Integer, default=0)
    clutch_attempts_1v5 = Column(Integer, default=0)

    # Utility
    flashes_thrown = Column(Integer, default=0)
    fire_grenades_thrown = Column(Integer, default=0)
    smokes_thrown = Column(Integer, default=0)
    hes_thrown = Column(Integer, default=0)
    decoys_thrown = Column(Integer, default=0)
    damage_dealt = Column(Integer, default=0)
    enemy_flash_duration = Column(Float, default=0.0)
    friendly_flash_duration = Column(Float, default=0.0)
    enemy_players_affected = Column(Integer, default=0)
    friendly_players_affected = Column(Integer, default=0)
    flashes_leading_to_kills = Column(Integer, default=0)
    average_grenade_effectiveness = Column(Float, default=0.0)

    match = relationship("Match", back_populates="events")

    __table_args__ = (
        Index("idx_event_match_player", "match_id", "player_steam_id", unique=True),
    )

    def to_event(self, match: Match | None = None, won_match: bool = False) -> PlayerMatchEvent:
        values: dict[str, Any] = {name: getattr(self, name) for name in EVENT_STAT_FIELDS}
        # Unset numeric columns come back as None before the row is flushed
        for name, value in values.items():
            if value is None and name not in ("average_round_time_of_death", "average_time_to_contact"):
                values[name] = 0
        return PlayerMatchEvent(
            match_id=self.match_id,
            player_steam_id=self.player_steam_id,
            map_name=match.map_name if match else None,
            played_at=match.played_at if match else None,
            won_match=won_match,
            **values,
        )


InvalidationListener = Callable[[int, list[str]], Any]


class DatabaseManager:
    """
    Manages database connections and implements the engine's event source.

    Reads never raise for unknown matches or players; they return None or
    empty lists so callers can render "no data".
    """

    def __init__(self, db_path: Path | str | None = None, echo: bool = False):
        """Initialize database connection."""
        if db_path is None:
            db_path = os.environ.get("FRAGSCORE_DB_PATH", DEFAULT_DB_PATH)

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(
            f"sqlite:///{self.db_path}",
            echo=echo,
            connect_args={"check_same_thread": False},
        )
        self.SessionLocal = sessionmaker(bind=self.engine)
        Base.metadata.create_all(self.engine)

        self._listeners: list[InvalidationListener] = []

        logger.info(f"Database initialized at: {self.db_path}")

    def get_session(self) -> Session:
        """Get a database session."""
        return self.SessionLocal()

    def add_invalidation_listener(self, listener: InvalidationListener) -> None:
        """Register ``listener(match_id, steam_ids)``, called after a match's events change."""
        self._listeners.append(listener)

    def _notify(self, match_id: int, steam_ids: list[str]) -> None:
        for listener in self._listeners:
            listener(match_id, steam_ids)

    # =========================================================================
    # Writes
    # =========================================================================

    def save_match(
        self,
        participants: Iterable[Participant | tuple[str, str] | tuple[str, str, str]],
        map_name: str | None = None,
        played_at: datetime | None = None,
        winning_team: str | None = None,
    ) -> int:
        """
        Create a match with its participants, in the given order.

        Participants are ``Participant`` objects or ``(steam_id, name[, team])``
        tuples.

        Returns:
            The new match id
        """
        session = self.get_session()
        try:
            match = Match(map_name=map_name, played_at=played_at, winning_team=winning_team)
            for participant in participants:
                if isinstance(participant, Participant):
                    steam_id, name, team = participant.steam_id, participant.name, None
                else:
                    steam_id, name, *rest = participant
                    team = rest[0] if rest else None
                match.players.append(MatchPlayer(steam_id=steam_id, name=name, team=team))
            session.add(match)
            session.commit()
            logger.info(f"Saved match {match.id} with {len(match.players)} players")
            return match.id
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def save_player_match_events(self, events: Iterable[PlayerMatchEvent]) -> int:
        """
        Insert or replace event rows, then notify invalidation listeners per match.

        Returns:
            Number of rows written
        """
        touched: dict[int, list[str]] = {}
        session = self.get_session()
        try:
            for event in events:
                row = (
                    session.query(PlayerMatchEventRow)
                    .filter(
                        PlayerMatchEventRow.match_id == event.match_id,
                        PlayerMatchEventRow.player_steam_id == event.player_steam_id,
                    )
                    .first()
                )
                if row is None:
                    row = PlayerMatchEventRow(
                        match_id=event.match_id, player_steam_id=event.player_steam_id
                    )
                    session.add(row)
                for name in EVENT_STAT_FIELDS:
                    setattr(row, name, getattr(event, name))
                touched.setdefault(event.match_id, []).append(event.player_steam_id)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        for match_id, steam_ids in touched.items():
            self._notify(match_id, steam_ids)
        return sum(len(ids) for ids in touched.values())

    def save_player_match_event(self, event: PlayerMatchEvent) -> None:
        self.save_player_match_events([event])

    # =========================================================================
    # Reads (MatchEventSource)
    # =========================================================================

    def match_exists(self, match_id: int) -> bool:
        session = self.get_session()
        try:
            return session.get(Match, match_id) is not None
        finally:
            session.close()

    def get_participants(self, match_id: int) -> list[Participant]:
        session = self.get_session()
        try:
            players = (
                session.query(MatchPlayer)
                .filter(MatchPlayer.match_id == match_id)
                .order_by(MatchPlayer.id)
                .all()
            )
            return [Participant(steam_id=p.steam_id, name=p.name) for p in players]
        finally:
            session.close()

    def _won(self, match: Match | None, team: str | None) -> bool:
        return bool(match and match.winning_team and team == match.winning_team)

    def _query_events(self, session: Session):
        return (
            session.query(PlayerMatchEventRow, Match, MatchPlayer.team)
            .join(Match, PlayerMatchEventRow.match_id == Match.id)
            .outerjoin(
                MatchPlayer,
                (MatchPlayer.match_id == PlayerMatchEventRow.match_id)
                & (MatchPlayer.steam_id == PlayerMatchEventRow.player_steam_id),
            )
        )

    def get_player_match_event(self, match_id: int, steam_id: str) -> PlayerMatchEvent | None:
        session = self.get_session()
        try:
            result = (
                self._query_events(session)
                .filter(
                    PlayerMatchEventRow.match_id == match_id,
                    PlayerMatchEventRow.player_steam_id == steam_id,
                )
                .first()
            )
            if result is None:
                return None
            row, match, team = result
            return row.to_event(match, self._won(match, team))
        finally:
            session.close()

    def get_player_match_events(self, match_id: int) -> list[PlayerMatchEvent]:
        session = self.get_session()
        try:
            results = (
                self._query_events(session)
                .filter(PlayerMatchEventRow.match_id == match_id)
                .order_by(PlayerMatchEventRow.id)
                .all()
            )
            return [row.to_event(match, self._won(match, team)) for row, match, team in results]
        finally:
            session.close()

    def get_player_matches(
        self,
        steam_id: str,
        *,
        map_name: str | None = None,
        offset: int = 0,
        limit: int = 10,
    ) -> list[PlayerMatchEvent]:
        """A player's event rows, newest match first."""
        session = self.get_session()
        try:
            query = self._query_events(session).filter(
                PlayerMatchEventRow.player_steam_id == steam_id
            )
            if map_name:
                query = query.filter(Match.map_name == map_name)

            results = (
                query.order_by(Match.played_at.desc(), Match.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [row.to_event(match, self._won(match, team)) for row, match, team in results]
        finally:
            session.close()
