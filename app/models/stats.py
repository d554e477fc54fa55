"""
Aggregate player statistics, tournament-scoped and career-scoped.
Both tables are fed the same match deltas and only ever grow by addition.
"""
from typing import Optional
from sqlalchemy import String, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from app.database import Base


class PlayerStatsColumns:
    """Batting, bowling and fielding counters shared by both stats tables"""

    # Batting stats
    matches: Mapped[int] = mapped_column(Integer, default=0)
    batting_innings: Mapped[int] = mapped_column(Integer, default=0)
    runs: Mapped[int] = mapped_column(Integer, default=0)
    balls_faced: Mapped[int] = mapped_column(Integer, default=0)
    fours: Mapped[int] = mapped_column(Integer, default=0)
    sixes: Mapped[int] = mapped_column(Integer, default=0)
    not_outs: Mapped[int] = mapped_column(Integer, default=0)
    fifties: Mapped[int] = mapped_column(Integer, default=0)
    hundreds: Mapped[int] = mapped_column(Integer, default=0)
    ducks: Mapped[int] = mapped_column(Integer, default=0)
    highest_score: Mapped[int] = mapped_column(Integer, default=0)

    # Bowling stats
    bowling_innings: Mapped[int] = mapped_column(Integer, default=0)
    balls_bowled: Mapped[int] = mapped_column(Integer, default=0)
    runs_conceded: Mapped[int] = mapped_column(Integer, default=0)
    wickets: Mapped[int] = mapped_column(Integer, default=0)
    maidens: Mapped[int] = mapped_column(Integer, default=0)
    dot_balls: Mapped[int] = mapped_column(Integer, default=0)
    four_wickets: Mapped[int] = mapped_column(Integer, default=0)
    five_wickets: Mapped[int] = mapped_column(Integer, default=0)
    best_bowling: Mapped[str] = mapped_column(String(10), default="")  # "4/23"

    # Fielding stats
    catches: Mapped[int] = mapped_column(Integer, default=0)
    stumpings: Mapped[int] = mapped_column(Integer, default=0)
    run_outs: Mapped[int] = mapped_column(Integer, default=0)

    @property
    def batting_average(self) -> float:
        """Calculate batting average: runs / dismissals"""
        dismissals = (self.batting_innings or 0) - (self.not_outs or 0)
        if dismissals <= 0:
            return float(self.runs or 0)
        return round(self.runs / dismissals, 2)

    @property
    def strike_rate(self) -> float:
        """Calculate strike rate: (runs / balls) * 100"""
        if not self.balls_faced:
            return 0.0
        return round((self.runs / self.balls_faced) * 100, 2)

    @property
    def bowling_average(self) -> float:
        """Calculate bowling average: runs conceded / wickets"""
        if not self.wickets:
            return 0.0
        return round(self.runs_conceded / self.wickets, 2)

    @property
    def economy_rate(self) -> float:
        """Calculate economy: runs conceded per six balls"""
        if not self.balls_bowled:
            return 0.0
        return round(self.runs_conceded / self.balls_bowled * 6, 2)


class TournamentPlayerStats(PlayerStatsColumns, Base):
    __tablename__ = "tournament_player_stats"
    __table_args__ = (UniqueConstraint("tournament_id", "player_id", name="uq_tournament_player"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    tournament_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    player_id: Mapped[int] = mapped_column(ForeignKey("players.id"))

    def __repr__(self):
        return f"<TournamentPlayerStats tournament={self.tournament_id} player={self.player_id}>"


class CareerPlayerStats(PlayerStatsColumns, Base):
    __tablename__ = "career_player_stats"

    id: Mapped[int] = mapped_column(primary_key=True)
    player_id: Mapped[int] = mapped_column(ForeignKey("players.id"), unique=True)

    def __repr__(self):
        return f"<CareerPlayerStats player={self.player_id}>"


class StatsSyncRecord(Base):
    """Marks a match's deltas as merged into one stats table"""
    __tablename__ = "stats_sync"
    __table_args__ = (UniqueConstraint("match_id", "sink", name="uq_stats_sync"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    match_id: Mapped[int] = mapped_column(ForeignKey("matches.id"))
    sink: Mapped[str] = mapped_column(String(30))  # "tournament" or "career"

    def __repr__(self):
        return f"<StatsSync match={self.match_id} sink={self.sink}>"
