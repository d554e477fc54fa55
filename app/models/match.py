from typing import Optional, List
from sqlalchemy import String, Integer, ForeignKey, Enum, DateTime, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
import enum
from app.database import Base
from app.engine.rules import ExtraKind, DismissalKind


class MatchStatus(enum.Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class Match(Base):
    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(primary_key=True)
    tournament_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Teams
    team1_id: Mapped[int] = mapped_column(ForeignKey("teams.id"))
    team2_id: Mapped[int] = mapped_column(ForeignKey("teams.id"))
    team1: Mapped["Team"] = relationship("Team", foreign_keys=[team1_id])
    team2: Mapped["Team"] = relationship("Team", foreign_keys=[team2_id])

    # Match info
    venue: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    match_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Rules, frozen once the match starts
    rule_profile_json: Mapped[str] = mapped_column(Text)

    # Toss
    toss_winner_id: Mapped[Optional[int]] = mapped_column(ForeignKey("teams.id"), nullable=True)
    toss_decision: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)  # "bat" or "bowl"
    batting_first_id: Mapped[Optional[int]] = mapped_column(ForeignKey("teams.id"), nullable=True)

    # Status
    status: Mapped[MatchStatus] = mapped_column(Enum(MatchStatus), default=MatchStatus.SCHEDULED)

    # Second innings target, possibly DLS-revised
    target: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    revised_overs: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Result
    winner_id: Mapped[Optional[int]] = mapped_column(ForeignKey("teams.id"), nullable=True)
    result_summary: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    stats_synced: Mapped[bool] = mapped_column(default=False)

    # Relationships
    deliveries: Mapped[List["DeliveryRecord"]] = relationship(
        "DeliveryRecord",
        back_populates="match",
        order_by="DeliveryRecord.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Match {self.id}: {self.team1_id} vs {self.team2_id} ({self.status.value})>"


class DeliveryRecord(Base):
    """One persisted delivery. Rows are only ever appended or removed by undo."""
    __tablename__ = "deliveries"
    __table_args__ = (
        UniqueConstraint("match_id", "innings", "over_number", "ball_in_over", name="uq_delivery_position"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    match_id: Mapped[int] = mapped_column(ForeignKey("matches.id"))
    match: Mapped["Match"] = relationship("Match", back_populates="deliveries")

    innings: Mapped[int] = mapped_column(Integer)  # 1 or 2
    over_number: Mapped[int] = mapped_column(Integer)  # 1-based
    ball_in_over: Mapped[int] = mapped_column(Integer)  # includes wides and no-balls

    # Players involved
    striker_id: Mapped[int] = mapped_column(ForeignKey("players.id"))
    non_striker_id: Mapped[Optional[int]] = mapped_column(ForeignKey("players.id"), nullable=True)
    bowler_id: Mapped[int] = mapped_column(ForeignKey("players.id"))

    # Outcome
    runs_off_bat: Mapped[int] = mapped_column(Integer, default=0)
    is_four: Mapped[bool] = mapped_column(default=False)
    is_six: Mapped[bool] = mapped_column(default=False)

    # Extras
    extra_type: Mapped[ExtraKind] = mapped_column(Enum(ExtraKind), default=ExtraKind.NONE)
    extra_runs: Mapped[int] = mapped_column(Integer, default=0)
    is_legal: Mapped[bool] = mapped_column(default=True)
    is_free_hit: Mapped[bool] = mapped_column(default=False)

    # Wicket
    dismissal_type: Mapped[Optional[DismissalKind]] = mapped_column(Enum(DismissalKind), nullable=True)
    dismissed_player_id: Mapped[Optional[int]] = mapped_column(ForeignKey("players.id"), nullable=True)
    fielder_id: Mapped[Optional[int]] = mapped_column(ForeignKey("players.id"), nullable=True)
    runs_completed: Mapped[int] = mapped_column(Integer, default=0)

    # Post-hoc enrichment
    shot_zone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Delivery {self.innings}:{self.over_number}.{self.ball_in_over}>"


class MatchSnapshotRecord(Base):
    """Resumable projection of a live match. The delivery log wins on disagreement."""
    __tablename__ = "match_snapshots"

    match_id: Mapped[int] = mapped_column(ForeignKey("matches.id"), primary_key=True)

    phase: Mapped[str] = mapped_column(String(20))
    innings: Mapped[int] = mapped_column(Integer, default=1)
    striker_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    non_striker_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bowler_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    last_over_bowler_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    free_hit: Mapped[bool] = mapped_column(default=False)
    needs_new_bowler: Mapped[bool] = mapped_column(default=False)

    # Toss outcome
    toss_winner_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    toss_decision: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    batting_first_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    rule_profile_json: Mapped[str] = mapped_column(Text)
    retired_json: Mapped[str] = mapped_column(Text, default="[]")
    target: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    revised_overs: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Deliveries in the log when this snapshot was written
    delivery_count: Mapped[int] = mapped_column(Integer, default=0)

    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Snapshot match={self.match_id} innings={self.innings} deliveries={self.delivery_count}>"
