"""
SQLAlchemy implementations of the store contracts.
Every write commits on its own; a failed write is rolled back and re-raised
as PersistenceError so no partial record survives.
"""
import json
import logging
from contextlib import contextmanager
from typing import Optional, List, Dict

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.engine.errors import PersistenceError
from app.engine.rules import ExtraKind
from app.engine.scoring import Delivery, Dismissal, MatchPhase, MatchResult, TossResult, TossDecision
from app.engine.stats import BattingDelta, BowlingDelta, FieldingDelta, PlayerMatchStats, merge_into
from app.models.match import Match, MatchStatus, DeliveryRecord, MatchSnapshotRecord
from app.models.player import Player
from app.models.stats import TournamentPlayerStats, CareerPlayerStats, StatsSyncRecord
from app.stores.base import MatchSnapshot, DeliveryStore, SnapshotStore, RosterProvider, StatsSink

logger = logging.getLogger(__name__)


@contextmanager
def _write(db: Session, action: str):
    try:
        yield
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to %s: %s", action, e)
        raise PersistenceError(f"Failed to {action}") from e


def to_delivery(record: DeliveryRecord) -> Delivery:
    dismissal = None
    if record.dismissal_type is not None:
        dismissal = Dismissal(
            kind=record.dismissal_type,
            player_out=record.dismissed_player_id,
            fielder=record.fielder_id,
            runs_completed=record.runs_completed or 0,
        )
    return Delivery(
        id=record.id,
        innings=record.innings,
        over_number=record.over_number,
        ball_in_over=record.ball_in_over,
        striker=record.striker_id,
        non_striker=record.non_striker_id,
        bowler=record.bowler_id,
        runs_off_bat=record.runs_off_bat,
        extra=record.extra_type or ExtraKind.NONE,
        extra_runs=record.extra_runs,
        dismissal=dismissal,
        is_four=record.is_four,
        is_six=record.is_six,
        is_free_hit=record.is_free_hit,
        is_legal=record.is_legal,
        shot_zone=record.shot_zone,
    )


class SqlDeliveryStore(DeliveryStore):
    def __init__(self, db: Session):
        self.db = db

    def append(self, match_id: int, delivery: Delivery) -> Delivery:
        dismissal = delivery.dismissal
        record = DeliveryRecord(
            match_id=match_id,
            innings=delivery.innings,
            over_number=delivery.over_number,
            ball_in_over=delivery.ball_in_over,
            striker_id=delivery.striker,
            non_striker_id=delivery.non_striker,
            bowler_id=delivery.bowler,
            runs_off_bat=delivery.runs_off_bat,
            is_four=delivery.is_four,
            is_six=delivery.is_six,
            extra_type=delivery.extra,
            extra_runs=delivery.extra_runs,
            is_legal=delivery.is_legal,
            is_free_hit=delivery.is_free_hit,
            dismissal_type=dismissal.kind if dismissal else None,
            dismissed_player_id=dismissal.player_out if dismissal else None,
            fielder_id=dismissal.fielder if dismissal else None,
            runs_completed=dismissal.runs_completed if dismissal else 0,
            shot_zone=delivery.shot_zone,
        )
        with _write(self.db, "append delivery"):
            self.db.add(record)
            self.db.flush()
        return to_delivery(record)

    def list_by_match(self, match_id: int, innings: Optional[int] = None) -> List[Delivery]:
        query = self.db.query(DeliveryRecord).filter_by(match_id=match_id)
        if innings is not None:
            query = query.filter_by(innings=innings)
        return [to_delivery(r) for r in query.order_by(DeliveryRecord.id).all()]

    def remove(self, delivery_id: int) -> None:
        record = self.db.get(DeliveryRecord, delivery_id)
        if record is None:
            raise PersistenceError(f"Delivery {delivery_id} not found")
        with _write(self.db, "remove delivery"):
            self.db.delete(record)

    def set_shot_zone(self, delivery_id: int, zone: Optional[str]) -> Delivery:
        record = self.db.get(DeliveryRecord, delivery_id)
        if record is None:
            raise PersistenceError(f"Delivery {delivery_id} not found")
        with _write(self.db, "set shot zone"):
            record.shot_zone = zone
        return to_delivery(record)


class SqlSnapshotStore(SnapshotStore):
    def __init__(self, db: Session):
        self.db = db

    def upsert(self, match_id: int, snapshot: MatchSnapshot) -> None:
        with _write(self.db, "save snapshot"):
            record = self.db.get(MatchSnapshotRecord, match_id)
            if record is None:
                record = MatchSnapshotRecord(match_id=match_id)
                self.db.add(record)
            record.phase = snapshot.phase.value
            record.innings = snapshot.innings
            record.striker_id = snapshot.striker
            record.non_striker_id = snapshot.non_striker
            record.bowler_id = snapshot.bowler
            record.last_over_bowler_id = snapshot.last_over_bowler
            record.free_hit = snapshot.free_hit
            record.needs_new_bowler = snapshot.needs_new_bowler
            record.toss_winner_id = snapshot.toss.winner_id if snapshot.toss else None
            record.toss_decision = snapshot.toss.decision.value if snapshot.toss else None
            record.batting_first_id = snapshot.toss.batting_first_id if snapshot.toss else None
            record.rule_profile_json = snapshot.rule_profile_json
            record.retired_json = json.dumps(sorted(snapshot.retired))
            record.target = snapshot.target
            record.revised_overs = snapshot.revised_overs
            record.delivery_count = snapshot.delivery_count

    def get(self, match_id: int) -> Optional[MatchSnapshot]:
        record = self.db.get(MatchSnapshotRecord, match_id)
        if record is None:
            return None
        toss = None
        if record.toss_winner_id is not None:
            toss = TossResult(
                winner_id=record.toss_winner_id,
                decision=TossDecision(record.toss_decision),
                batting_first_id=record.batting_first_id,
            )
        return MatchSnapshot(
            match_id=record.match_id,
            phase=MatchPhase(record.phase),
            innings=record.innings,
            rule_profile_json=record.rule_profile_json,
            striker=record.striker_id,
            non_striker=record.non_striker_id,
            bowler=record.bowler_id,
            last_over_bowler=record.last_over_bowler_id,
            free_hit=record.free_hit,
            needs_new_bowler=record.needs_new_bowler,
            toss=toss,
            retired=frozenset(json.loads(record.retired_json or "[]")),
            target=record.target,
            revised_overs=record.revised_overs,
            delivery_count=record.delivery_count,
        )

    def delete(self, match_id: int) -> None:
        record = self.db.get(MatchSnapshotRecord, match_id)
        if record is None:
            return
        with _write(self.db, "delete snapshot"):
            self.db.delete(record)


class SqlRosterProvider(RosterProvider):
    def __init__(self, db: Session):
        self.db = db

    def players_for(self, team_id: int) -> List[int]:
        players = self.db.query(Player).filter_by(team_id=team_id, is_active=True).order_by(Player.id).all()
        return [p.id for p in players]


class SqlStatsSink(StatsSink):
    """Adds match deltas to one stats table (tournament or career)"""

    def __init__(self, db: Session, model, key: str, tournament_id: Optional[int] = None):
        self.db = db
        self.model = model
        self.key = key
        self.tournament_id = tournament_id

    def _record_for(self, player_id: int):
        filters = {"player_id": player_id}
        if self.model is TournamentPlayerStats:
            filters["tournament_id"] = self.tournament_id
        record = self.db.query(self.model).filter_by(**filters).first()
        if record is None:
            record = self.model(**filters)
            self.db.add(record)
        return record

    def apply_delta(
        self,
        player_id: int,
        batting: Optional[BattingDelta] = None,
        bowling: Optional[BowlingDelta] = None,
        fielding: Optional[FieldingDelta] = None,
    ) -> None:
        with _write(self.db, f"update {self.model.__tablename__} for player {player_id}"):
            record = self._record_for(player_id)
            merge_into(record, PlayerMatchStats(player_id, batting, bowling, fielding))

    def apply_match(self, match_id: int, aggregates: Dict[int, PlayerMatchStats]) -> bool:
        """All players and the sync marker commit together, or none of them do"""
        if self.db.query(StatsSyncRecord).filter_by(match_id=match_id, sink=self.key).first() is not None:
            logger.info("Match %s already merged into %s stats", match_id, self.key)
            return False
        with _write(self.db, f"merge match {match_id} into {self.model.__tablename__}"):
            for player_id, stats in aggregates.items():
                merge_into(self._record_for(player_id), stats)
            self.db.add(StatsSyncRecord(match_id=match_id, sink=self.key))
        return True


def tournament_sink(db: Session, tournament_id: Optional[int]) -> SqlStatsSink:
    return SqlStatsSink(db, TournamentPlayerStats, "tournament", tournament_id=tournament_id)


def career_sink(db: Session) -> SqlStatsSink:
    return SqlStatsSink(db, CareerPlayerStats, "career")


class SqlMatchRepository:
    """Match header updates made by the live session"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, match_id: int) -> Optional[Match]:
        return self.db.get(Match, match_id)

    def save_toss(self, match_id: int, toss: TossResult) -> None:
        with _write(self.db, "save toss"):
            match = self.db.get(Match, match_id)
            match.toss_winner_id = toss.winner_id
            match.toss_decision = toss.decision.value
            match.batting_first_id = toss.batting_first_id
            match.status = MatchStatus.IN_PROGRESS

    def save_target(self, match_id: int, target: Optional[int], revised_overs: Optional[int]) -> None:
        with _write(self.db, "save target"):
            match = self.db.get(Match, match_id)
            match.target = target
            match.revised_overs = revised_overs

    def complete(self, match_id: int, result: MatchResult, stats_synced: bool) -> None:
        with _write(self.db, "complete match"):
            match = self.db.get(Match, match_id)
            match.status = MatchStatus.COMPLETED
            match.winner_id = result.winner_id
            match.result_summary = result.summary
            match.stats_synced = stats_synced

    def abandon(self, match_id: int) -> None:
        with _write(self.db, "abandon match"):
            match = self.db.get(Match, match_id)
            match.status = MatchStatus.ABANDONED
            match.result_summary = "Match abandoned"
