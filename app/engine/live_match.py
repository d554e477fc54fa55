"""
Live match session: one writer per match.

Commands are applied optimistically to the in-memory state, then the
resulting delivery (or undo) is written to the log. The new state only
becomes current once the write succeeds, so a failed write leaves the
session at the last confirmed log state.
"""
import logging
import time
from dataclasses import replace
from typing import Optional, List, NamedTuple, Sequence, Callable, Tuple

from app.config import settings
from app.engine import dls
from app.engine.errors import PersistenceError, InvalidSelection
from app.engine.scoring import (
    ScoringEngine, MatchState, MatchPhase, Fact, Delivery, TossResult, InningsTally,
    CompleteToss, SelectOpeners, SelectBatter, SelectBowler, EndInnings, ReviseTarget, Abandon,
    CreaseEnd,
)
from app.engine.scorecard import innings_scorecard
from app.engine.stats import StatsAggregator
from app.stores.base import MatchSnapshot, DeliveryStore, SnapshotStore, RosterProvider, StatsSink
from app.validators.selection_validator import SelectionValidator

logger = logging.getLogger(__name__)


class CommandResult(NamedTuple):
    state: MatchState
    facts: List[Fact]
    delivery: Optional[Delivery] = None
    stats_synced: Optional[bool] = None
    unsynced_sinks: Tuple[str, ...] = ()


class LiveMatchSession:
    def __init__(
        self,
        engine: ScoringEngine,
        state: MatchState,
        deliveries: DeliveryStore,
        snapshots: SnapshotStore,
        roster: RosterProvider,
        sinks: Sequence[StatsSink],
        matches,
        debounce_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.engine = engine
        self.state = state
        self.deliveries = deliveries
        self.snapshots = snapshots
        self.roster = roster
        self.sinks = list(sinks)
        self.matches = matches
        self.debounce_seconds = settings.SNAPSHOT_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        self.clock = clock
        self._dirty = False
        self._last_saved = clock()

    @property
    def match_id(self) -> int:
        return self.state.match_id

    @property
    def profile(self):
        return self.engine.profile

    # Lifecycle

    @classmethod
    def start(cls, match_id: int, team1_id: int, team2_id: int, engine: ScoringEngine, **stores) -> "LiveMatchSession":
        return cls(engine, engine.new_match(match_id, team1_id, team2_id), **stores)

    @classmethod
    def resume(
        cls,
        match_id: int,
        team1_id: int,
        team2_id: int,
        engine: ScoringEngine,
        toss: Optional[TossResult] = None,
        target: Optional[int] = None,
        revised_overs: Optional[int] = None,
        **stores,
    ) -> "LiveMatchSession":
        """
        Load the log and the snapshot. A snapshot that agrees with the log
        supplies the selections made since the last delivery; otherwise the
        state is rebuilt from the log alone and the snapshot rewritten.
        """
        log = stores["deliveries"].list_by_match(match_id)
        snapshot = stores["snapshots"].get(match_id)

        if snapshot is not None and snapshot.delivery_count == len(log):
            state = cls._from_snapshot(engine, snapshot, log, team1_id, team2_id)
            session = cls(engine, state, **stores)
        else:
            if snapshot is None:
                logger.warning("No snapshot for match %s; rebuilding from %d deliveries", match_id, len(log))
            else:
                logger.warning(
                    "Snapshot for match %s covers %d deliveries but the log has %d; rebuilding from the log",
                    match_id, snapshot.delivery_count, len(log),
                )
                toss = snapshot.toss or toss
            # A stored target means the first innings is over, even with no second innings balls yet
            state = engine.rebuild_state(
                match_id, team1_id, team2_id,
                toss=toss,
                deliveries=log,
                innings=2 if target is not None else None,
                revised_overs=revised_overs,
                target=target,
            )
            session = cls(engine, state, **stores)
            session._save_snapshot()
        return session

    @staticmethod
    def _from_snapshot(engine: ScoringEngine, snapshot: MatchSnapshot, log: List[Delivery],
                       team1_id: int, team2_id: int) -> MatchState:
        innings = 2 if snapshot.phase == MatchPhase.INNINGS_BREAK else snapshot.innings
        state = engine.rebuild_state(
            snapshot.match_id, team1_id, team2_id,
            toss=snapshot.toss,
            deliveries=log,
            innings=innings,
            retired=snapshot.retired,
            revised_overs=snapshot.revised_overs,
            target=snapshot.target,
        )
        return replace(
            state,
            phase=snapshot.phase,
            innings=snapshot.innings,
            striker=snapshot.striker,
            non_striker=snapshot.non_striker,
            bowler=snapshot.bowler,
            last_over_bowler=snapshot.last_over_bowler,
            free_hit=snapshot.free_hit,
            needs_new_bowler=snapshot.needs_new_bowler,
        )

    # Commands

    def apply(self, command) -> CommandResult:
        self._check_roster(command)
        transition = self.engine.apply(self.state, command)
        new_state = transition.state

        try:
            if transition.delivery is not None:
                persisted = self.deliveries.append(self.match_id, transition.delivery)
                new_state = replace(new_state, deliveries=new_state.deliveries[:-1] + (persisted,))
                transition = transition._replace(delivery=persisted)
            elif transition.removed is not None:
                self.deliveries.remove(transition.removed.id)
        except PersistenceError:
            logger.error("Write failed for match %s; keeping state at version %s", self.match_id, self.state.version)
            raise

        stats_synced, unsynced = None, ()
        if isinstance(command, CompleteToss):
            self.matches.save_toss(self.match_id, new_state.toss)
        elif isinstance(command, ReviseTarget) or (isinstance(command, EndInnings) and new_state.innings == 1):
            self.matches.save_target(self.match_id, new_state.target, new_state.revised_overs)
        elif new_state.phase == MatchPhase.COMPLETED:
            unsynced = self._complete(new_state)
            stats_synced = not unsynced
        elif isinstance(command, Abandon):
            self.matches.abandon(self.match_id)

        self.state = new_state

        if new_state.phase in (MatchPhase.COMPLETED, MatchPhase.ABANDONED):
            self.snapshots.delete(self.match_id)
            self._dirty = False
        elif transition.delivery is not None or transition.removed is not None or self._forces_snapshot(command):
            self._save_snapshot()
        else:
            self._dirty = True
            if self.clock() - self._last_saved >= self.debounce_seconds:
                self.flush()

        return CommandResult(new_state, transition.facts, transition.delivery, stats_synced, unsynced)

    @staticmethod
    def _forces_snapshot(command) -> bool:
        return isinstance(command, (CompleteToss, EndInnings, ReviseTarget))

    def _check_roster(self, command):
        state = self.state
        if isinstance(command, SelectBowler) and state.phase == MatchPhase.IN_PLAY:
            profile = self.engine.profile_for(state)
            check = SelectionValidator.validate_bowler(
                state, profile, command.player_id, self.roster.players_for(state.bowling_team_id)
            )
        elif isinstance(command, SelectBatter) and state.phase == MatchPhase.IN_PLAY:
            candidate = replace(
                state,
                striker=None if CreaseEnd(command.end) == CreaseEnd.STRIKER else state.striker,
                non_striker=None if CreaseEnd(command.end) == CreaseEnd.NON_STRIKER else state.non_striker,
            )
            check = SelectionValidator.validate_batter(
                candidate, self.profile, command.player_id, self.roster.players_for(state.batting_team_id)
            )
        elif isinstance(command, SelectOpeners) and state.phase in (MatchPhase.AWAITING_OPENERS, MatchPhase.INNINGS_BREAK):
            batting = state.batting_team_id
            if state.phase == MatchPhase.INNINGS_BREAK:
                batting = state.other_team(batting)
            roster = set(self.roster.players_for(batting))
            missing = [p for p in (command.striker, command.non_striker) if p not in roster]
            check = {"valid": not missing, "errors": [f"Player {p} is not in the batting team" for p in missing]}
        else:
            return
        if not check["valid"]:
            raise InvalidSelection("; ".join(check["errors"]))

    def _complete(self, state: MatchState) -> Tuple[str, ...]:
        """
        Sync player stats to every sink and close the match. Each sink is
        merged on its own, so one failing table never starves the other.
        Stats failures degrade; returns the keys of the sinks that failed.
        """
        aggregates = StatsAggregator(self.profile.balls_per_over).reduce(state.deliveries)
        failed = []
        for sink in self.sinks:
            try:
                sink.apply_match(self.match_id, aggregates)
            except Exception:
                logger.exception("Stats sync failed for match %s (%s)", self.match_id, sink.key)
                failed.append(sink.key)
        self.matches.complete(self.match_id, state.result, not failed)
        logger.info("Match %s completed: %s", self.match_id, state.result.summary)
        return tuple(failed)

    # Snapshot

    def _save_snapshot(self):
        try:
            self.snapshots.upsert(self.match_id, MatchSnapshot.from_state(self.state, self.profile.to_json()))
        except PersistenceError:
            # The log is intact, so resume can rebuild; retry on the next flush
            logger.exception("Snapshot write failed for match %s", self.match_id)
            self._dirty = True
            return
        self._dirty = False
        self._last_saved = self.clock()

    def flush(self):
        if self._dirty:
            self._save_snapshot()

    def leave(self) -> MatchState:
        self.flush()
        return self.state

    # Queries

    def set_shot_zone(self, delivery_id: int, zone: Optional[str]) -> Delivery:
        updated = self.deliveries.set_shot_zone(delivery_id, zone)
        self.state = replace(
            self.state,
            deliveries=tuple(updated if d.id == delivery_id else d for d in self.state.deliveries),
        )
        return updated

    def scorecard(self, innings: int) -> dict:
        bpo = self.profile.balls_per_over
        return innings_scorecard(self.state.deliveries_for(innings), bpo)

    def dls_situation(self) -> Optional[dls.DLSSituation]:
        """Live par position in a shortened chase; None when it does not apply or cannot be computed"""
        state = self.state
        if state.innings != 2 or state.revised_overs is None or state.phase != MatchPhase.IN_PLAY:
            return None
        bpo = self.profile.balls_per_over
        try:
            first = InningsTally.replay(state.deliveries_for(1), bpo)
            return dls.situation(
                team1_score=first.runs,
                team1_overs=first.legal_balls / bpo or self.profile.total_overs,
                team2_score=state.tally.runs,
                team2_overs_used=state.tally.legal_balls / bpo,
                team2_wickets_lost=state.tally.wickets,
                team2_total_overs=state.revised_overs,
                revised=state.target,
            )
        except (ArithmeticError, ValueError, KeyError):
            logger.exception("DLS situation unavailable for match %s", self.match_id)
            return None
