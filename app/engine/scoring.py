"""
Live ball-by-ball scoring engine.

The engine is a reducer: every command is applied to an explicit, versioned
MatchState and returns a new state plus the facts the command produced. The
engine never mutates state and owns no per-match data, so any number of
matches can be scored with one engine per rule profile.
"""
import enum
from dataclasses import dataclass, field, replace
from typing import Optional, List, Dict, Tuple, FrozenSet, NamedTuple, Iterable

from app.engine.errors import InvalidState, InvalidSelection, IllegalTransition
from app.engine.rules import RuleProfile, ExtraKind, DismissalKind
from app.engine import dls


class MatchPhase(enum.Enum):
    AWAITING_TOSS = "awaiting_toss"
    AWAITING_OPENERS = "awaiting_openers"
    IN_PLAY = "in_play"
    INNINGS_BREAK = "innings_break"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class TossDecision(enum.Enum):
    BAT = "bat"
    BOWL = "bowl"


class CreaseEnd(enum.Enum):
    STRIKER = "striker"
    NON_STRIKER = "non_striker"


class FactKind(enum.Enum):
    DELIVERY_RECORDED = "delivery_recorded"
    DELIVERY_UNDONE = "delivery_undone"
    OVER_COMPLETE = "over_complete"
    MAIDEN_OVER = "maiden_over"
    STRIKE_ROTATED = "strike_rotated"
    WICKET_FALLEN = "wicket_fallen"
    WICKET_DISALLOWED = "wicket_disallowed"
    FREE_HIT_GRANTED = "free_hit_granted"
    BATTER_RETIRED = "batter_retired"
    POWERPLAY_COMPLETE = "powerplay_complete"
    BOWLER_QUOTA_REACHED = "bowler_quota_reached"
    TARGET_REACHED = "target_reached"
    TARGET_REVISED = "target_revised"
    INNINGS_COMPLETE = "innings_complete"
    INNINGS_ENDED = "innings_ended"
    MATCH_COMPLETE = "match_complete"
    MATCH_ABANDONED = "match_abandoned"


@dataclass(frozen=True)
class Fact:
    kind: FactKind
    player_id: Optional[int] = None
    detail: str = ""


@dataclass(frozen=True)
class TossResult:
    winner_id: int
    decision: TossDecision
    batting_first_id: int


@dataclass(frozen=True)
class Dismissal:
    kind: DismissalKind
    player_out: int
    fielder: Optional[int] = None
    runs_completed: int = 0


@dataclass(frozen=True)
class Delivery:
    """One bowled ball and its full outcome. Append-only."""
    innings: int
    over_number: int  # 1-based
    ball_in_over: int  # 1-based position among all deliveries of the over
    striker: int
    non_striker: Optional[int]  # None while the last batter bats alone
    bowler: int
    runs_off_bat: int = 0
    extra: ExtraKind = ExtraKind.NONE
    extra_runs: int = 0
    dismissal: Optional[Dismissal] = None
    is_four: bool = False
    is_six: bool = False
    is_free_hit: bool = False
    is_legal: bool = True
    shot_zone: Optional[str] = None
    id: Optional[int] = None

    @property
    def is_wicket(self) -> bool:
        return self.dismissal is not None and self.dismissal.kind.counts_as_wicket

    @property
    def total_runs(self) -> int:
        return self.runs_off_bat + self.extra_runs

    @property
    def runs_conceded(self) -> int:
        """Runs charged to the bowler (byes and leg-byes are not)"""
        if self.extra == ExtraKind.WIDE:
            return self.extra_runs
        if self.extra == ExtraKind.NO_BALL:
            return self.runs_off_bat + self.extra_runs
        if self.extra in (ExtraKind.BYE, ExtraKind.LEG_BYE):
            return 0
        return self.runs_off_bat

    @property
    def rotation_runs(self) -> int:
        """Runs physically run between the wickets"""
        if self.extra == ExtraKind.WIDE:
            return self.extra_runs - 1 if self.extra_runs > 1 else 0
        if self.extra in (ExtraKind.BYE, ExtraKind.LEG_BYE):
            return self.extra_runs
        return self.runs_off_bat

    @property
    def faced_by_striker(self) -> bool:
        return self.extra != ExtraKind.WIDE

    @property
    def display(self) -> str:
        if self.is_wicket:
            return "W"
        if self.extra == ExtraKind.WIDE:
            return f"{self.extra_runs}Wd" if self.extra_runs > 1 else "Wd"
        if self.extra == ExtraKind.NO_BALL:
            return f"{self.total_runs}Nb" if self.total_runs > 1 else "Nb"
        if self.extra == ExtraKind.BYE:
            return f"{self.extra_runs}B"
        if self.extra == ExtraKind.LEG_BYE:
            return f"{self.extra_runs}Lb"
        return str(self.runs_off_bat)


@dataclass(frozen=True)
class InningsTally:
    """Incremental counters for the innings in progress"""
    runs: int = 0
    wickets: int = 0
    legal_balls: int = 0
    over_deliveries: int = 0  # deliveries so far in the current over
    wides: int = 0
    no_balls: int = 0
    extras: int = 0
    batter_runs: Dict[int, int] = field(default_factory=dict)
    bowler_balls: Dict[int, int] = field(default_factory=dict)
    dismissed: FrozenSet[int] = frozenset()

    def occurrences(self, extra: ExtraKind) -> int:
        if extra == ExtraKind.WIDE:
            return self.wides
        if extra == ExtraKind.NO_BALL:
            return self.no_balls
        return 0

    def bowler_overs(self, bowler_id: int, balls_per_over: int) -> int:
        return self.bowler_balls.get(bowler_id, 0) // balls_per_over

    def add(self, delivery: Delivery, balls_per_over: int) -> "InningsTally":
        legal_balls = self.legal_balls + (1 if delivery.is_legal else 0)
        over_complete = delivery.is_legal and legal_balls % balls_per_over == 0

        batter_runs = dict(self.batter_runs)
        batter_runs[delivery.striker] = batter_runs.get(delivery.striker, 0) + delivery.runs_off_bat
        bowler_balls = dict(self.bowler_balls)
        if delivery.is_legal:
            bowler_balls[delivery.bowler] = bowler_balls.get(delivery.bowler, 0) + 1
        else:
            bowler_balls.setdefault(delivery.bowler, 0)

        dismissed = self.dismissed
        if delivery.is_wicket:
            dismissed = dismissed | {delivery.dismissal.player_out}

        return InningsTally(
            runs=self.runs + delivery.total_runs,
            wickets=self.wickets + (1 if delivery.is_wicket else 0),
            legal_balls=legal_balls,
            over_deliveries=0 if over_complete else self.over_deliveries + 1,
            wides=self.wides + (1 if delivery.extra == ExtraKind.WIDE else 0),
            no_balls=self.no_balls + (1 if delivery.extra == ExtraKind.NO_BALL else 0),
            extras=self.extras + delivery.extra_runs,
            batter_runs=batter_runs,
            bowler_balls=bowler_balls,
            dismissed=dismissed,
        )

    @classmethod
    def replay(cls, deliveries: Iterable[Delivery], balls_per_over: int) -> "InningsTally":
        tally = cls()
        for delivery in deliveries:
            tally = tally.add(delivery, balls_per_over)
        return tally


@dataclass(frozen=True)
class MatchResult:
    winner_id: Optional[int]
    summary: str
    margin: str = ""


@dataclass(frozen=True)
class MatchState:
    match_id: int
    team1_id: int
    team2_id: int
    version: int = 0
    phase: MatchPhase = MatchPhase.AWAITING_TOSS
    innings: int = 1
    toss: Optional[TossResult] = None
    striker: Optional[int] = None
    non_striker: Optional[int] = None
    bowler: Optional[int] = None
    free_hit: bool = False
    needs_new_bowler: bool = False
    last_over_bowler: Optional[int] = None
    tally: InningsTally = field(default_factory=InningsTally)
    deliveries: Tuple[Delivery, ...] = ()
    retired: FrozenSet[int] = frozenset()
    innings_complete_pending: bool = False
    target: Optional[int] = None
    revised_overs: Optional[int] = None
    result: Optional[MatchResult] = None

    @property
    def batting_team_id(self) -> Optional[int]:
        if not self.toss:
            return None
        if self.innings == 1:
            return self.toss.batting_first_id
        return self.other_team(self.toss.batting_first_id)

    @property
    def bowling_team_id(self) -> Optional[int]:
        if not self.toss:
            return None
        return self.other_team(self.batting_team_id)

    def other_team(self, team_id: int) -> int:
        return self.team2_id if team_id == self.team1_id else self.team1_id

    @property
    def innings_deliveries(self) -> Tuple[Delivery, ...]:
        return tuple(d for d in self.deliveries if d.innings == self.innings)

    def deliveries_for(self, innings: int) -> Tuple[Delivery, ...]:
        return tuple(d for d in self.deliveries if d.innings == innings)


class Transition(NamedTuple):
    state: MatchState
    facts: List[Fact]
    delivery: Optional[Delivery] = None
    removed: Optional[Delivery] = None

    def has(self, kind: FactKind) -> bool:
        return any(f.kind == kind for f in self.facts)


# Commands

@dataclass(frozen=True)
class CompleteToss:
    winner_id: int
    decision: TossDecision


@dataclass(frozen=True)
class SelectOpeners:
    striker: int
    non_striker: int


@dataclass(frozen=True)
class SelectBatter:
    player_id: int
    end: CreaseEnd = CreaseEnd.STRIKER


@dataclass(frozen=True)
class SelectBowler:
    player_id: int


@dataclass(frozen=True)
class SwapStrike:
    pass


@dataclass(frozen=True)
class RecordRun:
    runs: int
    is_boundary: Optional[bool] = None


@dataclass(frozen=True)
class RecordExtra:
    kind: ExtraKind
    runs: int = 0  # byes run on a wide, or the bye/leg-bye count
    runs_off_bat: int = 0  # only for no-balls


@dataclass(frozen=True)
class RecordWicket:
    kind: DismissalKind
    player_out: Optional[int] = None  # defaults to the striker
    fielder: Optional[int] = None
    runs_completed: int = 0
    extra: ExtraKind = ExtraKind.NONE
    extra_runs: int = 0


@dataclass(frozen=True)
class RetireBatter:
    player_id: int


@dataclass(frozen=True)
class Undo:
    pass


@dataclass(frozen=True)
class EndInnings:
    pass


@dataclass(frozen=True)
class ReviseTarget:
    revised_overs: int


@dataclass(frozen=True)
class Abandon:
    pass


def overs_display(legal_balls: int, balls_per_over: int) -> str:
    return f"{legal_balls // balls_per_over}.{legal_balls % balls_per_over}"


class ScoringEngine:
    """
    Applies scoring commands under one RuleProfile.
    All methods are pure: they take a MatchState and return a Transition.
    """

    def __init__(self, profile: RuleProfile):
        self.profile = profile
        self._handlers = {
            CompleteToss: self._complete_toss,
            SelectOpeners: self._select_openers,
            SelectBatter: self._select_batter,
            SelectBowler: self._select_bowler,
            SwapStrike: self._swap_strike,
            RecordRun: lambda s, c: self.record_delivery(s, runs_off_bat=c.runs, is_boundary=c.is_boundary),
            RecordExtra: lambda s, c: self.apply_extra(s, c.kind, c.runs, c.runs_off_bat),
            RecordWicket: self._record_wicket,
            RetireBatter: self._retire_batter,
            Undo: lambda s, c: self.undo_last_delivery(s),
            EndInnings: lambda s, c: self.end_innings(s),
            ReviseTarget: self._revise_target,
            Abandon: self._abandon,
        }

    def new_match(self, match_id: int, team1_id: int, team2_id: int) -> MatchState:
        return MatchState(match_id=match_id, team1_id=team1_id, team2_id=team2_id)

    def profile_for(self, state: MatchState) -> RuleProfile:
        """Profile in force for the current innings (shortened after a DLS revision)"""
        if state.innings == 2 and state.revised_overs is not None:
            return self.profile.with_overs(state.revised_overs)
        return self.profile

    def apply(self, state: MatchState, command) -> Transition:
        handler = self._handlers.get(type(command))
        if handler is None:
            raise TypeError(f"Unknown scoring command: {command!r}")
        return handler(state, command)

    # Deliveries

    def record_delivery(
        self,
        state: MatchState,
        runs_off_bat: int = 0,
        extra: ExtraKind = ExtraKind.NONE,
        extra_runs: int = 0,
        dismissal: Optional[Dismissal] = None,
        is_boundary: Optional[bool] = None,
    ) -> Transition:
        """
        Record one delivery bowled by the current bowler to the current striker.
        `extra_runs` is the full extra run count (tariff already included).
        """
        self._require(state, "record_delivery", MatchPhase.IN_PLAY)
        alone = self.batting_alone(self.profile_for(state), state.tally.wickets)
        if state.striker is None or (state.non_striker is None and not alone) or state.bowler is None:
            raise InvalidState("Striker, non-striker and bowler must be selected before a delivery")
        if state.innings_complete_pending:
            raise InvalidState("Innings is complete; confirm the end of innings or undo the last delivery")
        if runs_off_bat < 0 or extra_runs < 0:
            raise InvalidState("Runs cannot be negative")

        extra = ExtraKind.parse(extra)
        if extra in (ExtraKind.WIDE, ExtraKind.BYE, ExtraKind.LEG_BYE) and runs_off_bat:
            raise InvalidState(f"A {extra.value} cannot carry runs off the bat")

        facts: List[Fact] = []
        if dismissal is not None:
            if state.free_hit and not dismissal.kind.allowed_on_free_hit:
                facts.append(Fact(FactKind.WICKET_DISALLOWED, dismissal.player_out, dismissal.kind.value))
                dismissal = None
            else:
                dismissal = self._normalise_dismissal(state, dismissal)

        completed = dismissal.runs_completed if dismissal else 0
        if extra in (ExtraKind.NONE, ExtraKind.NO_BALL):
            runs_off_bat += completed
        else:
            extra_runs += completed

        if is_boundary is None:
            is_boundary = completed == 0 and runs_off_bat in (4, 6)

        profile = self.profile_for(state)
        tally = state.tally
        delivery = Delivery(
            innings=state.innings,
            over_number=tally.legal_balls // profile.balls_per_over + 1,
            ball_in_over=tally.over_deliveries + 1,
            striker=state.striker,
            non_striker=state.non_striker,
            bowler=state.bowler,
            runs_off_bat=runs_off_bat,
            extra=extra,
            extra_runs=extra_runs,
            dismissal=dismissal,
            is_four=is_boundary and runs_off_bat == 4,
            is_six=is_boundary and runs_off_bat == 6,
            is_free_hit=state.free_hit,
            is_legal=profile.is_legal(extra, tally.occurrences(extra) + 1),
        )
        return self._advance(state, delivery, facts)

    def apply_extra(self, state: MatchState, kind: ExtraKind, runs: int = 0, runs_off_bat: int = 0) -> Transition:
        """
        Wides and no-balls add the profile tariff for this occurrence to the
        caller's runs (byes run on a wide, bat runs on a no-ball). Byes and
        leg-byes are recorded as given.
        """
        kind = ExtraKind.parse(kind)
        if kind == ExtraKind.NONE:
            raise InvalidState("apply_extra needs an extra type")
        runs_off_bat, extra_runs = self._compose_extra(state, kind, runs, runs_off_bat)
        return self.record_delivery(state, runs_off_bat=runs_off_bat, extra=kind, extra_runs=extra_runs)

    def _compose_extra(self, state: MatchState, kind: ExtraKind, runs: int, runs_off_bat: int) -> Tuple[int, int]:
        if kind == ExtraKind.WIDE:
            return 0, self.profile_for(state).runs_for(kind, state.tally.wides + 1) + runs
        if kind == ExtraKind.NO_BALL:
            return runs_off_bat, self.profile_for(state).runs_for(kind, state.tally.no_balls + 1)
        return 0, runs

    def _record_wicket(self, state: MatchState, command: RecordWicket) -> Transition:
        self._require(state, "record_wicket", MatchPhase.IN_PLAY)
        dismissal = Dismissal(
            kind=DismissalKind.parse(command.kind),
            player_out=command.player_out if command.player_out is not None else state.striker,
            fielder=command.fielder,
            runs_completed=command.runs_completed,
        )
        extra = ExtraKind.parse(command.extra)
        runs_off_bat, extra_runs = 0, command.extra_runs
        if extra != ExtraKind.NONE:
            runs_off_bat, extra_runs = self._compose_extra(state, extra, command.extra_runs, 0)
        return self.record_delivery(
            state,
            runs_off_bat=runs_off_bat,
            extra=extra,
            extra_runs=extra_runs,
            dismissal=dismissal,
            is_boundary=False,
        )

    def _normalise_dismissal(self, state: MatchState, dismissal: Dismissal) -> Dismissal:
        if dismissal.runs_completed < 0:
            raise InvalidState("Runs completed cannot be negative")
        if not dismissal.kind.can_dismiss_non_striker:
            # Only run-outs (and obstruction) can remove the non-striker
            return replace(dismissal, player_out=state.striker)
        if dismissal.player_out not in (state.striker, state.non_striker):
            raise InvalidState("Dismissed batter must be one of the two batters at the crease")
        return dismissal

    def _advance(self, state: MatchState, delivery: Delivery, facts: Optional[List[Fact]] = None) -> Transition:
        """Apply a built delivery's effects to the state that it was bowled in"""
        facts = list(facts or [])
        facts.insert(0, Fact(FactKind.DELIVERY_RECORDED, delivery.striker, delivery.display))

        profile = self.profile_for(state)
        bpo = profile.balls_per_over
        tally = state.tally.add(delivery, bpo)
        deliveries = state.deliveries + (delivery,)
        over_complete = delivery.is_legal and tally.legal_balls % bpo == 0

        striker, non_striker = delivery.striker, delivery.non_striker
        alone = self.batting_alone(profile, tally.wickets)
        odd_runs = delivery.rotation_runs % 2 == 1
        if alone:
            # A lone batter keeps strike whatever is run
            swap = False
        elif delivery.dismissal is not None:
            # The surviving batter keeps their end; only the over change moves them
            swap = over_complete
        else:
            # Odd runs and the over change each swap ends, so together they cancel
            swap = odd_runs != over_complete
        if swap:
            striker, non_striker = non_striker, striker
            facts.append(Fact(FactKind.STRIKE_ROTATED, striker))

        retired = state.retired
        if delivery.dismissal is not None:
            out = delivery.dismissal.player_out
            if striker == out:
                striker = None
            elif non_striker == out:
                non_striker = None
            if delivery.is_wicket:
                facts.append(Fact(FactKind.WICKET_FALLEN, out, delivery.dismissal.kind.value))
            else:
                retired = retired | {out}
                facts.append(Fact(FactKind.BATTER_RETIRED, out, delivery.dismissal.kind.value))
        elif self._reached_retirement(profile, tally, delivery):
            if striker == delivery.striker:
                striker = None
            else:
                non_striker = None
            retired = retired | {delivery.striker}
            facts.append(Fact(FactKind.BATTER_RETIRED, delivery.striker, f"reached {profile.retire_at_score}"))

        if alone and non_striker is not None:
            striker, non_striker = striker if striker is not None else non_striker, None

        free_hit = state.free_hit
        if delivery.extra.has_tariff:
            if profile.grants_free_hit(delivery.extra):
                free_hit = True
                facts.append(Fact(FactKind.FREE_HIT_GRANTED))
        else:
            free_hit = False

        bowler = state.bowler if state.bowler is not None else delivery.bowler
        needs_new_bowler = state.needs_new_bowler
        last_over_bowler = state.last_over_bowler
        if over_complete:
            completed_overs = tally.legal_balls // bpo
            facts.append(Fact(FactKind.OVER_COMPLETE, delivery.bowler, str(completed_overs)))
            over_balls = [
                d for d in deliveries
                if d.innings == delivery.innings and d.over_number == delivery.over_number
            ]
            if all(d.bowler == delivery.bowler for d in over_balls) and sum(d.runs_conceded for d in over_balls) == 0:
                facts.append(Fact(FactKind.MAIDEN_OVER, delivery.bowler))
            if profile.powerplay_overs and completed_overs == profile.powerplay_overs:
                facts.append(Fact(FactKind.POWERPLAY_COMPLETE))
            if profile.max_overs_per_bowler and tally.bowler_overs(delivery.bowler, bpo) >= profile.max_overs_per_bowler:
                facts.append(Fact(FactKind.BOWLER_QUOTA_REACHED, delivery.bowler))
            bowler = None
            needs_new_bowler = True
            last_over_bowler = delivery.bowler

        pending = False
        reason = self._innings_complete_reason(state, profile, tally)
        if reason == "target":
            facts.append(Fact(FactKind.TARGET_REACHED))
        if reason:
            pending = True
            facts.append(Fact(FactKind.INNINGS_COMPLETE, detail=reason))

        new_state = replace(
            state,
            version=state.version + 1,
            tally=tally,
            deliveries=deliveries,
            striker=striker,
            non_striker=non_striker,
            bowler=bowler,
            free_hit=free_hit,
            needs_new_bowler=needs_new_bowler,
            last_over_bowler=last_over_bowler,
            retired=retired,
            innings_complete_pending=pending,
        )
        return Transition(new_state, facts, delivery=delivery)

    @staticmethod
    def batting_alone(profile: RuleProfile, wickets: int) -> bool:
        """True once only the last batter remains and the profile lets them bat on"""
        return profile.last_man_can_play and wickets >= profile.players_per_side - 1

    @staticmethod
    def _reached_retirement(profile: RuleProfile, tally: InningsTally, delivery: Delivery) -> bool:
        if not profile.retire_at_score or not delivery.runs_off_bat:
            return False
        after = tally.batter_runs.get(delivery.striker, 0)
        before = after - delivery.runs_off_bat
        return before < profile.retire_at_score <= after

    def _innings_complete_reason(self, state: MatchState, profile: RuleProfile, tally: InningsTally) -> str:
        if tally.wickets >= profile.all_out_wickets:
            return "all_out"
        if state.innings == 2 and state.target is not None and tally.runs >= state.target:
            return "target"
        if profile.max_legal_balls is not None and tally.legal_balls >= profile.max_legal_balls:
            return "overs"
        return ""

    # Undo

    def undo_last_delivery(self, state: MatchState) -> Transition:
        """
        Remove the most recent delivery of the innings. Striker, non-striker,
        bowler and free hit are restored from the values recorded on the
        removed delivery, which were the live values when it was bowled.
        """
        self._require(state, "undo", MatchPhase.IN_PLAY)
        innings_deliveries = state.innings_deliveries
        if not innings_deliveries:
            raise InvalidState("Nothing to undo in this innings")

        removed = innings_deliveries[-1]
        remaining = tuple(d for d in state.deliveries if d is not removed)
        profile = self.profile_for(state)
        remaining_innings = [d for d in remaining if d.innings == state.innings]

        retired = set(state.retired)
        if removed.dismissal is not None and not removed.is_wicket:
            retired.discard(removed.dismissal.player_out)
        before = InningsTally.replay(remaining_innings, profile.balls_per_over)
        if self._reached_retirement(profile, before.add(removed, profile.balls_per_over), removed):
            retired.discard(removed.striker)

        new_state = replace(
            state,
            version=state.version + 1,
            deliveries=remaining,
            tally=before,
            striker=removed.striker,
            non_striker=removed.non_striker,
            bowler=removed.bowler,
            free_hit=removed.is_free_hit,
            needs_new_bowler=False,
            last_over_bowler=self._last_over_bowler(remaining_innings, profile.balls_per_over),
            retired=frozenset(retired),
            innings_complete_pending=False,
        )
        return Transition(new_state, [Fact(FactKind.DELIVERY_UNDONE, removed.striker, removed.display)], removed=removed)

    @staticmethod
    def _last_over_bowler(innings_deliveries: List[Delivery], balls_per_over: int) -> Optional[int]:
        legal = sum(1 for d in innings_deliveries if d.is_legal)
        completed = legal // balls_per_over
        if completed == 0:
            return None
        over = [d for d in innings_deliveries if d.over_number == completed]
        return over[-1].bowler if over else None

    # Player selection

    def _complete_toss(self, state: MatchState, command: CompleteToss) -> Transition:
        self._require(state, "complete_toss", MatchPhase.AWAITING_TOSS)
        if command.winner_id not in (state.team1_id, state.team2_id):
            raise InvalidSelection("Toss winner must be one of the two teams")
        decision = TossDecision(command.decision)
        batting_first = command.winner_id if decision == TossDecision.BAT else state.other_team(command.winner_id)
        toss = TossResult(winner_id=command.winner_id, decision=decision, batting_first_id=batting_first)
        return Transition(
            replace(state, version=state.version + 1, toss=toss, phase=MatchPhase.AWAITING_OPENERS),
            [],
        )

    def _select_openers(self, state: MatchState, command: SelectOpeners) -> Transition:
        self._require(state, "select_openers", MatchPhase.AWAITING_OPENERS, MatchPhase.INNINGS_BREAK)
        if command.striker == command.non_striker:
            raise InvalidSelection("Openers must be two different players")
        innings = 2 if state.phase == MatchPhase.INNINGS_BREAK else state.innings
        return Transition(
            replace(
                state,
                version=state.version + 1,
                phase=MatchPhase.IN_PLAY,
                innings=innings,
                striker=command.striker,
                non_striker=command.non_striker,
                bowler=None,
                needs_new_bowler=True,
            ),
            [],
        )

    def _select_batter(self, state: MatchState, command: SelectBatter) -> Transition:
        self._require(state, "select_batter", MatchPhase.IN_PLAY)
        player_id = command.player_id
        end = CreaseEnd(command.end)
        other = state.non_striker if end == CreaseEnd.STRIKER else state.striker
        if player_id == other:
            raise InvalidSelection("Batter is already at the other end")
        if player_id in state.tally.dismissed:
            raise InvalidSelection("Batter has already been dismissed this innings")
        retired = state.retired
        if player_id in retired:
            if not self.profile.retired_can_return:
                raise InvalidSelection("Retired batters cannot return under this profile")
            retired = retired - {player_id}

        if end == CreaseEnd.STRIKER:
            new_state = replace(state, striker=player_id, retired=retired, version=state.version + 1)
        else:
            new_state = replace(state, non_striker=player_id, retired=retired, version=state.version + 1)
        return Transition(new_state, [])

    def _select_bowler(self, state: MatchState, command: SelectBowler) -> Transition:
        self._require(state, "select_bowler", MatchPhase.IN_PLAY)
        profile = self.profile_for(state)
        starting_over = state.tally.legal_balls % profile.balls_per_over == 0
        if starting_over and command.player_id == state.last_over_bowler:
            raise InvalidSelection("The same bowler cannot bowl consecutive overs")
        if profile.max_overs_per_bowler and \
                state.tally.bowler_overs(command.player_id, profile.balls_per_over) >= profile.max_overs_per_bowler:
            raise InvalidSelection(f"Bowler has already bowled {profile.max_overs_per_bowler} overs")
        return Transition(
            replace(state, bowler=command.player_id, needs_new_bowler=False, version=state.version + 1),
            [],
        )

    def _swap_strike(self, state: MatchState, command: SwapStrike) -> Transition:
        self._require(state, "swap_strike", MatchPhase.IN_PLAY)
        if state.striker is None or state.non_striker is None:
            raise InvalidState("Both batters must be at the crease to swap ends")
        return Transition(
            replace(state, striker=state.non_striker, non_striker=state.striker, version=state.version + 1),
            [Fact(FactKind.STRIKE_ROTATED, state.non_striker)],
        )

    def _retire_batter(self, state: MatchState, command: RetireBatter) -> Transition:
        self._require(state, "retire_batter", MatchPhase.IN_PLAY)
        if command.player_id == state.striker:
            new_state = replace(state, striker=None)
        elif command.player_id == state.non_striker:
            new_state = replace(state, non_striker=None)
        else:
            raise InvalidSelection("Only a batter at the crease can retire")
        new_state = replace(new_state, retired=state.retired | {command.player_id}, version=state.version + 1)
        return Transition(new_state, [Fact(FactKind.BATTER_RETIRED, command.player_id, "retired not out")])

    # Innings and match lifecycle

    def end_innings(self, state: MatchState) -> Transition:
        """Caller-confirmed end of the current innings"""
        self._require(state, "end_innings", MatchPhase.IN_PLAY)
        profile = self.profile_for(state)
        summary = f"{state.tally.runs}/{state.tally.wickets} ({overs_display(state.tally.legal_balls, profile.balls_per_over)})"

        if state.innings == 1:
            new_state = replace(
                state,
                version=state.version + 1,
                phase=MatchPhase.INNINGS_BREAK,
                striker=None,
                non_striker=None,
                bowler=None,
                free_hit=False,
                needs_new_bowler=False,
                last_over_bowler=None,
                tally=InningsTally(),
                retired=frozenset(),
                innings_complete_pending=False,
                target=state.tally.runs + 1,
            )
            return Transition(new_state, [Fact(FactKind.INNINGS_ENDED, detail=summary)])

        result = self._result(state)
        new_state = replace(
            state,
            version=state.version + 1,
            phase=MatchPhase.COMPLETED,
            bowler=None,
            needs_new_bowler=False,
            innings_complete_pending=False,
            result=result,
        )
        return Transition(new_state, [
            Fact(FactKind.INNINGS_ENDED, detail=summary),
            Fact(FactKind.MATCH_COMPLETE, detail=result.summary),
        ])

    def _result(self, state: MatchState) -> MatchResult:
        chasing = state.batting_team_id
        defending = state.other_team(chasing)
        target = state.target or 1
        runs, wickets = state.tally.runs, state.tally.wickets
        if runs >= target:
            remaining = self.profile.all_out_wickets - wickets
            margin = f"{remaining} wicket{'s' if remaining != 1 else ''}"
            return MatchResult(winner_id=chasing, summary=f"Won by {margin}", margin=margin)
        if runs == target - 1:
            return MatchResult(winner_id=None, summary="Match tied")
        short = target - 1 - runs
        margin = f"{short} run{'s' if short != 1 else ''}"
        return MatchResult(winner_id=defending, summary=f"Won by {margin}", margin=margin)

    def _revise_target(self, state: MatchState, command: ReviseTarget) -> Transition:
        self._require(state, "revise_target", MatchPhase.INNINGS_BREAK, MatchPhase.IN_PLAY)
        if state.phase == MatchPhase.IN_PLAY and state.innings != 2:
            raise InvalidState("Targets can only be revised for the second innings")
        if not self.profile.total_overs:
            raise InvalidState("DLS does not apply to unlimited-overs innings")
        if not 0 < command.revised_overs <= self.profile.total_overs:
            raise InvalidState(f"Revised overs must be between 1 and {self.profile.total_overs}")

        bpo = self.profile.balls_per_over
        first = InningsTally.replay(state.deliveries_for(1), bpo)
        team1_overs = first.legal_balls / bpo or self.profile.total_overs
        wickets_now = state.tally.wickets if state.phase == MatchPhase.IN_PLAY else 0
        revised = dls.revised_target(
            team1_score=first.runs,
            team1_overs=team1_overs,
            team2_original_overs=self.profile.total_overs,
            team2_revised_overs=command.revised_overs,
            wickets_at_interruption=wickets_now,
        )
        new_state = replace(
            state,
            version=state.version + 1,
            target=revised.target,
            revised_overs=command.revised_overs,
        )
        return Transition(new_state, [Fact(FactKind.TARGET_REVISED, detail=str(revised.target))])

    def _abandon(self, state: MatchState, command: Abandon) -> Transition:
        self._require(state, "abandon", MatchPhase.IN_PLAY, MatchPhase.INNINGS_BREAK)
        return Transition(
            replace(state, version=state.version + 1, phase=MatchPhase.ABANDONED, bowler=None),
            [Fact(FactKind.MATCH_ABANDONED)],
        )

    # Resume

    def rebuild_state(
        self,
        match_id: int,
        team1_id: int,
        team2_id: int,
        toss: Optional[TossResult],
        deliveries: Iterable[Delivery],
        innings: Optional[int] = None,
        retired: Iterable[int] = (),
        revised_overs: Optional[int] = None,
        target: Optional[int] = None,
    ) -> MatchState:
        """
        Reconstruct the authoritative state from the delivery log. The last
        delivery of the current innings is replayed onto the pre-delivery
        values it recorded, which yields the live batters, bowler and free hit.
        """
        log = tuple(deliveries)
        state = MatchState(match_id=match_id, team1_id=team1_id, team2_id=team2_id, toss=toss)
        if toss is None:
            return state
        if innings is None:
            innings = max((d.innings for d in log), default=1)

        first_total = InningsTally.replay((d for d in log if d.innings == 1), self.profile.balls_per_over).runs
        if innings == 2 and target is None:
            target = first_total + 1
        state = replace(state, innings=innings, revised_overs=revised_overs, target=target)

        current = [d for d in log if d.innings == innings]
        if not current:
            phase = MatchPhase.INNINGS_BREAK if innings == 2 else MatchPhase.AWAITING_OPENERS
            return replace(state, phase=phase, innings=1 if innings == 2 else innings, deliveries=log)

        profile = self.profile_for(state)
        *earlier, last = current
        prior_log = tuple(d for d in log if d is not last)
        state = replace(
            state,
            phase=MatchPhase.IN_PLAY,
            deliveries=prior_log,
            tally=InningsTally.replay(earlier, profile.balls_per_over),
            striker=last.striker,
            non_striker=last.non_striker,
            bowler=last.bowler,
            free_hit=last.is_free_hit,
            last_over_bowler=self._last_over_bowler(earlier, profile.balls_per_over),
            retired=frozenset(retired),
        )
        rebuilt = self._advance(state, last).state
        return replace(rebuilt, version=len(log))

    def _require(self, state: MatchState, command: str, *phases: MatchPhase):
        if state.phase not in phases:
            raise IllegalTransition(command, state.phase.value)
