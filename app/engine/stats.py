"""
Player statistics aggregation.

reduce() turns a completed delivery log into per-player deltas. Deltas are
additive: they are merged into long-lived tournament and career records by
addition, never overwritten. Only highest score and best bowling merge by
comparison.
"""
from collections import defaultdict
from dataclasses import dataclass, fields
from typing import Dict, Iterable, List, Optional, Tuple

from app.engine.rules import DismissalKind, ExtraKind
from app.engine.scoring import Delivery


@dataclass
class BattingDelta:
    matches: int = 0
    innings: int = 0
    runs: int = 0
    balls_faced: int = 0
    fours: int = 0
    sixes: int = 0
    not_outs: int = 0
    fifties: int = 0
    hundreds: int = 0
    ducks: int = 0
    highest_score: int = 0

    @property
    def strike_rate(self) -> float:
        if self.balls_faced == 0:
            return 0.0
        return (self.runs / self.balls_faced) * 100

    def __add__(self, other: "BattingDelta") -> "BattingDelta":
        merged = _sum_fields(self, other, skip=("highest_score",))
        merged.highest_score = max(self.highest_score, other.highest_score)
        return merged


@dataclass
class BowlingDelta:
    matches: int = 0
    innings: int = 0
    balls: int = 0
    runs_conceded: int = 0
    wickets: int = 0
    maidens: int = 0
    dot_balls: int = 0
    wides: int = 0
    no_balls: int = 0
    four_wickets: int = 0
    five_wickets: int = 0
    best_wickets: int = 0
    best_runs: Optional[int] = None

    @property
    def best_bowling(self) -> str:
        if self.best_runs is None:
            return ""
        return f"{self.best_wickets}/{self.best_runs}"

    def economy(self, balls_per_over: int = 6) -> float:
        if self.balls == 0:
            return 0.0
        return self.runs_conceded / self.balls * balls_per_over

    def __add__(self, other: "BowlingDelta") -> "BowlingDelta":
        merged = _sum_fields(self, other, skip=("best_wickets", "best_runs"))
        merged.best_wickets, merged.best_runs = better_figures(
            (self.best_wickets, self.best_runs), (other.best_wickets, other.best_runs)
        )
        return merged


@dataclass
class FieldingDelta:
    catches: int = 0
    stumpings: int = 0
    run_outs: int = 0

    def __add__(self, other: "FieldingDelta") -> "FieldingDelta":
        return _sum_fields(self, other)


@dataclass
class PlayerMatchStats:
    player_id: int
    batting: Optional[BattingDelta] = None
    bowling: Optional[BowlingDelta] = None
    fielding: Optional[FieldingDelta] = None

    def __add__(self, other: "PlayerMatchStats") -> "PlayerMatchStats":
        return PlayerMatchStats(
            player_id=self.player_id,
            batting=_add_optional(self.batting, other.batting),
            bowling=_add_optional(self.bowling, other.bowling),
            fielding=_add_optional(self.fielding, other.fielding),
        )


def _sum_fields(a, b, skip: Tuple[str, ...] = ()):
    values = {f.name: getattr(a, f.name) + getattr(b, f.name) for f in fields(a) if f.name not in skip}
    return type(a)(**values)


def _add_optional(a, b):
    if a is None:
        return b
    if b is None:
        return a
    return a + b


def better_figures(a: Tuple[int, Optional[int]], b: Tuple[int, Optional[int]]) -> Tuple[int, Optional[int]]:
    """More wickets wins; equal wickets, fewer runs wins. (w, None) means no figures."""
    if a[1] is None:
        return b
    if b[1] is None:
        return a
    if b[0] > a[0] or (b[0] == a[0] and b[1] < a[1]):
        return b
    return a


def parse_figures(best: str) -> Tuple[int, Optional[int]]:
    """'3/24' -> (3, 24); '' -> (0, None)"""
    if not best:
        return 0, None
    wickets, _, runs = best.partition("/")
    return int(wickets or 0), int(runs or 0)


_FIELDING_CREDIT = {
    DismissalKind.CAUGHT: "catches",
    DismissalKind.CAUGHT_BEHIND: "catches",
    DismissalKind.STUMPED: "stumpings",
    DismissalKind.RUN_OUT: "run_outs",
}


class StatsAggregator:
    """Reduces a delivery log into per-player match deltas"""

    def __init__(self, balls_per_over: int = 6):
        self.balls_per_over = balls_per_over

    def reduce(self, deliveries: Iterable[Delivery]) -> Dict[int, PlayerMatchStats]:
        batting: Dict[Tuple[int, int], BattingDelta] = {}
        dismissed: Dict[Tuple[int, int], bool] = {}
        bowling: Dict[Tuple[int, int], BowlingDelta] = {}
        fielding: Dict[int, FieldingDelta] = defaultdict(FieldingDelta)
        overs: Dict[Tuple[int, int, int], List[Delivery]] = defaultdict(list)

        for d in deliveries:
            for batter in (d.striker, d.non_striker):
                if batter is None:
                    continue
                batting.setdefault((d.innings, batter), BattingDelta(innings=1))

            bat = batting[(d.innings, d.striker)]
            bat.runs += d.runs_off_bat
            if d.faced_by_striker:
                bat.balls_faced += 1
            if d.is_four:
                bat.fours += 1
            if d.is_six:
                bat.sixes += 1

            bowl = bowling.setdefault((d.innings, d.bowler), BowlingDelta(innings=1))
            if d.is_legal:
                bowl.balls += 1
            bowl.runs_conceded += d.runs_conceded
            if d.extra == ExtraKind.WIDE:
                bowl.wides += 1
            elif d.extra == ExtraKind.NO_BALL:
                bowl.no_balls += 1
            if d.extra == ExtraKind.NONE and d.runs_off_bat == 0 and d.extra_runs == 0:
                bowl.dot_balls += 1
            overs[(d.innings, d.over_number, d.bowler)].append(d)

            if d.is_wicket:
                dismissal = d.dismissal
                dismissed[(d.innings, dismissal.player_out)] = True
                if dismissal.kind.credits_bowler:
                    bowl.wickets += 1
                credit = _FIELDING_CREDIT.get(dismissal.kind)
                if dismissal.kind == DismissalKind.CAUGHT_AND_BOWLED:
                    fielding[d.bowler].catches += 1
                elif credit and dismissal.fielder is not None:
                    setattr(fielding[dismissal.fielder], credit, getattr(fielding[dismissal.fielder], credit) + 1)

        for (innings, over_number, bowler), balls in overs.items():
            legal = sum(1 for d in balls if d.is_legal)
            if legal == self.balls_per_over and sum(d.runs_conceded for d in balls) == 0:
                bowling[(innings, bowler)].maidens += 1

        result: Dict[int, PlayerMatchStats] = {}

        def entry(player_id: int) -> PlayerMatchStats:
            return result.setdefault(player_id, PlayerMatchStats(player_id=player_id))

        for (innings, player_id), bat in batting.items():
            self._finish_batting(bat, is_out=dismissed.get((innings, player_id), False))
            stats = entry(player_id)
            stats.batting = _add_optional(stats.batting, bat)

        for (innings, player_id), bowl in bowling.items():
            self._finish_bowling(bowl)
            stats = entry(player_id)
            stats.bowling = _add_optional(stats.bowling, bowl)

        for player_id, field_delta in fielding.items():
            entry(player_id).fielding = field_delta

        # One match per player regardless of innings count
        for stats in result.values():
            if stats.batting:
                stats.batting.matches = 1
            if stats.bowling:
                stats.bowling.matches = 1
        return result

    @staticmethod
    def _finish_batting(bat: BattingDelta, is_out: bool):
        bat.not_outs = 0 if is_out else 1
        bat.highest_score = bat.runs
        bat.fifties = 1 if 50 <= bat.runs < 100 else 0
        bat.hundreds = 1 if bat.runs >= 100 else 0
        bat.ducks = 1 if is_out and bat.runs == 0 else 0

    @staticmethod
    def _finish_bowling(bowl: BowlingDelta):
        bowl.best_wickets = bowl.wickets
        bowl.best_runs = bowl.runs_conceded
        if bowl.wickets >= 5:
            bowl.five_wickets = 1
        elif bowl.wickets >= 4:
            bowl.four_wickets = 1


def merge_into(record, stats: PlayerMatchStats):
    """
    Add a player's match deltas onto a persistent stats record (tournament or
    career). Counters are summed; highest score and best bowling only improve.
    """
    if stats.batting:
        bat = stats.batting
        record.matches = (record.matches or 0) + bat.matches
        record.batting_innings = (record.batting_innings or 0) + bat.innings
        record.runs = (record.runs or 0) + bat.runs
        record.balls_faced = (record.balls_faced or 0) + bat.balls_faced
        record.fours = (record.fours or 0) + bat.fours
        record.sixes = (record.sixes or 0) + bat.sixes
        record.not_outs = (record.not_outs or 0) + bat.not_outs
        record.fifties = (record.fifties or 0) + bat.fifties
        record.hundreds = (record.hundreds or 0) + bat.hundreds
        record.ducks = (record.ducks or 0) + bat.ducks
        record.highest_score = max(record.highest_score or 0, bat.highest_score)

    if stats.bowling:
        bowl = stats.bowling
        if not stats.batting:
            record.matches = (record.matches or 0) + bowl.matches
        record.bowling_innings = (record.bowling_innings or 0) + bowl.innings
        record.balls_bowled = (record.balls_bowled or 0) + bowl.balls
        record.runs_conceded = (record.runs_conceded or 0) + bowl.runs_conceded
        record.wickets = (record.wickets or 0) + bowl.wickets
        record.maidens = (record.maidens or 0) + bowl.maidens
        record.dot_balls = (record.dot_balls or 0) + bowl.dot_balls
        record.four_wickets = (record.four_wickets or 0) + bowl.four_wickets
        record.five_wickets = (record.five_wickets or 0) + bowl.five_wickets
        best = better_figures(parse_figures(record.best_bowling or ""), (bowl.best_wickets, bowl.best_runs))
        if best[1] is not None:
            record.best_bowling = f"{best[0]}/{best[1]}"

    if stats.fielding:
        record.catches = (record.catches or 0) + stats.fielding.catches
        record.stumpings = (record.stumpings or 0) + stats.fielding.stumpings
        record.run_outs = (record.run_outs or 0) + stats.fielding.run_outs

    return record
