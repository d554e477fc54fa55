"""
Scorecard projections derived from the delivery log.
Nothing here is stored: every figure is recomputed from the deliveries.
"""
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Sequence

from app.engine.rules import DismissalKind, ExtraKind
from app.engine.scoring import Delivery, overs_display


@dataclass
class BattingLine:
    player_id: int
    order: int
    runs: int = 0
    balls: int = 0
    fours: int = 0
    sixes: int = 0
    is_out: bool = False
    dismissal: str = "not out"

    @property
    def strike_rate(self) -> float:
        if self.balls == 0:
            return 0.0
        return (self.runs / self.balls) * 100


@dataclass
class BowlingLine:
    player_id: int
    legal_balls: int = 0
    runs: int = 0
    wickets: int = 0
    maidens: int = 0
    wides: int = 0
    no_balls: int = 0
    dots: int = 0
    balls_per_over: int = 6

    @property
    def overs(self) -> str:
        return overs_display(self.legal_balls, self.balls_per_over)

    @property
    def economy(self) -> float:
        if self.legal_balls == 0:
            return 0.0
        return self.runs / self.legal_balls * self.balls_per_over


@dataclass
class FallOfWicket:
    wicket: int
    score: int
    player_id: int
    overs: str


@dataclass
class Extras:
    wides: int = 0
    no_balls: int = 0
    byes: int = 0
    leg_byes: int = 0

    @property
    def total(self) -> int:
        return self.wides + self.no_balls + self.byes + self.leg_byes


@dataclass
class InningsTotals:
    runs: int
    wickets: int
    legal_balls: int
    balls_per_over: int = 6

    @property
    def overs(self) -> str:
        return overs_display(self.legal_balls, self.balls_per_over)

    @property
    def run_rate(self) -> float:
        if self.legal_balls == 0:
            return 0.0
        return self.runs / self.legal_balls * self.balls_per_over


@dataclass
class Partnership:
    runs: int = 0
    balls: int = 0
    contributions: Dict[int, int] = field(default_factory=dict)


def _name(player_id: Optional[int], names: Optional[Dict[int, str]]) -> str:
    if player_id is None:
        return "?"
    if names and player_id in names:
        return names[player_id]
    return f"#{player_id}"


def format_dismissal(delivery: Delivery, names: Optional[Dict[int, str]] = None) -> str:
    if delivery.dismissal is None:
        return ""
    kind = delivery.dismissal.kind
    bowler = _name(delivery.bowler, names)
    fielder = delivery.dismissal.fielder
    if kind == DismissalKind.BOWLED:
        return f"b {bowler}"
    if kind == DismissalKind.CAUGHT:
        return f"c {_name(fielder, names)} b {bowler}"
    if kind == DismissalKind.CAUGHT_BEHIND:
        return f"c †{_name(fielder, names) if fielder else 'wk'} b {bowler}"
    if kind == DismissalKind.CAUGHT_AND_BOWLED:
        return f"c & b {bowler}"
    if kind == DismissalKind.LBW:
        return f"lbw b {bowler}"
    if kind == DismissalKind.STUMPED:
        return f"st †{_name(fielder, names) if fielder else 'wk'} b {bowler}"
    if kind == DismissalKind.RUN_OUT:
        return f"run out ({_name(fielder, names)})"
    if kind == DismissalKind.HIT_WICKET:
        return f"hit wicket b {bowler}"
    if kind == DismissalKind.OBSTRUCTING_FIELD:
        return "obstructing the field"
    return kind.value.replace("_", " ")


def innings_totals(deliveries: Sequence[Delivery], balls_per_over: int = 6) -> InningsTotals:
    return InningsTotals(
        runs=sum(d.total_runs for d in deliveries),
        wickets=sum(1 for d in deliveries if d.is_wicket),
        legal_balls=sum(1 for d in deliveries if d.is_legal),
        balls_per_over=balls_per_over,
    )


def batting_card(deliveries: Sequence[Delivery], names: Optional[Dict[int, str]] = None) -> List[BattingLine]:
    lines: Dict[int, BattingLine] = {}

    def line(player_id: int) -> BattingLine:
        if player_id not in lines:
            lines[player_id] = BattingLine(player_id=player_id, order=len(lines) + 1)
        return lines[player_id]

    for d in deliveries:
        striker = line(d.striker)
        if d.non_striker is not None:
            line(d.non_striker)
        striker.runs += d.runs_off_bat
        if d.faced_by_striker:
            striker.balls += 1
        if d.is_four:
            striker.fours += 1
        if d.is_six:
            striker.sixes += 1
        if d.dismissal is not None:
            out = line(d.dismissal.player_out)
            out.is_out = d.is_wicket
            out.dismissal = format_dismissal(d, names)

    return sorted(lines.values(), key=lambda b: b.order)


def bowling_card(deliveries: Sequence[Delivery], balls_per_over: int = 6) -> List[BowlingLine]:
    lines: Dict[int, BowlingLine] = {}
    overs: Dict[tuple, List[Delivery]] = {}

    for d in deliveries:
        bowler = lines.setdefault(d.bowler, BowlingLine(player_id=d.bowler, balls_per_over=balls_per_over))
        if d.is_legal:
            bowler.legal_balls += 1
        bowler.runs += d.runs_conceded
        if d.is_wicket and d.dismissal.kind.credits_bowler:
            bowler.wickets += 1
        if d.extra == ExtraKind.WIDE:
            bowler.wides += 1
        elif d.extra == ExtraKind.NO_BALL:
            bowler.no_balls += 1
        if d.extra == ExtraKind.NONE and d.total_runs == 0:
            bowler.dots += 1
        overs.setdefault((d.over_number, d.bowler), []).append(d)

    for (_, bowler_id), balls in overs.items():
        if sum(1 for d in balls if d.is_legal) == balls_per_over and sum(d.runs_conceded for d in balls) == 0:
            lines[bowler_id].maidens += 1

    return list(lines.values())


def fall_of_wickets(deliveries: Sequence[Delivery], balls_per_over: int = 6) -> List[FallOfWicket]:
    result = []
    runs = legal = wickets = 0
    for d in deliveries:
        runs += d.total_runs
        if d.is_legal:
            legal += 1
        if d.is_wicket:
            wickets += 1
            result.append(FallOfWicket(
                wicket=wickets,
                score=runs,
                player_id=d.dismissal.player_out,
                overs=overs_display(legal, balls_per_over),
            ))
    return result


def extras_breakdown(deliveries: Sequence[Delivery]) -> Extras:
    extras = Extras()
    for d in deliveries:
        if d.extra == ExtraKind.WIDE:
            extras.wides += d.extra_runs
        elif d.extra == ExtraKind.NO_BALL:
            extras.no_balls += d.extra_runs
        elif d.extra == ExtraKind.BYE:
            extras.byes += d.extra_runs
        elif d.extra == ExtraKind.LEG_BYE:
            extras.leg_byes += d.extra_runs
    return extras


def current_partnership(deliveries: Sequence[Delivery]) -> Partnership:
    """Replay of the deliveries since the last wicket of the innings"""
    last_wicket = max((i for i, d in enumerate(deliveries) if d.is_wicket), default=-1)
    partnership = Partnership()
    for d in deliveries[last_wicket + 1:]:
        partnership.runs += d.total_runs
        if d.faced_by_striker:
            partnership.balls += 1
        partnership.contributions[d.striker] = partnership.contributions.get(d.striker, 0) + d.runs_off_bat
    return partnership


def this_over(deliveries: Sequence[Delivery]) -> List[str]:
    """Display symbols for the over in progress (or the one just completed)"""
    if not deliveries:
        return []
    current = deliveries[-1].over_number
    return [d.display for d in deliveries if d.over_number == current]


def required_run_rate(target: int, runs: int, legal_balls: int, max_legal_balls: Optional[int],
                      balls_per_over: int = 6) -> Optional[float]:
    if max_legal_balls is None:
        return None
    needed = target - runs
    remaining = max_legal_balls - legal_balls
    if needed <= 0 or remaining <= 0:
        return None
    return needed / remaining * balls_per_over


def innings_scorecard(deliveries: Sequence[Delivery], balls_per_over: int = 6,
                      names: Optional[Dict[int, str]] = None) -> dict:
    """Complete processed innings, ready for serialisation"""
    totals = innings_totals(deliveries, balls_per_over)
    extras = extras_breakdown(deliveries)
    return {
        "totals": {**asdict(totals), "overs": totals.overs, "run_rate": round(totals.run_rate, 2)},
        "batting": [
            {**asdict(b), "strike_rate": round(b.strike_rate, 2)} for b in batting_card(deliveries, names)
        ],
        "bowling": [
            {**asdict(b), "overs": b.overs, "economy": round(b.economy, 2)}
            for b in bowling_card(deliveries, balls_per_over)
        ],
        "fall_of_wickets": [asdict(f) for f in fall_of_wickets(deliveries, balls_per_over)],
        "extras": {**asdict(extras), "total": extras.total},
        "partnership": asdict(current_partnership(deliveries)),
        "this_over": this_over(deliveries),
    }
