"""
Duckworth-Lewis-Stern (Standard Edition) calculator.

Resources remaining are a joint function of overs remaining and wickets lost.
Values between published overs checkpoints are interpolated linearly along the
overs axis for a fixed wickets row; wickets are never interpolated.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from app.config import settings

MAX_OVERS = 50
MAX_WICKETS = 9

# resource percentage by wickets lost -> {overs remaining: resources}
RESOURCE_TABLE = {
    0: {50: 100.0, 45: 95.0, 40: 89.3, 35: 82.7, 30: 75.1, 25: 66.5,
        20: 56.6, 18: 52.4, 16: 48.0, 14: 43.4, 12: 38.6, 10: 33.6,
        8: 28.3, 6: 22.8, 5: 19.9, 4: 16.9, 3: 13.8, 2: 10.5, 1: 6.5, 0: 0.0},
    1: {50: 93.4, 45: 89.5, 40: 84.8, 35: 79.0, 30: 72.2, 25: 64.3,
        20: 55.2, 18: 51.2, 16: 47.0, 14: 42.6, 12: 38.0, 10: 33.2,
        8: 28.0, 6: 22.6, 5: 19.7, 4: 16.8, 3: 13.7, 2: 10.4, 1: 6.5, 0: 0.0},
    2: {50: 85.1, 45: 82.0, 40: 78.4, 35: 73.6, 30: 67.9, 25: 61.0,
        20: 52.8, 18: 49.2, 16: 45.4, 14: 41.3, 12: 36.9, 10: 32.4,
        8: 27.5, 6: 22.3, 5: 19.5, 4: 16.6, 3: 13.5, 2: 10.3, 1: 6.4, 0: 0.0},
    3: {50: 74.9, 45: 72.8, 40: 70.3, 35: 66.8, 30: 62.2, 25: 56.4,
        20: 49.3, 18: 46.2, 16: 42.8, 14: 39.2, 12: 35.2, 10: 31.1,
        8: 26.6, 6: 21.7, 5: 19.0, 4: 16.3, 3: 13.3, 2: 10.2, 1: 6.3, 0: 0.0},
    4: {50: 62.7, 45: 61.5, 40: 60.1, 35: 57.9, 30: 54.7, 25: 50.3,
        20: 44.6, 18: 42.0, 16: 39.2, 14: 36.1, 12: 32.7, 10: 29.1,
        8: 25.1, 6: 20.7, 5: 18.2, 4: 15.7, 3: 12.9, 2: 9.9, 1: 6.2, 0: 0.0},
    5: {50: 49.0, 45: 48.4, 40: 47.6, 35: 46.4, 30: 44.6, 25: 41.8,
        20: 37.8, 18: 35.9, 16: 33.7, 14: 31.3, 12: 28.6, 10: 25.7,
        8: 22.4, 6: 18.7, 5: 16.6, 4: 14.4, 3: 11.9, 2: 9.3, 1: 5.9, 0: 0.0},
    6: {50: 34.9, 45: 34.6, 40: 34.3, 35: 33.8, 30: 33.0, 25: 31.6,
        20: 29.2, 18: 28.0, 16: 26.6, 14: 25.0, 12: 23.2, 10: 21.1,
        8: 18.7, 6: 15.9, 5: 14.2, 4: 12.5, 3: 10.5, 2: 8.3, 1: 5.4, 0: 0.0},
    7: {50: 22.0, 45: 21.9, 40: 21.8, 35: 21.6, 30: 21.3, 25: 20.8,
        20: 19.7, 18: 19.1, 16: 18.4, 14: 17.5, 12: 16.4, 10: 15.2,
        8: 13.7, 6: 11.9, 5: 10.8, 4: 9.6, 3: 8.2, 2: 6.6, 1: 4.5, 0: 0.0},
    8: {50: 11.9, 45: 11.9, 40: 11.8, 35: 11.8, 30: 11.7, 25: 11.5,
        20: 11.1, 18: 10.9, 16: 10.6, 14: 10.2, 12: 9.7, 10: 9.1,
        8: 8.4, 6: 7.4, 5: 6.8, 4: 6.1, 3: 5.4, 2: 4.5, 1: 3.2, 0: 0.0},
    9: {50: 4.7, 45: 4.7, 40: 4.7, 35: 4.7, 30: 4.7, 25: 4.6,
        20: 4.5, 18: 4.5, 16: 4.4, 14: 4.3, 12: 4.2, 10: 4.0,
        8: 3.7, 6: 3.4, 5: 3.1, 4: 2.9, 3: 2.6, 2: 2.2, 1: 1.7, 0: 0.0},
}

_CHECKPOINTS = sorted(RESOURCE_TABLE[0])


@dataclass(frozen=True)
class RevisedTarget:
    target: int
    par_score: int
    resource_ratio: float
    team1_resources: float
    team2_resources: float


@dataclass(frozen=True)
class DLSSituation:
    par_score: int
    target: int
    runs_ahead: int
    team2_score: int

    @property
    def standing(self) -> str:
        if self.runs_ahead > 0:
            return "ahead"
        if self.runs_ahead < 0:
            return "behind"
        return "level"


def round_half_up(value: float) -> int:
    """Round half away from zero (Python's round() is banker's rounding)"""
    return int(Decimal(repr(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _clamp(value, lo, hi):
    return max(lo, min(hi, value))


def resources_remaining(overs_remaining: float, wickets_lost: int) -> float:
    """Resource percentage (0-100) for the given overs remaining and wickets lost"""
    overs = _clamp(float(overs_remaining), 0.0, float(MAX_OVERS))
    row = RESOURCE_TABLE[int(_clamp(int(wickets_lost), 0, MAX_WICKETS))]

    lower = max(c for c in _CHECKPOINTS if c <= overs)
    upper = min(c for c in _CHECKPOINTS if c >= overs)
    if lower == upper:
        return row[lower]

    fraction = (overs - lower) / (upper - lower)
    return row[lower] + (row[upper] - row[lower]) * fraction


def resources_used(total_overs: float, overs_bowled: float, wickets_lost: int) -> float:
    overs_bowled = _clamp(overs_bowled, 0.0, total_overs)
    start = resources_remaining(total_overs, 0)
    current = resources_remaining(total_overs - overs_bowled, wickets_lost)
    return start - current


def par_score(
    team1_score: int,
    team1_overs: float,
    team2_overs_remaining: float,
    team2_wickets_lost: int,
    team2_total_overs: float,
) -> int:
    """Score team 2 should have at this point to be level on resources used"""
    team1_resources = resources_remaining(team1_overs, 0)
    if team1_resources <= 0:
        return 0
    team2_used = (
        resources_remaining(team2_total_overs, 0)
        - resources_remaining(team2_overs_remaining, team2_wickets_lost)
    )
    return round_half_up(team1_score * team2_used / team1_resources)


def revised_target(
    team1_score: int,
    team1_overs: float,
    team2_original_overs: float,
    team2_revised_overs: float,
    wickets_at_interruption: int = 0,
    g50: Optional[int] = None,
) -> RevisedTarget:
    """
    Revised target for team 2 after its innings is shortened.

    With fewer resources than team 1, the target scales down by the resource
    ratio. With more, runs are added in proportion to the surplus using the
    G50 average score, scaled to the match length.
    """
    if g50 is None:
        g50 = settings.DLS_G50

    team1_resources = resources_remaining(team1_overs, 0)
    team2_resources = resources_remaining(team2_revised_overs, wickets_at_interruption)
    ratio = team2_resources / team1_resources if team1_resources > 0 else 0.0

    if team2_resources >= team1_resources:
        surplus = team2_resources - team1_resources
        adjusted_g50 = g50 * (team1_overs / MAX_OVERS)
        additional_runs = round_half_up((surplus / 100) * adjusted_g50)
        target = team1_score + 1 + additional_runs
    else:
        target = round_half_up(team1_score * ratio) + 1

    return RevisedTarget(
        target=target,
        par_score=target - 1,
        resource_ratio=ratio,
        team1_resources=team1_resources,
        team2_resources=team2_resources,
    )


def situation(
    team1_score: int,
    team1_overs: float,
    team2_score: int,
    team2_overs_used: float,
    team2_wickets_lost: int,
    team2_total_overs: float,
    revised: Optional[int] = None,
) -> DLSSituation:
    """Live position of the chasing side against DLS par"""
    overs_remaining = max(0.0, team2_total_overs - team2_overs_used)
    par = par_score(team1_score, team1_overs, overs_remaining, team2_wickets_lost, team2_total_overs)
    target = revised or team1_score + 1
    return DLSSituation(
        par_score=par,
        target=target,
        runs_ahead=team2_score - par,
        team2_score=team2_score,
    )


def parse_overs(overs, balls_per_over: int = 6) -> float:
    """'10.3' -> 10.5 for six-ball overs"""
    if isinstance(overs, (int, float)) and not isinstance(overs, bool):
        return float(overs)
    whole, _, balls = str(overs).partition(".")
    return int(whole or 0) + int(balls or 0) / balls_per_over


def describe(state: DLSSituation) -> str:
    if state.standing == "ahead":
        return f"{abs(state.runs_ahead)} runs ahead of DLS par"
    if state.standing == "behind":
        return f"{abs(state.runs_ahead)} runs behind DLS par"
    return "On DLS par score"
