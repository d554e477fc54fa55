"""
Pydantic schemas for API request/response models
"""
from pydantic import BaseModel
from typing import Optional, List, Dict
from enum import Enum


# Enums
class CommandType(str, Enum):
    TOSS = "toss"
    OPENERS = "openers"
    BATTER = "batter"
    BOWLER = "bowler"
    SWAP_STRIKE = "swap_strike"
    RUN = "run"
    EXTRA = "extra"
    WICKET = "wicket"
    RETIRE = "retire"
    UNDO = "undo"
    END_INNINGS = "end_innings"
    REVISE_TARGET = "revise_target"
    ABANDON = "abandon"


# Match lifecycle
class StartMatchRequest(BaseModel):
    team1_id: Optional[int] = None
    team2_id: Optional[int] = None
    profile_id: Optional[str] = None  # t20, odi, test
    rules: Optional[Dict] = None  # flat rule settings, overrides profile_id
    tournament_id: Optional[int] = None
    venue: Optional[str] = None


class CommandRequest(BaseModel):
    type: CommandType

    # toss
    winner_id: Optional[int] = None
    decision: Optional[str] = None  # "bat" or "bowl"

    # selections
    player_id: Optional[int] = None
    non_striker_id: Optional[int] = None
    end: str = "striker"

    # deliveries
    runs: int = 0
    is_boundary: Optional[bool] = None
    extra: Optional[str] = None  # wide, no_ball, bye, leg_bye
    runs_off_bat: int = 0

    # wickets
    dismissal: Optional[str] = None
    fielder_id: Optional[int] = None
    runs_completed: int = 0

    revised_overs: Optional[int] = None


class ShotZoneRequest(BaseModel):
    zone: Optional[str] = None


# Responses
class DismissalResponse(BaseModel):
    kind: str
    player_out: int
    fielder: Optional[int] = None
    runs_completed: int = 0


class DeliveryResponse(BaseModel):
    id: Optional[int] = None
    innings: int
    over_number: int
    ball_in_over: int
    striker: int
    non_striker: Optional[int] = None
    bowler: int
    runs_off_bat: int
    extra: str
    extra_runs: int
    dismissal: Optional[DismissalResponse] = None
    is_four: bool
    is_six: bool
    is_free_hit: bool
    is_legal: bool
    shot_zone: Optional[str] = None
    display: str


class FactResponse(BaseModel):
    kind: str
    player_id: Optional[int] = None
    detail: str = ""


class DLSSituationResponse(BaseModel):
    par_score: int
    target: int
    runs_ahead: int
    standing: str
    summary: str


class MatchStateResponse(BaseModel):
    match_id: int
    version: int
    phase: str
    innings: int
    batting_team_id: Optional[int] = None
    bowling_team_id: Optional[int] = None

    striker_id: Optional[int] = None
    non_striker_id: Optional[int] = None
    bowler_id: Optional[int] = None
    free_hit: bool
    needs_new_bowler: bool
    innings_complete_pending: bool

    runs: int
    wickets: int
    overs: str
    legal_balls: int
    run_rate: float
    target: Optional[int] = None
    revised_overs: Optional[int] = None
    required_rate: Optional[float] = None
    this_over: List[str]
    dls: Optional[DLSSituationResponse] = None

    winner_id: Optional[int] = None
    result: Optional[str] = None


class CommandResponse(BaseModel):
    state: MatchStateResponse
    facts: List[FactResponse]
    delivery: Optional[DeliveryResponse] = None
    stats_synced: Optional[bool] = None
    unsynced_sinks: List[str] = []


# DLS
class DLSRequest(BaseModel):
    team1_score: int
    team1_overs: float
    team2_original_overs: float
    team2_revised_overs: float
    wickets_at_interruption: int = 0


class DLSResponse(BaseModel):
    target: int
    par_score: int
    resource_ratio: float
    team1_resources: float
    team2_resources: float


class ProfileResponse(BaseModel):
    id: str
    name: str
    settings: Dict
