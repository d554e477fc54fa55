from dataclasses import asdict
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.engine import dls
from app.engine.errors import ScoringError, PersistenceError
from app.engine.live_match import LiveMatchSession, CommandResult
from app.engine.rules import RuleProfile, ExtraKind, DismissalKind, PRESETS, get_preset
from app.engine.scorecard import innings_scorecard, this_over, required_run_rate
from app.engine.scoring import (
    ScoringEngine, MatchState, MatchPhase, Delivery, TossResult, TossDecision, overs_display,
    CompleteToss, SelectOpeners, SelectBatter, SelectBowler, SwapStrike, RecordRun, RecordExtra,
    RecordWicket, RetireBatter, Undo, EndInnings, ReviseTarget, Abandon,
)
from app.models.match import Match, MatchStatus
from app.models.team import Team
from app.stores.sql import (
    SqlDeliveryStore, SqlSnapshotStore, SqlRosterProvider, SqlMatchRepository,
    tournament_sink, career_sink,
)
from app.api.schemas import (
    StartMatchRequest, CommandRequest, CommandType, ShotZoneRequest,
    CommandResponse, MatchStateResponse, DeliveryResponse, DismissalResponse, FactResponse,
    DLSSituationResponse, DLSRequest, DLSResponse, ProfileResponse,
)

router = APIRouter(prefix="/scoring", tags=["Live Scoring"])

# One live session per match; the delivery log in the database is authoritative
active_sessions: Dict[int, LiveMatchSession] = {}


def _stores(db: Session, match: Match) -> dict:
    return {
        "deliveries": SqlDeliveryStore(db),
        "snapshots": SqlSnapshotStore(db),
        "roster": SqlRosterProvider(db),
        "sinks": [tournament_sink(db, match.tournament_id), career_sink(db)],
        "matches": SqlMatchRepository(db),
    }


def _bind(session: LiveMatchSession, db: Session, match: Match) -> LiveMatchSession:
    """Point a cached session at this request's database session"""
    stores = _stores(db, match)
    session.deliveries = stores["deliveries"]
    session.snapshots = stores["snapshots"]
    session.roster = stores["roster"]
    session.sinks = stores["sinks"]
    session.matches = stores["matches"]
    return session


def _get_match(match_id: int, db: Session) -> Match:
    match = db.get(Match, match_id)
    if not match:
        raise HTTPException(status_code=404, detail="Match not found")
    return match


def _resume(match: Match, db: Session) -> LiveMatchSession:
    engine = ScoringEngine(RuleProfile.from_json(match.rule_profile_json))
    toss = None
    if match.toss_winner_id is not None:
        toss = TossResult(
            winner_id=match.toss_winner_id,
            decision=TossDecision(match.toss_decision),
            batting_first_id=match.batting_first_id,
        )
    session = LiveMatchSession.resume(
        match.id, match.team1_id, match.team2_id, engine,
        toss=toss,
        target=match.target,
        revised_overs=match.revised_overs,
        **_stores(db, match),
    )
    active_sessions[match.id] = session
    return session


def _get_session(match_id: int, db: Session) -> LiveMatchSession:
    match = _get_match(match_id, db)
    if match_id in active_sessions:
        return _bind(active_sessions[match_id], db, match)
    if match.status != MatchStatus.IN_PROGRESS:
        raise HTTPException(status_code=404, detail="Active match session not found")
    return _resume(match, db)


def _to_command(request: CommandRequest):
    """Translate a flat request body into an engine command"""
    t = request.type
    if t == CommandType.TOSS:
        return CompleteToss(winner_id=request.winner_id, decision=TossDecision(request.decision))
    if t == CommandType.OPENERS:
        return SelectOpeners(striker=request.player_id, non_striker=request.non_striker_id)
    if t == CommandType.BATTER:
        return SelectBatter(player_id=request.player_id, end=request.end)
    if t == CommandType.BOWLER:
        return SelectBowler(player_id=request.player_id)
    if t == CommandType.SWAP_STRIKE:
        return SwapStrike()
    if t == CommandType.RUN:
        return RecordRun(runs=request.runs, is_boundary=request.is_boundary)
    if t == CommandType.EXTRA:
        return RecordExtra(kind=ExtraKind.parse(request.extra), runs=request.runs, runs_off_bat=request.runs_off_bat)
    if t == CommandType.WICKET:
        return RecordWicket(
            kind=DismissalKind.parse(request.dismissal),
            player_out=request.player_id,
            fielder=request.fielder_id,
            runs_completed=request.runs_completed,
            extra=ExtraKind.parse(request.extra),
            extra_runs=request.runs,
        )
    if t == CommandType.RETIRE:
        return RetireBatter(player_id=request.player_id)
    if t == CommandType.UNDO:
        return Undo()
    if t == CommandType.END_INNINGS:
        return EndInnings()
    if t == CommandType.REVISE_TARGET:
        return ReviseTarget(revised_overs=request.revised_overs)
    return Abandon()


def _delivery_response(delivery: Optional[Delivery]) -> Optional[DeliveryResponse]:
    if delivery is None:
        return None
    dismissal = None
    if delivery.dismissal:
        dismissal = DismissalResponse(
            kind=delivery.dismissal.kind.value,
            player_out=delivery.dismissal.player_out,
            fielder=delivery.dismissal.fielder,
            runs_completed=delivery.dismissal.runs_completed,
        )
    return DeliveryResponse(
        id=delivery.id,
        innings=delivery.innings,
        over_number=delivery.over_number,
        ball_in_over=delivery.ball_in_over,
        striker=delivery.striker,
        non_striker=delivery.non_striker,
        bowler=delivery.bowler,
        runs_off_bat=delivery.runs_off_bat,
        extra=delivery.extra.value,
        extra_runs=delivery.extra_runs,
        dismissal=dismissal,
        is_four=delivery.is_four,
        is_six=delivery.is_six,
        is_free_hit=delivery.is_free_hit,
        is_legal=delivery.is_legal,
        shot_zone=delivery.shot_zone,
        display=delivery.display,
    )


def _state_response(session: LiveMatchSession) -> MatchStateResponse:
    state: MatchState = session.state
    profile = session.engine.profile_for(state)
    bpo = profile.balls_per_over
    tally = state.tally
    innings_deliveries = state.innings_deliveries if state.phase == MatchPhase.IN_PLAY else ()

    required = None
    if state.innings == 2 and state.target is not None and state.phase == MatchPhase.IN_PLAY:
        required = required_run_rate(state.target, tally.runs, tally.legal_balls, profile.max_legal_balls, bpo)

    situation = session.dls_situation()
    dls_response = None
    if situation is not None:
        dls_response = DLSSituationResponse(
            par_score=situation.par_score,
            target=situation.target,
            runs_ahead=situation.runs_ahead,
            standing=situation.standing,
            summary=dls.describe(situation),
        )

    return MatchStateResponse(
        match_id=state.match_id,
        version=state.version,
        phase=state.phase.value,
        innings=state.innings,
        batting_team_id=state.batting_team_id,
        bowling_team_id=state.bowling_team_id,
        striker_id=state.striker,
        non_striker_id=state.non_striker,
        bowler_id=state.bowler,
        free_hit=state.free_hit,
        needs_new_bowler=state.needs_new_bowler,
        innings_complete_pending=state.innings_complete_pending,
        runs=tally.runs,
        wickets=tally.wickets,
        overs=overs_display(tally.legal_balls, bpo),
        legal_balls=tally.legal_balls,
        run_rate=round(tally.runs / tally.legal_balls * bpo, 2) if tally.legal_balls else 0.0,
        target=state.target,
        revised_overs=state.revised_overs,
        required_rate=round(required, 2) if required is not None else None,
        this_over=this_over(innings_deliveries),
        dls=dls_response,
        winner_id=state.result.winner_id if state.result else None,
        result=state.result.summary if state.result else None,
    )


def _command_response(session: LiveMatchSession, result: CommandResult) -> CommandResponse:
    return CommandResponse(
        state=_state_response(session),
        facts=[FactResponse(kind=f.kind.value, player_id=f.player_id, detail=f.detail) for f in result.facts],
        delivery=_delivery_response(result.delivery),
        stats_synced=result.stats_synced,
        unsynced_sinks=list(result.unsynced_sinks),
    )


@router.post("/matches/{match_id}/start")
def start_match(match_id: int, request: Optional[StartMatchRequest] = None, db: Session = Depends(get_db)):
    """Create (or open a scheduled) match and begin a live session awaiting the toss"""
    request = request or StartMatchRequest()
    try:
        if request.rules:
            profile = RuleProfile.from_settings(request.rules)
        else:
            profile = get_preset(request.profile_id or settings.DEFAULT_PROFILE)
    except (KeyError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    match = db.get(Match, match_id)
    if match is None:
        if request.team1_id is None or request.team2_id is None:
            raise HTTPException(status_code=404, detail="Match not found")
        for team_id in (request.team1_id, request.team2_id):
            if not db.get(Team, team_id):
                raise HTTPException(status_code=404, detail=f"Team {team_id} not found")
        match = Match(
            id=match_id,
            team1_id=request.team1_id,
            team2_id=request.team2_id,
            tournament_id=request.tournament_id,
            venue=request.venue,
            rule_profile_json=profile.to_json(),
            status=MatchStatus.SCHEDULED,
        )
        db.add(match)
        db.commit()
    elif match.status != MatchStatus.SCHEDULED:
        raise HTTPException(status_code=400, detail=f"Match is already {match.status.value}")
    else:
        match.rule_profile_json = profile.to_json()
        db.commit()

    session = LiveMatchSession.start(match.id, match.team1_id, match.team2_id, ScoringEngine(profile), **_stores(db, match))
    active_sessions[match.id] = session
    return {
        "state": _state_response(session),
        "profile": profile.to_settings(),
    }


@router.post("/matches/{match_id}/commands", response_model=CommandResponse)
def apply_command(match_id: int, request: CommandRequest, db: Session = Depends(get_db)):
    session = _get_session(match_id, db)
    try:
        command = _to_command(request)
        result = session.apply(command)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except (ScoringError, ValueError, TypeError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    if result.state.phase in (MatchPhase.COMPLETED, MatchPhase.ABANDONED):
        active_sessions.pop(match_id, None)
    return _command_response(session, result)


@router.post("/matches/{match_id}/deliveries/{delivery_id}/shot-zone", response_model=DeliveryResponse)
def set_shot_zone(match_id: int, delivery_id: int, request: ShotZoneRequest, db: Session = Depends(get_db)):
    session = _get_session(match_id, db)
    if not any(d.id == delivery_id for d in session.state.deliveries):
        raise HTTPException(status_code=404, detail="Delivery not found")
    try:
        delivery = session.set_shot_zone(delivery_id, request.zone)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return _delivery_response(delivery)


@router.get("/matches/{match_id}/state", response_model=MatchStateResponse)
def get_match_state(match_id: int, db: Session = Depends(get_db)):
    return _state_response(_get_session(match_id, db))


@router.get("/matches/{match_id}/scorecard")
def get_scorecard(match_id: int, db: Session = Depends(get_db)):
    """Scorecards for both innings, derived from the persisted log"""
    match = _get_match(match_id, db)
    profile = RuleProfile.from_json(match.rule_profile_json)
    deliveries = SqlDeliveryStore(db).list_by_match(match_id)
    innings = []
    for number in (1, 2):
        innings_deliveries = [d for d in deliveries if d.innings == number]
        if innings_deliveries:
            card = innings_scorecard(innings_deliveries, profile.balls_per_over)
            innings.append({"innings": number, **card})
    return {
        "match_id": match.id,
        "status": match.status.value,
        "result": match.result_summary,
        "innings": innings,
    }


@router.post("/matches/{match_id}/resume", response_model=MatchStateResponse)
def resume_match(match_id: int, db: Session = Depends(get_db)):
    """Drop any cached session and reload from the log and snapshot"""
    match = _get_match(match_id, db)
    if match.status != MatchStatus.IN_PROGRESS:
        raise HTTPException(status_code=400, detail=f"Match is {match.status.value}")
    active_sessions.pop(match_id, None)
    return _state_response(_resume(match, db))


@router.post("/matches/{match_id}/leave")
def leave_match(match_id: int, db: Session = Depends(get_db)):
    """Flush any pending snapshot and release the session"""
    match = _get_match(match_id, db)
    session = active_sessions.pop(match_id, None)
    if session is None:
        return {"match_id": match_id, "status": match.status.value}
    state = _bind(session, db, match).leave()
    return {"match_id": match_id, "status": match.status.value, "version": state.version}


@router.post("/dls/revised-target", response_model=DLSResponse)
def dls_revised_target(request: DLSRequest):
    result = dls.revised_target(
        team1_score=request.team1_score,
        team1_overs=request.team1_overs,
        team2_original_overs=request.team2_original_overs,
        team2_revised_overs=request.team2_revised_overs,
        wickets_at_interruption=request.wickets_at_interruption,
    )
    return DLSResponse(**asdict(result))


@router.get("/profiles", response_model=list[ProfileResponse])
def list_profiles():
    return [
        ProfileResponse(id=profile_id, name=profile.name, settings=profile.to_settings())
        for profile_id, profile in PRESETS.items()
    ]
