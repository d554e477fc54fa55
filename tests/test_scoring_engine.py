"""
Tests for the scoring engine reducer: over completion, strike rotation,
extras, wickets, free hits, undo and innings lifecycle.
"""
import pytest

from app.engine.errors import InvalidState, InvalidSelection, IllegalTransition
from app.engine.rules import RuleProfile, ExtraTariff, ExtraKind, DismissalKind, ICC_T20
from app.engine.scoring import (
    ScoringEngine, MatchPhase, FactKind, TossDecision, CreaseEnd,
    CompleteToss, SelectOpeners, SelectBatter, SelectBowler, SwapStrike, RecordRun, RecordExtra,
    RecordWicket, RetireBatter, Undo, EndInnings, ReviseTarget, Abandon,
)
from app.engine import dls

HOME, AWAY = 100, 200
A, B = 1, 2
X, Y = 21, 22


def start(engine: ScoringEngine, bowler: int = X):
    """Toss won by HOME who bat; A and B open, bowler opens the attack"""
    state = engine.new_match(1, HOME, AWAY)
    state = engine.apply(state, CompleteToss(HOME, TossDecision.BAT)).state
    state = engine.apply(state, SelectOpeners(A, B)).state
    return engine.apply(state, SelectBowler(bowler)).state


def play(engine, state, *commands):
    facts = []
    for command in commands:
        transition = engine.apply(state, command)
        state = transition.state
        facts.extend(transition.facts)
    return state, facts


def kinds(facts):
    return [f.kind for f in facts]


@pytest.fixture
def engine():
    return ScoringEngine(ICC_T20)


class TestOverCompletion:
    def test_wide_does_not_complete_over(self, engine):
        """4 dots, a four and a wide are only five legal balls"""
        state = start(engine)
        state, facts = play(engine, state, *[RecordRun(0)] * 4, RecordRun(4), RecordExtra(ExtraKind.WIDE))

        assert state.tally.runs == 5
        assert state.tally.legal_balls == 5
        assert FactKind.OVER_COMPLETE not in kinds(facts)
        assert state.bowler == X

        wide = state.deliveries[-1]
        assert wide.is_legal is False
        assert wide.extra_runs == 1
        assert wide.over_number == 1
        assert wide.ball_in_over == 6

    def test_sixth_legal_ball_completes_over(self, engine):
        state = start(engine)
        state, _ = play(engine, state, *[RecordRun(0)] * 4, RecordRun(4), RecordExtra(ExtraKind.WIDE))
        transition = engine.apply(state, RecordRun(0))

        assert transition.has(FactKind.OVER_COMPLETE)
        state = transition.state
        assert state.tally.legal_balls == 6
        assert state.bowler is None
        assert state.needs_new_bowler is True
        assert state.last_over_bowler == X
        # Over change swaps ends
        assert (state.striker, state.non_striker) == (B, A)

    def test_next_over_numbering(self, engine):
        state = start(engine)
        state, _ = play(engine, state, *[RecordRun(0)] * 6, SelectBowler(Y), RecordRun(1))
        delivery = state.deliveries[-1]
        assert (delivery.over_number, delivery.ball_in_over) == (2, 1)
        assert delivery.bowler == Y

    def test_ball_positions_unique_with_extras(self, engine):
        state = start(engine)
        state, _ = play(
            engine, state,
            RecordExtra(ExtraKind.WIDE), RecordRun(1), RecordExtra(ExtraKind.NO_BALL),
            RecordRun(0), RecordExtra(ExtraKind.LEG_BYE, runs=1), RecordRun(0), RecordRun(0), RecordRun(0),
        )
        positions = [(d.over_number, d.ball_in_over) for d in state.deliveries]
        assert len(set(positions)) == len(positions)
        assert [d.ball_in_over for d in state.deliveries] == list(range(1, 9))
        assert state.tally.legal_balls == 6

    def test_completed_overs_match_legal_balls(self, engine):
        state = start(engine)
        over_facts = 0
        bowlers = [Y, X]
        script = [RecordRun(1), RecordExtra(ExtraKind.WIDE), RecordRun(0), RecordRun(2),
                  RecordExtra(ExtraKind.NO_BALL), RecordRun(3), RecordExtra(ExtraKind.BYE, runs=1)]
        for i in range(40):
            if state.bowler is None:
                state = engine.apply(state, SelectBowler(bowlers[0])).state
                bowlers.reverse()
            transition = engine.apply(state, script[i % len(script)])
            over_facts += transition.has(FactKind.OVER_COMPLETE)
            state = transition.state
        assert over_facts == state.tally.legal_balls // 6

    def test_maiden_over(self, engine):
        state = start(engine)
        state, facts = play(engine, state, *[RecordRun(0)] * 6)
        assert FactKind.MAIDEN_OVER in kinds(facts)

    def test_leg_byes_keep_maiden(self, engine):
        state = start(engine)
        state, facts = play(engine, state, *[RecordRun(0)] * 5, RecordExtra(ExtraKind.LEG_BYE, runs=1))
        assert FactKind.MAIDEN_OVER in kinds(facts)

    def test_wide_spoils_maiden(self, engine):
        state = start(engine)
        state, facts = play(engine, state, RecordExtra(ExtraKind.WIDE), *[RecordRun(0)] * 6)
        assert FactKind.MAIDEN_OVER not in kinds(facts)


class TestStrikeRotation:
    @pytest.mark.parametrize("runs", [0, 1, 2, 3])
    def test_mid_over_runs(self, engine, runs):
        state = start(engine)
        state, _ = play(engine, state, RecordRun(runs))
        expected = (B, A) if runs % 2 else (A, B)
        assert (state.striker, state.non_striker) == expected

    @pytest.mark.parametrize("runs", [0, 1, 2, 3])
    def test_last_ball_runs_combine_with_over_change(self, engine, runs):
        """Odd runs and the change of ends cancel out"""
        state = start(engine)
        state, _ = play(engine, state, *[RecordRun(0)] * 5, RecordRun(runs))
        expected = (A, B) if runs % 2 else (B, A)
        assert (state.striker, state.non_striker) == expected

    @pytest.mark.parametrize("command", [
        RecordRun(0),
        RecordRun(1),
        RecordRun(2),
        RecordRun(3),
        RecordExtra(ExtraKind.BYE, runs=1),
        RecordExtra(ExtraKind.LEG_BYE, runs=3),
        RecordExtra(ExtraKind.WIDE, runs=1),
        RecordExtra(ExtraKind.NO_BALL, runs_off_bat=1),
    ])
    def test_same_delivery_twice_restores_ends(self, engine, command):
        state = start(engine)
        state, _ = play(engine, state, command, command)
        assert (state.striker, state.non_striker) == (A, B)

    def test_two_over_changes_restore_ends(self, engine):
        state = start(engine)
        state, _ = play(engine, state, *[RecordRun(0)] * 6, SelectBowler(Y), *[RecordRun(0)] * 6)
        assert (state.striker, state.non_striker) == (A, B)

    def test_boundary_does_not_rotate(self, engine):
        state = start(engine)
        state, _ = play(engine, state, RecordRun(4))
        assert state.striker == A
        assert state.deliveries[-1].is_four

    def test_all_run_four_is_not_a_boundary(self, engine):
        state = start(engine)
        state, _ = play(engine, state, RecordRun(4, is_boundary=False))
        assert state.deliveries[-1].is_four is False
        assert state.striker == A

    def test_wide_with_run_rotates(self, engine):
        """A wide plus one run taken counts one run between the wickets"""
        state = start(engine)
        state, _ = play(engine, state, RecordExtra(ExtraKind.WIDE, runs=1))
        assert state.deliveries[-1].extra_runs == 2
        assert state.deliveries[-1].rotation_runs == 1
        assert state.striker == B

    def test_byes_rotate(self, engine):
        state = start(engine)
        state, _ = play(engine, state, RecordExtra(ExtraKind.BYE, runs=1))
        assert state.striker == B
        assert state.tally.runs == 1

    def test_no_ball_rotates_on_bat_runs(self, engine):
        state = start(engine)
        state, _ = play(engine, state, RecordExtra(ExtraKind.NO_BALL, runs_off_bat=1))
        delivery = state.deliveries[-1]
        assert delivery.runs_off_bat == 1
        assert delivery.extra_runs == 1
        assert state.striker == B

    def test_manual_swap(self, engine):
        state = start(engine)
        state, facts = play(engine, state, SwapStrike())
        assert (state.striker, state.non_striker) == (B, A)
        assert FactKind.STRIKE_ROTATED in kinds(facts)


class TestWickets:
    def test_run_out_non_striker_after_completed_run(self, engine):
        state = start(engine)
        transition = engine.apply(state, RecordWicket(DismissalKind.RUN_OUT, player_out=B, runs_completed=1))
        state = transition.state

        assert state.non_striker is None
        assert state.striker == A
        delivery = transition.delivery
        assert delivery.runs_off_bat == 1
        assert delivery.rotation_runs == 1
        assert state.tally.runs == 1
        assert state.tally.wickets == 1
        assert any(f.kind == FactKind.WICKET_FALLEN and f.player_id == B for f in transition.facts)

    def test_bowled_always_dismisses_striker(self, engine):
        state = start(engine)
        transition = engine.apply(state, RecordWicket(DismissalKind.BOWLED, player_out=B))
        assert transition.delivery.dismissal.player_out == A
        assert transition.state.striker is None
        assert transition.state.non_striker == B

    def test_wicket_on_last_ball_moves_vacancy(self, engine):
        state = start(engine)
        state, _ = play(engine, state, *[RecordRun(0)] * 5, RecordWicket(DismissalKind.CAUGHT, fielder=X))
        # B changes ends for the new over; the incoming batter is at the non-striker's end
        assert state.striker == B
        assert state.non_striker is None

    def test_stumped_off_wide(self, engine):
        state = start(engine)
        transition = engine.apply(state, RecordWicket(DismissalKind.STUMPED, extra=ExtraKind.WIDE))
        delivery = transition.delivery
        assert delivery.extra == ExtraKind.WIDE
        assert delivery.extra_runs == 1
        assert delivery.is_legal is False
        assert delivery.is_wicket
        assert transition.state.tally.runs == 1

    def test_dismissed_batter_cannot_return(self, engine):
        state = start(engine)
        state, _ = play(engine, state, RecordWicket(DismissalKind.LBW))
        with pytest.raises(InvalidSelection):
            engine.apply(state, SelectBatter(A, CreaseEnd.STRIKER))

    def test_delivery_needs_both_batters(self, engine):
        state = start(engine)
        state, _ = play(engine, state, RecordWicket(DismissalKind.BOWLED))
        with pytest.raises(InvalidState):
            engine.apply(state, RecordRun(1))

    def test_tenth_wicket_completes_innings(self, engine):
        state = start(engine)
        incoming = iter(range(3, 12))
        for wicket in range(1, 11):
            if state.bowler is None:
                state = engine.apply(state, SelectBowler(Y if state.last_over_bowler == X else X)).state
            transition = engine.apply(state, RecordWicket(DismissalKind.BOWLED))
            state = transition.state
            if wicket < 10:
                assert not transition.has(FactKind.INNINGS_COMPLETE)
                end = CreaseEnd.STRIKER if state.striker is None else CreaseEnd.NON_STRIKER
                state = engine.apply(state, SelectBatter(next(incoming), end)).state

        assert transition.has(FactKind.INNINGS_COMPLETE)
        assert state.tally.wickets == 10
        assert state.innings_complete_pending is True
        assert state.phase == MatchPhase.IN_PLAY
        with pytest.raises(InvalidState):
            engine.apply(state, RecordRun(1))

        state = engine.apply(state, EndInnings()).state
        assert state.phase == MatchPhase.INNINGS_BREAK
        assert state.target == 1

    def test_last_man_stands(self):
        """The survivor of the penultimate wicket bats on alone and keeps strike"""
        engine = ScoringEngine(RuleProfile(name="Six a side", players_per_side=6, last_man_can_play=True))
        state = start(engine)
        for n in range(5):
            state = engine.apply(state, RecordWicket(DismissalKind.BOWLED)).state
            if n < 4:
                state = engine.apply(state, SelectBatter(3 + n, CreaseEnd.STRIKER)).state
        assert not state.innings_complete_pending
        assert (state.striker, state.non_striker) == (B, None)

        # Last ball of the over: neither the single nor the change of ends moves B
        transition = engine.apply(state, RecordRun(1))
        state = transition.state
        assert transition.delivery.non_striker is None
        assert FactKind.STRIKE_ROTATED not in kinds(transition.facts)
        assert state.striker == B
        assert state.tally.runs == 1
        with pytest.raises(InvalidState):
            engine.apply(state, SwapStrike())

        state, _ = play(engine, state, SelectBowler(Y), RecordRun(3))
        assert (state.striker, state.non_striker) == (B, None)
        undone = engine.apply(state, Undo()).state
        assert (undone.striker, undone.non_striker, undone.tally.runs) == (B, None, 1)

        transition = engine.apply(state, RecordWicket(DismissalKind.BOWLED))
        assert transition.has(FactKind.INNINGS_COMPLETE)
        assert transition.state.tally.wickets == 6
        assert transition.state.striker is None


class TestFreeHit:
    def test_no_ball_grants_free_hit(self, engine):
        state = start(engine)
        transition = engine.apply(state, RecordExtra(ExtraKind.NO_BALL))
        assert transition.has(FactKind.FREE_HIT_GRANTED)
        assert transition.state.free_hit is True
        assert transition.delivery.is_legal is False

    def test_bowled_on_free_hit_is_disallowed(self, engine):
        state = start(engine)
        state, _ = play(engine, state, RecordExtra(ExtraKind.NO_BALL))
        transition = engine.apply(state, RecordWicket(DismissalKind.BOWLED))

        assert transition.has(FactKind.WICKET_DISALLOWED)
        assert not transition.has(FactKind.WICKET_FALLEN)
        assert transition.delivery.dismissal is None
        assert transition.delivery.is_free_hit is True
        assert transition.state.tally.wickets == 0
        assert transition.state.striker == A
        assert transition.state.free_hit is False

    def test_run_out_allowed_on_free_hit(self, engine):
        state = start(engine)
        state, _ = play(engine, state, RecordExtra(ExtraKind.NO_BALL))
        transition = engine.apply(state, RecordWicket(DismissalKind.RUN_OUT, player_out=A))
        assert transition.has(FactKind.WICKET_FALLEN)
        assert transition.state.tally.wickets == 1

    def test_wide_keeps_pending_free_hit(self, engine):
        state = start(engine)
        state, _ = play(engine, state, RecordExtra(ExtraKind.NO_BALL), RecordExtra(ExtraKind.WIDE))
        assert state.free_hit is True
        state, _ = play(engine, state, RecordRun(0))
        assert state.free_hit is False

    def test_free_hit_on_wide_when_enabled(self):
        engine = ScoringEngine(RuleProfile(name="Club", free_hit_on_wide=True))
        state = start(engine)
        state, facts = play(engine, state, RecordExtra(ExtraKind.WIDE))
        assert state.free_hit is True
        assert FactKind.FREE_HIT_GRANTED in kinds(facts)


class TestExtrasTariff:
    def test_escalating_wide_runs(self):
        tariffs = tuple(ExtraTariff(runs=n) for n in (1, 2, 2, 3, 3, 5))
        engine = ScoringEngine(RuleProfile(name="Club", wide_tariffs=tariffs))
        state = start(engine)
        state, _ = play(engine, state, *[RecordExtra(ExtraKind.WIDE)] * 7)
        assert [d.extra_runs for d in state.deliveries] == [1, 2, 2, 3, 3, 5, 5]
        assert state.tally.wides == 7

    def test_legal_wide_counts_toward_over(self):
        tariffs = (ExtraTariff(runs=1, legal=True),) * 6
        engine = ScoringEngine(RuleProfile(name="Club", wide_tariffs=tariffs))
        state = start(engine)
        state, facts = play(engine, state, *[RecordExtra(ExtraKind.WIDE)] * 6)
        assert FactKind.OVER_COMPLETE in kinds(facts)

    def test_bye_with_bat_runs_rejected(self, engine):
        state = start(engine)
        with pytest.raises(InvalidState):
            engine.record_delivery(state, runs_off_bat=1, extra=ExtraKind.BYE, extra_runs=1)


class TestBowling:
    def test_same_bowler_cannot_bowl_consecutive_overs(self, engine):
        state = start(engine)
        state, _ = play(engine, state, *[RecordRun(0)] * 6)
        with pytest.raises(InvalidSelection):
            engine.apply(state, SelectBowler(X))

    def test_bowler_quota(self):
        engine = ScoringEngine(RuleProfile(name="Short spells", max_overs_per_bowler=1))
        state = start(engine)
        state, facts = play(engine, state, *[RecordRun(0)] * 6)
        assert any(f.kind == FactKind.BOWLER_QUOTA_REACHED and f.player_id == X for f in facts)
        state, _ = play(engine, state, SelectBowler(Y), *[RecordRun(0)] * 6)
        with pytest.raises(InvalidSelection):
            engine.apply(state, SelectBowler(X))

    def test_powerplay_complete(self):
        engine = ScoringEngine(RuleProfile(name="Club", powerplay_overs=1))
        state = start(engine)
        state, facts = play(engine, state, *[RecordRun(0)] * 6)
        assert FactKind.POWERPLAY_COMPLETE in kinds(facts)


UNDO_PREFIXES = {
    "mid_over": (RecordRun(1), RecordExtra(ExtraKind.NO_BALL), RecordRun(2)),
    "free_hit_pending": (RecordRun(1), RecordExtra(ExtraKind.NO_BALL)),
    "mid_over_bowler_change": (RecordRun(1), RecordRun(0), SelectBowler(Y)),
    "second_over": (*[RecordRun(0)] * 6, SelectBowler(Y), RecordRun(1)),
}


class TestUndo:
    @pytest.mark.parametrize("prefix", list(UNDO_PREFIXES.values()), ids=list(UNDO_PREFIXES))
    def test_undo_restores_previous_state(self, engine, prefix):
        before, _ = play(engine, start(engine), *prefix)
        for command in (RecordRun(3), RecordRun(4), RecordExtra(ExtraKind.WIDE),
                        RecordWicket(DismissalKind.RUN_OUT, player_out=A), RecordExtra(ExtraKind.LEG_BYE, runs=1)):
            after = engine.apply(before, command).state
            undone = engine.apply(after, Undo()).state
            assert undone.deliveries == before.deliveries
            assert undone.tally == before.tally
            assert (undone.striker, undone.non_striker, undone.bowler) == (before.striker, before.non_striker, before.bowler)
            assert undone.free_hit == before.free_hit
            assert undone.last_over_bowler == before.last_over_bowler
            assert undone.needs_new_bowler == before.needs_new_bowler

    def test_undo_over_completing_ball(self, engine):
        state = start(engine)
        state, _ = play(engine, state, *[RecordRun(0)] * 6)
        assert state.bowler is None
        transition = engine.apply(state, Undo())
        state = transition.state
        assert state.bowler == X
        assert state.needs_new_bowler is False
        assert state.last_over_bowler is None
        assert state.tally.legal_balls == 5
        assert transition.removed.ball_in_over == 6

    def test_undo_restores_free_hit(self, engine):
        state = start(engine)
        state, _ = play(engine, state, RecordExtra(ExtraKind.NO_BALL), RecordRun(1))
        assert state.free_hit is False
        state = engine.apply(state, Undo()).state
        assert state.free_hit is True

    def test_undo_clears_pending_innings_end(self, engine):
        state = start(engine)
        state, _ = play(engine, state, RecordWicket(DismissalKind.BOWLED))
        for batter in range(3, 12):
            if state.bowler is None:
                state = engine.apply(state, SelectBowler(Y if state.last_over_bowler == X else X)).state
            end = CreaseEnd.STRIKER if state.striker is None else CreaseEnd.NON_STRIKER
            state = engine.apply(state, SelectBatter(batter, end)).state
            state = engine.apply(state, RecordWicket(DismissalKind.BOWLED)).state
        assert state.innings_complete_pending
        state = engine.apply(state, Undo()).state
        assert not state.innings_complete_pending
        assert state.tally.wickets == 9

    def test_nothing_to_undo(self, engine):
        state = start(engine)
        with pytest.raises(InvalidState):
            engine.apply(state, Undo())


class TestRetirement:
    def test_auto_retire_at_score(self):
        engine = ScoringEngine(RuleProfile(name="Juniors", retire_at_score=10))
        state = start(engine)
        state, _ = play(engine, state, RecordRun(6))
        assert state.striker == A
        state, facts = play(engine, state, RecordRun(4))
        assert any(f.kind == FactKind.BATTER_RETIRED and f.player_id == A for f in facts)
        assert state.striker is None
        assert A in state.retired

        state, _ = play(engine, state, SelectBatter(3, CreaseEnd.STRIKER), RecordRun(0))
        assert state.striker == 3
        assert state.tally.batter_runs[A] == 10

    def test_retired_batter_return_follows_profile(self):
        engine = ScoringEngine(RuleProfile(name="Strict", retired_can_return=False))
        state = start(engine)
        state, _ = play(engine, state, RetireBatter(A), SelectBatter(3, CreaseEnd.STRIKER), RecordRun(0))
        with pytest.raises(InvalidSelection):
            engine.apply(state, SelectBatter(A, CreaseEnd.NON_STRIKER))

    def test_retired_batter_may_return(self, engine):
        state = start(engine)
        state, _ = play(engine, state, RetireBatter(B), SelectBatter(3, CreaseEnd.NON_STRIKER), RecordWicket(DismissalKind.BOWLED))
        state, _ = play(engine, state, SelectBatter(B, CreaseEnd.STRIKER))
        assert state.striker == B
        assert B not in state.retired


class TestLifecycle:
    def test_commands_rejected_in_wrong_phase(self, engine):
        state = engine.new_match(1, HOME, AWAY)
        with pytest.raises(IllegalTransition):
            engine.apply(state, RecordRun(1))
        with pytest.raises(IllegalTransition):
            engine.apply(state, SelectOpeners(A, B))

    def test_toss_decides_batting_side(self, engine):
        state = engine.new_match(1, HOME, AWAY)
        state = engine.apply(state, CompleteToss(HOME, TossDecision.BOWL)).state
        assert state.batting_team_id == AWAY
        assert state.bowling_team_id == HOME
        assert state.phase == MatchPhase.AWAITING_OPENERS

    def test_toss_winner_must_play(self, engine):
        state = engine.new_match(1, HOME, AWAY)
        with pytest.raises(InvalidSelection):
            engine.apply(state, CompleteToss(999, TossDecision.BAT))

    def test_chase_completes_match(self, engine):
        state = start(engine)
        state, _ = play(engine, state, RecordRun(4), EndInnings())
        assert state.target == 5
        assert state.batting_team_id == HOME

        state, _ = play(engine, state, SelectOpeners(X, Y), SelectBowler(A))
        assert state.innings == 2
        assert state.batting_team_id == AWAY

        transition = engine.apply(state, RecordRun(6))
        assert transition.has(FactKind.TARGET_REACHED)
        assert transition.has(FactKind.INNINGS_COMPLETE)

        state, facts = play(engine, transition.state, EndInnings())
        assert state.phase == MatchPhase.COMPLETED
        assert state.result.winner_id == AWAY
        assert state.result.summary == "Won by 10 wickets"
        assert FactKind.MATCH_COMPLETE in kinds(facts)

    def test_defending_side_wins_by_runs(self, engine):
        state = start(engine)
        state, _ = play(engine, state, RecordRun(6), RecordRun(4), EndInnings(),
                        SelectOpeners(X, Y), SelectBowler(A), RecordRun(2), EndInnings())
        assert state.result.winner_id == HOME
        assert state.result.margin == "8 runs"

    def test_tie(self, engine):
        state = start(engine)
        state, _ = play(engine, state, RecordRun(3), EndInnings(),
                        SelectOpeners(X, Y), SelectBowler(A), RecordRun(3), EndInnings())
        assert state.result.winner_id is None
        assert state.result.summary == "Match tied"

    def test_revised_target_shortens_chase(self, engine):
        state = start(engine)
        state, _ = play(engine, state, *[RecordRun(1)] * 5, EndInnings())
        state, facts = play(engine, state, ReviseTarget(revised_overs=10))
        expected = dls.revised_target(5, 5 / 6, 20, 10, 0)
        assert state.target == expected.target
        assert state.revised_overs == 10
        assert FactKind.TARGET_REVISED in kinds(facts)

        state, _ = play(engine, state, SelectOpeners(X, Y))
        assert engine.profile_for(state).total_overs == 10

    def test_abandon(self, engine):
        state = start(engine)
        state, facts = play(engine, state, RecordRun(1), Abandon())
        assert state.phase == MatchPhase.ABANDONED
        with pytest.raises(IllegalTransition):
            engine.apply(state, RecordRun(1))

    def test_state_is_never_mutated(self, engine):
        state = start(engine)
        version = state.version
        engine.apply(state, RecordRun(1))
        assert state.version == version
        assert state.deliveries == ()


class TestRebuild:
    def test_rebuild_matches_live_state(self, engine):
        state = start(engine)
        script = [RecordRun(1), RecordExtra(ExtraKind.NO_BALL), RecordRun(0), RecordRun(2), RecordRun(0),
                  RecordRun(0), RecordRun(3)]
        for command in script:
            state = engine.apply(state, command).state
            rebuilt = engine.rebuild_state(1, HOME, AWAY, toss=state.toss, deliveries=state.deliveries)
            assert rebuilt.tally == state.tally
            assert (rebuilt.striker, rebuilt.non_striker, rebuilt.bowler) == (state.striker, state.non_striker, state.bowler)
            assert rebuilt.free_hit == state.free_hit
            assert rebuilt.needs_new_bowler == state.needs_new_bowler
            assert rebuilt.last_over_bowler == state.last_over_bowler
            assert rebuilt.phase == MatchPhase.IN_PLAY

    def test_rebuild_second_innings_sets_target(self, engine):
        state = start(engine)
        state, _ = play(engine, state, RecordRun(4), EndInnings(), SelectOpeners(X, Y), SelectBowler(A), RecordRun(1))
        rebuilt = engine.rebuild_state(1, HOME, AWAY, toss=state.toss, deliveries=state.deliveries)
        assert rebuilt.innings == 2
        assert rebuilt.target == 5
        assert rebuilt.tally.runs == 1

    def test_rebuild_without_deliveries(self, engine):
        state = start(engine)
        rebuilt = engine.rebuild_state(1, HOME, AWAY, toss=state.toss, deliveries=[])
        assert rebuilt.phase == MatchPhase.AWAITING_OPENERS
        assert engine.rebuild_state(1, HOME, AWAY, toss=None, deliveries=[]).phase == MatchPhase.AWAITING_TOSS
