"""
Tests for roster-aware batter and bowler selection checks.
"""
from app.engine.rules import ICC_T20, RuleProfile, DismissalKind
from app.engine.scoring import (
    ScoringEngine, TossDecision, CompleteToss, SelectOpeners, SelectBowler, RecordRun, RecordWicket, RetireBatter,
)
from app.validators.selection_validator import SelectionValidator

BATTING = [1, 2, 3, 4, 5]
FIELDING = [21, 22, 23]


def in_play(profile: RuleProfile = ICC_T20):
    engine = ScoringEngine(profile)
    state = engine.new_match(1, 100, 200)
    for command in (CompleteToss(100, TossDecision.BAT), SelectOpeners(1, 2), SelectBowler(21)):
        state = engine.apply(state, command).state
    return engine, state


class TestBowlerValidation:
    def test_valid_bowler(self):
        _, state = in_play()
        result = SelectionValidator.validate_bowler(state, ICC_T20, 22, FIELDING)
        assert result["valid"]
        assert result["overs_bowled"] == 0

    def test_bowler_from_batting_side(self):
        _, state = in_play()
        result = SelectionValidator.validate_bowler(state, ICC_T20, 3, FIELDING)
        assert not result["valid"]
        assert "Bowler is not in the fielding team" in result["errors"]

    def test_consecutive_overs(self):
        engine, state = in_play()
        for _ in range(6):
            state = engine.apply(state, RecordRun(0)).state
        result = SelectionValidator.validate_bowler(state, ICC_T20, 21, FIELDING)
        assert not result["valid"]
        assert result["overs_bowled"] == 1

    def test_mid_over_change_allows_previous_bowler(self):
        """An injured bowler's over may be finished by the bowler of the last over"""
        engine, state = in_play()
        for _ in range(6):
            state = engine.apply(state, RecordRun(0)).state
        state = engine.apply(state, SelectBowler(22)).state
        state = engine.apply(state, RecordRun(0)).state
        assert SelectionValidator.validate_bowler(state, ICC_T20, 21, FIELDING)["valid"]

    def test_over_limit(self):
        profile = RuleProfile(name="Short spells", max_overs_per_bowler=1)
        engine, state = in_play(profile)
        for _ in range(6):
            state = engine.apply(state, RecordRun(0)).state
        state = engine.apply(state, SelectBowler(22)).state
        result = SelectionValidator.validate_bowler(state, profile, 21, FIELDING)
        assert not result["valid"]
        assert any("Max 1 overs" in e for e in result["errors"])


class TestBatterValidation:
    def test_valid_batter(self):
        _, state = in_play()
        assert SelectionValidator.validate_batter(state, ICC_T20, 3, BATTING)["valid"]

    def test_batter_already_in(self):
        _, state = in_play()
        result = SelectionValidator.validate_batter(state, ICC_T20, 2, BATTING)
        assert "Batter is already at the crease" in result["errors"]

    def test_dismissed_batter(self):
        engine, state = in_play()
        state = engine.apply(state, RecordWicket(DismissalKind.BOWLED)).state
        result = SelectionValidator.validate_batter(state, ICC_T20, 1, BATTING)
        assert not result["valid"]
        assert "Batter has already been dismissed this innings" in result["errors"]

    def test_outsider(self):
        _, state = in_play()
        result = SelectionValidator.validate_batter(state, ICC_T20, 21, BATTING)
        assert "Batter is not in the batting team" in result["errors"]

    def test_retired_batter(self):
        strict = RuleProfile(name="Strict", retired_can_return=False)
        engine, state = in_play(strict)
        state = engine.apply(state, RetireBatter(1)).state
        assert not SelectionValidator.validate_batter(state, strict, 1, BATTING)["valid"]
        assert SelectionValidator.validate_batter(state, ICC_T20, 1, BATTING)["valid"]
