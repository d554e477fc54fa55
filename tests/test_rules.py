"""
Tests for rule profiles: extra tariffs by occurrence, legality and presets.
"""
import pytest

from app.engine.errors import InvalidRuleProfile
from app.engine.rules import (
    RuleProfile, ExtraTariff, ExtraKind, DismissalKind,
    ICC_T20, ICC_ODI, ICC_TEST, get_preset,
)


def _escalating_wides() -> tuple:
    """1, 2, 3, 4, 5, 6 runs for successive wides; the 6th onwards is legal"""
    return tuple(ExtraTariff(runs=n, legal=(n == 6)) for n in range(1, 7))


class TestTariffLookup:
    def test_default_tariff_is_one_run_illegal(self):
        """ICC defaults: every wide and no-ball is one run and not part of the over"""
        for occurrence in range(1, 10):
            assert ICC_T20.runs_for(ExtraKind.WIDE, occurrence) == 1
            assert ICC_T20.is_legal(ExtraKind.NO_BALL, occurrence) is False

    def test_occurrence_selects_bucket(self):
        profile = RuleProfile(name="Club", wide_tariffs=_escalating_wides())
        assert profile.runs_for(ExtraKind.WIDE, 1) == 1
        assert profile.runs_for(ExtraKind.WIDE, 3) == 3
        assert profile.is_legal(ExtraKind.WIDE, 5) is False

    def test_sixth_bucket_covers_later_occurrences(self):
        """Occurrences past the table reuse the 6th-or-later entry"""
        profile = RuleProfile(name="Club", wide_tariffs=_escalating_wides())
        assert profile.runs_for(ExtraKind.WIDE, 6) == 6
        assert profile.runs_for(ExtraKind.WIDE, 40) == 6
        assert profile.is_legal(ExtraKind.WIDE, 40) is True

    def test_byes_are_always_legal_without_tariff(self):
        for extra in (ExtraKind.BYE, ExtraKind.LEG_BYE, ExtraKind.NONE):
            assert ICC_T20.is_legal(extra, 1) is True
            assert ICC_T20.runs_for(extra, 1) == 0

    def test_accepts_string_extra(self):
        assert ICC_T20.runs_for("wide", 1) == 1


class TestProfileRules:
    def test_free_hit_triggers(self):
        assert ICC_T20.grants_free_hit(ExtraKind.NO_BALL)
        assert not ICC_T20.grants_free_hit(ExtraKind.WIDE)
        assert not ICC_TEST.grants_free_hit(ExtraKind.NO_BALL)
        wide_free_hit = RuleProfile(name="Club", free_hit_on_wide=True)
        assert wide_free_hit.grants_free_hit(ExtraKind.WIDE)

    def test_all_out_wickets(self):
        assert ICC_T20.all_out_wickets == 10
        assert RuleProfile(name="Last man", last_man_can_play=True).all_out_wickets == 11
        assert RuleProfile(name="Eight a side", players_per_side=8).all_out_wickets == 7

    def test_unlimited_overs(self):
        assert ICC_TEST.max_legal_balls is None
        assert ICC_ODI.max_legal_balls == 300

    def test_powerplay(self):
        assert ICC_T20.is_powerplay(1)
        assert ICC_T20.is_powerplay(6)
        assert not ICC_T20.is_powerplay(7)
        assert not ICC_TEST.is_powerplay(1)

    def test_with_overs_keeps_other_rules(self):
        shortened = ICC_ODI.with_overs(30)
        assert shortened.total_overs == 30
        assert shortened.max_overs_per_bowler == ICC_ODI.max_overs_per_bowler
        assert ICC_ODI.total_overs == 50


class TestValidation:
    def test_balls_per_over_range(self):
        with pytest.raises(InvalidRuleProfile):
            RuleProfile(name="Bad", balls_per_over=3)
        with pytest.raises(InvalidRuleProfile):
            RuleProfile(name="Bad", balls_per_over=9)
        assert RuleProfile(name="Eight ball", balls_per_over=8).balls_per_over == 8

    def test_tariff_table_must_have_six_buckets(self):
        with pytest.raises(InvalidRuleProfile):
            RuleProfile(name="Bad", wide_tariffs=(ExtraTariff(),) * 5)

    def test_negative_values_rejected(self):
        with pytest.raises(InvalidRuleProfile):
            RuleProfile(name="Bad", total_overs=-1)
        with pytest.raises(ValueError):
            RuleProfile(name="Bad", no_ball_tariffs=(ExtraTariff(runs=-1),) * 6)

    def test_unknown_kinds_rejected(self):
        with pytest.raises(ValueError):
            ExtraKind.parse("beamer")
        with pytest.raises(ValueError):
            DismissalKind.parse("handled_ball")
        assert ExtraKind.parse("") == ExtraKind.NONE


class TestSerialisation:
    def test_flat_settings_round_trip(self):
        profile = RuleProfile(
            name="Sunday League",
            total_overs=35,
            wide_tariffs=_escalating_wides(),
            free_hit_on_wide=True,
            retire_at_score=30,
            max_overs_per_bowler=7,
        )
        settings = profile.to_settings()
        assert settings["wide_2nd_runs"] == 2
        assert settings["wide_6th_plus_legal"] is True
        assert settings["free_hit_on_noball"] is True
        assert RuleProfile.from_json(profile.to_json()) == profile

    def test_missing_keys_use_defaults(self):
        profile = RuleProfile.from_settings({"name": "Minimal", "total_overs": 10})
        assert profile.total_overs == 10
        assert profile.runs_for(ExtraKind.NO_BALL, 1) == 1
        assert profile.free_hit_on_no_ball is True


class TestDismissalKinds:
    def test_bowler_credit(self):
        assert DismissalKind.CAUGHT.credits_bowler
        assert DismissalKind.STUMPED.credits_bowler
        assert not DismissalKind.RUN_OUT.credits_bowler
        assert not DismissalKind.RETIRED_OUT.credits_bowler

    def test_free_hit_allows_only_run_out_and_obstruction(self):
        allowed = {k for k in DismissalKind if k.allowed_on_free_hit}
        assert allowed == {DismissalKind.RUN_OUT, DismissalKind.OBSTRUCTING_FIELD}


class TestPresets:
    def test_get_preset(self):
        assert get_preset("T20") is ICC_T20
        assert get_preset("odi").total_overs == 50

    def test_unknown_preset(self):
        with pytest.raises(KeyError):
            get_preset("hundred")
