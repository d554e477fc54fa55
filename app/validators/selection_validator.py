from typing import Iterable

from app.engine.rules import RuleProfile
from app.engine.scoring import MatchState


class SelectionValidator:
    @staticmethod
    def validate_bowler(state: MatchState, profile: RuleProfile, player_id: int, bowling_roster: Iterable[int]) -> dict:
        """
        Validate a bowler selection.

        Rules:
        1. Bowler must belong to the fielding side
        2. No bowler bowls two overs in a row
        3. Bowler must be under the per-bowler over limit (0 = unlimited)
        """
        errors = []

        if player_id not in set(bowling_roster):
            errors.append("Bowler is not in the fielding team")

        starting_over = state.tally.legal_balls % profile.balls_per_over == 0
        if starting_over and player_id == state.last_over_bowler:
            errors.append("The same bowler cannot bowl consecutive overs")

        overs = state.tally.bowler_overs(player_id, profile.balls_per_over)
        if profile.max_overs_per_bowler and overs >= profile.max_overs_per_bowler:
            errors.append(f"Max {profile.max_overs_per_bowler} overs per bowler, already bowled {overs}")

        return {
            "valid": len(errors) == 0,
            "errors": errors,
            "overs_bowled": overs,
        }

    @staticmethod
    def validate_batter(state: MatchState, profile: RuleProfile, player_id: int, batting_roster: Iterable[int]) -> dict:
        """
        Validate an incoming batter.

        Rules:
        1. Batter must belong to the batting side
        2. Batter must not have been dismissed this innings
        3. Batter must not already be at the crease
        4. Retired batters may only return if the profile allows it
        """
        errors = []

        if player_id not in set(batting_roster):
            errors.append("Batter is not in the batting team")
        if player_id in state.tally.dismissed:
            errors.append("Batter has already been dismissed this innings")
        if player_id in (state.striker, state.non_striker):
            errors.append("Batter is already at the crease")
        if player_id in state.retired and not profile.retired_can_return:
            errors.append("Retired batters cannot return under this profile")

        return {
            "valid": len(errors) == 0,
            "errors": errors,
        }
