"""
Scoring engine exceptions.
"""


class ScoringError(Exception):
    """Base class for all scoring engine errors"""


class InvalidState(ScoringError):
    """A precondition for the command does not hold (missing players, nothing to undo...)"""


class InvalidSelection(InvalidState):
    """A batter or bowler selection breaks the match rules"""


class IllegalTransition(ScoringError):
    """The command is not valid in the match's current phase"""

    def __init__(self, command: str, phase: str):
        self.command = command
        self.phase = phase
        super().__init__(f"{command} is not allowed while match is {phase}")


class PersistenceError(ScoringError):
    """A store write failed; the caller owns retry"""


class InvalidRuleProfile(ValueError):
    """Rule profile failed validation at construction"""
