from app.engine.scoring import ScoringEngine
from app.engine.stats import StatsAggregator
from app.engine.rules import RuleProfile, get_preset

__all__ = ["ScoringEngine", "StatsAggregator", "RuleProfile", "get_preset"]
