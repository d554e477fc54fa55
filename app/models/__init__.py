from app.models.player import Player, PlayerRole
from app.models.team import Team
from app.models.match import Match, MatchStatus, DeliveryRecord, MatchSnapshotRecord
from app.models.stats import TournamentPlayerStats, CareerPlayerStats, StatsSyncRecord

__all__ = [
    "Player",
    "PlayerRole",
    "Team",
    "Match",
    "MatchStatus",
    "DeliveryRecord",
    "MatchSnapshotRecord",
    "TournamentPlayerStats",
    "CareerPlayerStats",
    "StatsSyncRecord",
]
