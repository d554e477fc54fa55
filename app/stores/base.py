"""
Persistence contracts used by the live scoring session.

The delivery log is the source of truth. The snapshot is a resumable cache
and is rebuilt from the log whenever the two disagree.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, List, FrozenSet, Dict

from app.engine.scoring import Delivery, MatchState, MatchPhase, TossResult
from app.engine.stats import BattingDelta, BowlingDelta, FieldingDelta, PlayerMatchStats


@dataclass(frozen=True)
class MatchSnapshot:
    match_id: int
    phase: MatchPhase
    innings: int
    rule_profile_json: str
    striker: Optional[int] = None
    non_striker: Optional[int] = None
    bowler: Optional[int] = None
    last_over_bowler: Optional[int] = None
    free_hit: bool = False
    needs_new_bowler: bool = False
    toss: Optional[TossResult] = None
    retired: FrozenSet[int] = field(default_factory=frozenset)
    target: Optional[int] = None
    revised_overs: Optional[int] = None
    delivery_count: int = 0

    @classmethod
    def from_state(cls, state: MatchState, rule_profile_json: str) -> "MatchSnapshot":
        return cls(
            match_id=state.match_id,
            phase=state.phase,
            innings=state.innings,
            rule_profile_json=rule_profile_json,
            striker=state.striker,
            non_striker=state.non_striker,
            bowler=state.bowler,
            last_over_bowler=state.last_over_bowler,
            free_hit=state.free_hit,
            needs_new_bowler=state.needs_new_bowler,
            toss=state.toss,
            retired=state.retired,
            target=state.target,
            revised_overs=state.revised_overs,
            delivery_count=len(state.deliveries),
        )


class DeliveryStore(ABC):
    """Append-only delivery log"""

    @abstractmethod
    def append(self, match_id: int, delivery: Delivery) -> Delivery:
        """Persist a delivery and return it with its assigned id"""

    @abstractmethod
    def list_by_match(self, match_id: int, innings: Optional[int] = None) -> List[Delivery]:
        """Deliveries in bowling order"""

    @abstractmethod
    def remove(self, delivery_id: int) -> None:
        """Remove exactly one delivery (undo)"""

    @abstractmethod
    def set_shot_zone(self, delivery_id: int, zone: Optional[str]) -> Delivery:
        """Attach the shot direction after the fact"""


class SnapshotStore(ABC):
    @abstractmethod
    def upsert(self, match_id: int, snapshot: MatchSnapshot) -> None:
        pass

    @abstractmethod
    def get(self, match_id: int) -> Optional[MatchSnapshot]:
        pass

    @abstractmethod
    def delete(self, match_id: int) -> None:
        pass


class RosterProvider(ABC):
    @abstractmethod
    def players_for(self, team_id: int) -> List[int]:
        """Player ids registered to the team"""


class StatsSink(ABC):
    key = "stats"

    def apply_match(self, match_id: int, aggregates: Dict[int, PlayerMatchStats]) -> bool:
        """
        Add every player's delta for one completed match. Returns False when
        the match was already merged. Sinks that can record the merge should
        do it in the same write so a retried completion is a no-op.
        """
        for player_id, stats in aggregates.items():
            self.apply_delta(player_id, stats.batting, stats.bowling, stats.fielding)
        return True

    @abstractmethod
    def apply_delta(
        self,
        player_id: int,
        batting: Optional[BattingDelta] = None,
        bowling: Optional[BowlingDelta] = None,
        fielding: Optional[FieldingDelta] = None,
    ) -> None:
        """Add a match delta onto the player's aggregate record"""
