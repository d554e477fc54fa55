"""
Rule profiles for live scoring.
A RuleProfile is the immutable description of a match format: over length,
wide/no-ball tariffs by occurrence, free-hit triggers and bowling limits.
"""
import enum
import json
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

from app.engine.errors import InvalidRuleProfile


class ExtraKind(enum.Enum):
    NONE = "none"
    WIDE = "wide"
    NO_BALL = "no_ball"
    BYE = "bye"
    LEG_BYE = "leg_bye"

    @classmethod
    def parse(cls, value) -> "ExtraKind":
        """Accept enum members, values, and the empty string used for plain deliveries"""
        if isinstance(value, cls):
            return value
        if value in (None, ""):
            return cls.NONE
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown extra type: {value!r}")

    @property
    def has_tariff(self) -> bool:
        return self in (ExtraKind.WIDE, ExtraKind.NO_BALL)


class DismissalKind(enum.Enum):
    BOWLED = "bowled"
    CAUGHT = "caught"
    CAUGHT_BEHIND = "caught_behind"
    CAUGHT_AND_BOWLED = "caught_and_bowled"
    LBW = "lbw"
    STUMPED = "stumped"
    RUN_OUT = "run_out"
    HIT_WICKET = "hit_wicket"
    OBSTRUCTING_FIELD = "obstructing_field"
    TIMED_OUT = "timed_out"
    RETIRED_OUT = "retired_out"
    RETIRED_HURT = "retired_hurt"

    @classmethod
    def parse(cls, value) -> "DismissalKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown dismissal type: {value!r}")

    @property
    def credits_bowler(self) -> bool:
        return self in _BOWLER_CREDITED

    @property
    def allowed_on_free_hit(self) -> bool:
        return self in (DismissalKind.RUN_OUT, DismissalKind.OBSTRUCTING_FIELD)

    @property
    def can_dismiss_non_striker(self) -> bool:
        return self in (DismissalKind.RUN_OUT, DismissalKind.OBSTRUCTING_FIELD)

    @property
    def counts_as_wicket(self) -> bool:
        # Retired hurt is not a dismissal for the batting side's tally
        return self != DismissalKind.RETIRED_HURT


_BOWLER_CREDITED = frozenset({
    DismissalKind.BOWLED,
    DismissalKind.CAUGHT,
    DismissalKind.CAUGHT_BEHIND,
    DismissalKind.CAUGHT_AND_BOWLED,
    DismissalKind.LBW,
    DismissalKind.STUMPED,
    DismissalKind.HIT_WICKET,
})

# Occurrence buckets: 1st, 2nd, 3rd, 4th, 5th, 6th-or-later
OCCURRENCE_BUCKETS = 6
_BUCKET_KEYS = ("1st", "2nd", "3rd", "4th", "5th", "6th_plus")
_SETTINGS_PREFIX = {ExtraKind.WIDE: "wide", ExtraKind.NO_BALL: "noball"}


@dataclass(frozen=True)
class ExtraTariff:
    """Runs awarded and legality for one occurrence bucket of a wide/no-ball"""
    runs: int = 1
    legal: bool = False


def _default_tariffs() -> Tuple[ExtraTariff, ...]:
    return tuple(ExtraTariff() for _ in range(OCCURRENCE_BUCKETS))


@dataclass(frozen=True)
class RuleProfile:
    name: str = "ICC T20"
    total_overs: int = 20  # 0 = unlimited
    balls_per_over: int = 6
    wide_tariffs: Tuple[ExtraTariff, ...] = field(default_factory=_default_tariffs)
    no_ball_tariffs: Tuple[ExtraTariff, ...] = field(default_factory=_default_tariffs)
    free_hit_on_no_ball: bool = True
    free_hit_on_wide: bool = False
    retire_at_score: int = 0  # 0 = disabled
    retired_can_return: bool = True
    last_man_can_play: bool = False
    powerplay_overs: int = 6
    max_overs_per_bowler: int = 4  # 0 = unlimited
    players_per_side: int = 11

    def __post_init__(self):
        if not 4 <= self.balls_per_over <= 8:
            raise InvalidRuleProfile(f"balls_per_over must be between 4 and 8, got {self.balls_per_over}")
        for attr in ("total_overs", "retire_at_score", "powerplay_overs", "max_overs_per_bowler"):
            if getattr(self, attr) < 0:
                raise InvalidRuleProfile(f"{attr} cannot be negative")
        if self.players_per_side < 2:
            raise InvalidRuleProfile("players_per_side must be at least 2")
        for attr in ("wide_tariffs", "no_ball_tariffs"):
            tariffs = getattr(self, attr)
            if len(tariffs) != OCCURRENCE_BUCKETS:
                raise InvalidRuleProfile(f"{attr} needs {OCCURRENCE_BUCKETS} buckets, got {len(tariffs)}")
            if any(t.runs < 0 for t in tariffs):
                raise InvalidRuleProfile(f"{attr} cannot award negative runs")
            # Lists from callers are frozen to keep the profile hashable
            object.__setattr__(self, attr, tuple(tariffs))

    def _tariff(self, extra: ExtraKind, occurrence: int) -> Optional[ExtraTariff]:
        if extra == ExtraKind.WIDE:
            table = self.wide_tariffs
        elif extra == ExtraKind.NO_BALL:
            table = self.no_ball_tariffs
        else:
            return None
        bucket = min(max(occurrence, 1), OCCURRENCE_BUCKETS)
        return table[bucket - 1]

    def runs_for(self, extra: ExtraKind, occurrence: int) -> int:
        """
        Tariff runs for a wide/no-ball. `occurrence` counts this delivery, so
        the first wide of an innings is occurrence 1. Byes carry no tariff.
        """
        tariff = self._tariff(ExtraKind.parse(extra), occurrence)
        return tariff.runs if tariff else 0

    def is_legal(self, extra: ExtraKind, occurrence: int) -> bool:
        """Whether the delivery counts toward completing the over"""
        tariff = self._tariff(ExtraKind.parse(extra), occurrence)
        return tariff.legal if tariff else True

    def grants_free_hit(self, extra: ExtraKind) -> bool:
        if extra == ExtraKind.NO_BALL:
            return self.free_hit_on_no_ball
        if extra == ExtraKind.WIDE:
            return self.free_hit_on_wide
        return False

    @property
    def max_legal_balls(self) -> Optional[int]:
        if self.total_overs == 0:
            return None
        return self.total_overs * self.balls_per_over

    @property
    def all_out_wickets(self) -> int:
        """Wickets that end an innings"""
        if self.last_man_can_play:
            return self.players_per_side
        return self.players_per_side - 1

    def is_powerplay(self, over_number: int) -> bool:
        """over_number is 1-based"""
        return 0 < over_number <= self.powerplay_overs

    def with_overs(self, total_overs: int) -> "RuleProfile":
        """Copy of this profile for a shortened innings"""
        return replace(self, total_overs=total_overs)

    # Serialization - flat settings keys as stored on match records

    def to_settings(self) -> dict:
        settings = {
            "name": self.name,
            "total_overs": self.total_overs,
            "balls_per_over": self.balls_per_over,
            "free_hit_on_noball": self.free_hit_on_no_ball,
            "free_hit_on_wide": self.free_hit_on_wide,
            "retire_at_score": self.retire_at_score,
            "retired_can_return": self.retired_can_return,
            "last_man_can_play": self.last_man_can_play,
            "powerplay_overs": self.powerplay_overs,
            "max_overs_per_bowler": self.max_overs_per_bowler,
            "players_per_side": self.players_per_side,
        }
        for extra, tariffs in ((ExtraKind.WIDE, self.wide_tariffs), (ExtraKind.NO_BALL, self.no_ball_tariffs)):
            prefix = _SETTINGS_PREFIX[extra]
            for key, tariff in zip(_BUCKET_KEYS, tariffs):
                settings[f"{prefix}_{key}_runs"] = tariff.runs
                settings[f"{prefix}_{key}_legal"] = tariff.legal
        return settings

    @classmethod
    def from_settings(cls, d: dict) -> "RuleProfile":
        def tariffs(extra: ExtraKind) -> Tuple[ExtraTariff, ...]:
            prefix = _SETTINGS_PREFIX[extra]
            return tuple(
                ExtraTariff(
                    runs=int(d.get(f"{prefix}_{key}_runs", 1)),
                    legal=bool(d.get(f"{prefix}_{key}_legal", False)),
                )
                for key in _BUCKET_KEYS
            )

        return cls(
            name=d.get("name") or d.get("profileName") or "Custom",
            total_overs=int(d.get("total_overs", 20)),
            balls_per_over=int(d.get("balls_per_over", 6)),
            wide_tariffs=tariffs(ExtraKind.WIDE),
            no_ball_tariffs=tariffs(ExtraKind.NO_BALL),
            free_hit_on_no_ball=bool(d.get("free_hit_on_noball", True)),
            free_hit_on_wide=bool(d.get("free_hit_on_wide", False)),
            retire_at_score=int(d.get("retire_at_score", 0)),
            retired_can_return=bool(d.get("retired_can_return", True)),
            last_man_can_play=bool(d.get("last_man_can_play", False)),
            powerplay_overs=int(d.get("powerplay_overs", 6)),
            max_overs_per_bowler=int(d.get("max_overs_per_bowler", 4)),
            players_per_side=int(d.get("players_per_side", 11)),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_settings())

    @classmethod
    def from_json(cls, raw: str) -> "RuleProfile":
        return cls.from_settings(json.loads(raw))


ICC_T20 = RuleProfile(
    name="ICC T20",
    total_overs=20,
    powerplay_overs=6,
    max_overs_per_bowler=4,
)

ICC_ODI = RuleProfile(
    name="ICC ODI (50 Overs)",
    total_overs=50,
    powerplay_overs=10,
    max_overs_per_bowler=10,
)

ICC_TEST = RuleProfile(
    name="ICC Test",
    total_overs=0,
    free_hit_on_no_ball=False,
    powerplay_overs=0,
    max_overs_per_bowler=0,
)

PRESETS = {
    "t20": ICC_T20,
    "odi": ICC_ODI,
    "test": ICC_TEST,
}


def get_preset(profile_id: str) -> RuleProfile:
    try:
        return PRESETS[profile_id.lower()]
    except KeyError:
        raise KeyError(f"Unknown rule profile: {profile_id}")
