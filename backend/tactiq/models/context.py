"""Immutable match snapshot types.

Everything the engine reads for one request is parsed into these models at the
HTTP edge. Optional telemetry stays ``None`` when it was not captured, which the
scoring code treats differently from a measured zero.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional, Tuple

from pydantic import BaseModel, Field, field_validator


BOWLING_ROLE_HINTS = ("BOWLER", "SPINNER", "SPIN", "PACER", "PACE", "SEAM", "FAST", "ALL-ROUNDER", "AR")
BATTING_ROLE_HINTS = ("BATTER", "BATSMAN", "BAT", "ALL-ROUNDER", "AR")

FORMAT_MAX_OVERS = {"T20": 4, "ODI": 10}
FORMAT_INNINGS_BALLS = {"T20": 120, "ODI": 300}


class TeamMode(str, Enum):
    BATTING = "BATTING"
    BOWLING = "BOWLING"


class AnalysisMode(str, Enum):
    AUTO = "auto"
    FULL = "full"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    UNKNOWN = "UNKNOWN"


class MatchPhase(str, Enum):
    POWERPLAY = "powerplay"
    MIDDLE = "middle"
    DEATH = "death"


class Intensity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RecoveryQuality(str, Enum):
    GOOD = "good"
    MODERATE = "moderate"
    POOR = "poor"


def normalize_risk(value: Any) -> RiskLevel:
    token = str(value or "").strip().upper()
    if token == "LOW":
        return RiskLevel.LOW
    if token in ("HIGH", "CRITICAL"):
        return RiskLevel.HIGH
    if token in ("MED", "MEDIUM"):
        return RiskLevel.MEDIUM
    return RiskLevel.UNKNOWN


def _matches_hints(role: str, hints: Tuple[str, ...]) -> bool:
    token = (role or "").upper()
    return any(hint in token for hint in hints)


def role_can_bowl(role: str) -> bool:
    return _matches_hints(role, BOWLING_ROLE_HINTS)


def role_can_bat(role: str) -> bool:
    return _matches_hints(role, BATTING_ROLE_HINTS)


class MatchState(BaseModel):
    format: str = "T20"
    phase: MatchPhase = MatchPhase.MIDDLE
    mode: TeamMode = TeamMode.BOWLING
    intensity: Intensity = Intensity.MEDIUM
    hot_conditions: bool = False
    score_runs: int = Field(0, ge=0)
    wickets: int = Field(0, ge=0, le=10)
    overs: int = Field(0, ge=0)
    balls: int = Field(0, ge=0, le=5)
    target_runs: Optional[int] = Field(None, ge=0)
    required_run_rate: Optional[float] = Field(None, ge=0)
    current_run_rate: Optional[float] = Field(None, ge=0)

    class Config:
        frozen = True

    @field_validator("format", mode="before")
    @classmethod
    def _upper_format(cls, value: Any) -> str:
        return str(value or "T20").strip().upper()

    @field_validator("mode", mode="before")
    @classmethod
    def _upper_mode(cls, value: Any) -> Any:
        token = str(value or "").strip().upper()
        if token in ("BAT", "BATTING"):
            return TeamMode.BATTING
        if token in ("BOWL", "BOWLING"):
            return TeamMode.BOWLING
        return value

    @field_validator("phase", "intensity", mode="before")
    @classmethod
    def _lower_tokens(cls, value: Any) -> Any:
        return str(value).strip().lower() if isinstance(value, str) else value

    @property
    def max_overs(self) -> Optional[int]:
        return FORMAT_MAX_OVERS.get(self.format)

    @property
    def balls_bowled(self) -> int:
        return self.overs * 6 + self.balls

    @property
    def balls_remaining(self) -> Optional[int]:
        total = FORMAT_INNINGS_BALLS.get(self.format)
        if total is None:
            return None
        return max(0, total - self.balls_bowled)

    @property
    def wickets_in_hand(self) -> int:
        return max(0, 10 - self.wickets)

    @property
    def effective_current_run_rate(self) -> Optional[float]:
        if self.current_run_rate is not None:
            return self.current_run_rate
        if self.balls_bowled <= 0:
            return None
        return self.score_runs * 6 / self.balls_bowled

    @property
    def effective_required_run_rate(self) -> Optional[float]:
        if self.required_run_rate is not None:
            return self.required_run_rate
        remaining = self.balls_remaining
        if self.target_runs is None or not remaining:
            return None
        return max(0, self.target_runs - self.score_runs) * 6 / remaining

    @property
    def run_rate_gap(self) -> float:
        required = self.effective_required_run_rate
        current = self.effective_current_run_rate
        if required is None or current is None:
            return 0.0
        return max(0.0, required - current)


class Baseline(BaseModel):
    sleep_hours: Optional[float] = Field(None, ge=0, le=24)
    recovery_score: Optional[float] = Field(None, ge=0)
    workload_7d: Optional[float] = Field(None, ge=0)
    workload_28d: Optional[float] = Field(None, ge=0)
    fatigue_limit: Optional[float] = Field(None, ge=0, le=10)
    control: Optional[float] = None
    speed: Optional[float] = None
    power: Optional[float] = None
    injury_history_flags: Tuple[str, ...] = ()

    class Config:
        frozen = True

    @property
    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (self.sleep_hours, self.recovery_score, self.workload_7d, self.workload_28d, self.fatigue_limit)
        )


class Live(BaseModel):
    fatigue_index: Optional[float] = Field(None, ge=0, le=10)
    strain_index: Optional[float] = Field(None, ge=0)
    injury_risk: RiskLevel = RiskLevel.UNKNOWN
    no_ball_risk: RiskLevel = RiskLevel.UNKNOWN
    heart_rate_recovery: Optional[RecoveryQuality] = None
    overs_bowled: Optional[float] = Field(None, ge=0)
    consecutive_overs: Optional[int] = Field(None, ge=0)
    quota_complete: Optional[bool] = None

    class Config:
        frozen = True

    @field_validator("injury_risk", "no_ball_risk", mode="before")
    @classmethod
    def _normalize_risk(cls, value: Any) -> RiskLevel:
        return normalize_risk(value)

    @field_validator("heart_rate_recovery", mode="before")
    @classmethod
    def _normalize_recovery(cls, value: Any) -> Optional[RecoveryQuality]:
        token = str(value or "").strip().lower()
        if token in ("good", "excellent"):
            return RecoveryQuality.GOOD
        if token in ("moderate", "ok", "average"):
            return RecoveryQuality.MODERATE
        if token in ("poor", "very poor"):
            return RecoveryQuality.POOR
        return None

    @property
    def is_empty(self) -> bool:
        return (
            self.fatigue_index is None
            and self.strain_index is None
            and self.overs_bowled is None
            and self.injury_risk == RiskLevel.UNKNOWN
            and self.no_ball_risk == RiskLevel.UNKNOWN
        )


class RosterPlayerContext(BaseModel):
    player_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    role: str = ""
    baseline: Baseline = Field(default_factory=Baseline)
    live: Live = Field(default_factory=Live)

    class Config:
        frozen = True

    @property
    def can_bowl(self) -> bool:
        return role_can_bowl(self.role)

    @property
    def can_bat(self) -> bool:
        return role_can_bat(self.role)


class OrchestrationSnapshot(BaseModel):
    match: MatchState = Field(default_factory=MatchState)
    roster: Tuple[RosterPlayerContext, ...] = ()
    active_player_id: Optional[str] = None
    focus_role: Optional[str] = None

    class Config:
        frozen = True

    @property
    def mode(self) -> TeamMode:
        return self.match.mode

    def active_player(self) -> Optional[RosterPlayerContext]:
        if not self.active_player_id:
            return None
        for player in self.roster:
            if player.player_id == self.active_player_id:
                return player
        return None

    @property
    def is_degenerate(self) -> bool:
        return self.active_player() is None
