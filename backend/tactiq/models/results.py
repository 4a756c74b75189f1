from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from tactiq.models.context import TeamMode


NONE_PLAYER_ID = "NONE"


class Intent(str, Enum):
    SUBSTITUTION = "SUBSTITUTION"
    BOWLING_NEXT = "BOWLING_NEXT"
    BATTING_NEXT = "BATTING_NEXT"
    BOTH_NEXT = "BOTH_NEXT"
    SAFETY_ALERT = "SAFETY_ALERT"
    GENERAL = "GENERAL"


class AgentCode(str, Enum):
    FATIGUE = "FATIGUE"
    RISK = "RISK"
    TACTICAL = "TACTICAL"

    @property
    def domain(self) -> str:
        return self.value.lower()


class ResultStatus(str, Enum):
    OK = "ok"
    FALLBACK = "fallback"
    ERROR = "error"
    SKIPPED = "skipped"


def _plain(items: List[Tuple[str, Any]]) -> Dict[str, Any]:
    def convert(value: Any) -> Any:
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, (list, tuple)):
            return [convert(v) for v in value]
        if isinstance(value, dict):
            return {k: convert(v) for k, v in value.items()}
        return value

    return {key: convert(value) for key, value in items}


def to_plain_dict(obj: Any) -> Dict[str, Any]:
    """``asdict`` with enums flattened to their values for JSON responses."""
    return asdict(obj, dict_factory=_plain)


@dataclass(frozen=True)
class RouterDecision:
    intent: Intent
    agents_to_run: Tuple[AgentCode, ...]
    rules_fired: Tuple[str, ...]
    inputs_used: Dict[str, Any]
    reason: str

    def runs(self, agent: AgentCode) -> bool:
        return agent in self.agents_to_run


@dataclass(frozen=True)
class SafetyCandidate:
    player_id: str
    name: str
    role: str
    score: float
    reason: str


@dataclass(frozen=True)
class SafetyRanking:
    bowler_candidates: Tuple[SafetyCandidate, ...] = ()
    batter_candidates: Tuple[SafetyCandidate, ...] = ()
    bench_options: Tuple[SafetyCandidate, ...] = ()

    def candidates_for(self, mode: TeamMode) -> Tuple[SafetyCandidate, ...]:
        return self.batter_candidates if mode == TeamMode.BATTING else self.bowler_candidates

    @property
    def next_safe_bowler(self) -> Optional[SafetyCandidate]:
        return self.bowler_candidates[0] if self.bowler_candidates else None

    @property
    def next_safe_batter(self) -> Optional[SafetyCandidate]:
        return self.batter_candidates[0] if self.batter_candidates else None


@dataclass(frozen=True)
class TriggerScores:
    fatigue: int
    risk: int
    tactical: int

    def ordered(self) -> List[int]:
        return sorted((self.fatigue, self.risk, self.tactical), reverse=True)


@dataclass
class AgentRunResult:
    output: Dict[str, Any]
    model: str
    fallbacks_used: List[str] = field(default_factory=list)


@dataclass
class CapabilityResult:
    agent: AgentCode
    status: ResultStatus
    output: Optional[Dict[str, Any]] = None
    model_used: Optional[str] = None
    fallbacks_used: List[str] = field(default_factory=list)
    elapsed_ms: Optional[int] = None

    @classmethod
    def skipped(cls, agent: AgentCode) -> "CapabilityResult":
        return cls(agent=agent, status=ResultStatus.SKIPPED)

    @property
    def produced_output(self) -> bool:
        return bool(self.output) and self.status in (ResultStatus.OK, ResultStatus.FALLBACK)

    @property
    def severity(self) -> Optional[str]:
        if not self.produced_output:
            return None
        value = self.output.get("severity")
        return str(value).upper() if value else None


@dataclass(frozen=True)
class AgentError:
    domain: str
    message: str


@dataclass
class OrchestrationRun:
    fatigue: CapabilityResult
    risk: CapabilityResult
    tactical: CapabilityResult
    errors: List[AgentError] = field(default_factory=list)
    timings_ms: Dict[str, int] = field(default_factory=dict)

    def by_agent(self, agent: AgentCode) -> CapabilityResult:
        return {AgentCode.FATIGUE: self.fatigue, AgentCode.RISK: self.risk, AgentCode.TACTICAL: self.tactical}[agent]

    def all(self) -> List[CapabilityResult]:
        return [self.fatigue, self.risk, self.tactical]


@dataclass(frozen=True)
class PlayerPick:
    player_id: str
    name: str
    reason: str

    @classmethod
    def none(cls, name: str, reason: str) -> "PlayerPick":
        return cls(player_id=NONE_PLAYER_ID, name=name, reason=reason)

    @property
    def is_none(self) -> bool:
        return self.player_id == NONE_PLAYER_ID


@dataclass(frozen=True)
class IfContinues:
    player_id: str
    name: str
    risk_summary: str
    likely_injuries: Tuple[str, ...] = ()


@dataclass
class CombinedDecision:
    immediate_action: str
    rationale: str
    suggested_adjustments: List[str]
    confidence: float
    source: str
    substitution: Optional[Dict[str, str]] = None


@dataclass(frozen=True)
class FinalRecommendation:
    title: str
    statement: str
    next_safe_bowler: PlayerPick
    next_safe_batter: PlayerPick
    confidence: str
    if_continues: IfContinues


@dataclass
class MergeOutcome:
    combined_decision: CombinedDecision
    final_recommendation: FinalRecommendation


@dataclass
class OrchestrationResponse:
    request_id: str
    mode: str
    decision: RouterDecision
    triggers: TriggerScores
    safety_ranking: SafetyRanking
    results: OrchestrationRun
    combined_decision: CombinedDecision
    final_recommendation: FinalRecommendation
    context_summary: Dict[str, Any]
    meta: Dict[str, Any]

    @property
    def errors(self) -> List[AgentError]:
        return self.results.errors

    def to_dict(self) -> Dict[str, Any]:
        payload = to_plain_dict(self)
        payload["errors"] = payload["results"].pop("errors")
        return payload
