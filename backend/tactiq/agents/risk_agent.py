from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import numpy as np

from tactiq.agents.base import (
    MISSING_LLM_REASON,
    AgentRequest,
    CapabilityAgent,
    is_str_list,
    llm_error_reason,
)
from tactiq.models.context import Intensity, MatchPhase, RecoveryQuality, RiskLevel, TeamMode
from tactiq.models.results import AgentCode, AgentRunResult
from tactiq.services.azure_openai import AzureChatClient, LLMError
from tactiq.services.injury_map import build_continue_risk_summary, map_likely_injuries

logger = logging.getLogger(__name__)

SEVERITY_ORDER = ("LOW", "MEDIUM", "HIGH", "CRITICAL")
RISK_WEIGHT = {RiskLevel.HIGH: 3, RiskLevel.MEDIUM: 2}
LOW_RESILIENCE_SLEEP_HOURS = 6.5
LOW_RESILIENCE_RECOVERY_SCORE = 35.0

HEADLINES = {
    "CRITICAL": "CRITICAL RISK DETECTED",
    "HIGH": "HIGH RISK DETECTED",
    "MEDIUM": "ELEVATED RISK DETECTED",
    "LOW": "LOW RISK CONDITION",
}
RECOMMENDATIONS = {
    "CRITICAL": "Immediately stop current spell and substitute; protect player workload.",
    "HIGH": "Immediately rest or rotate bowler; avoid high-pressure overs.",
    "MEDIUM": "Manage spell length and monitor next over closely.",
    "LOW": "Continue with current plan and monitor trend.",
}
BATTING_RECOMMENDATIONS = {
    "CRITICAL": "Retire the batter now and send in a fresh partner; protect player workload.",
    "HIGH": "Cut hard running between the wickets and reassess fitness at the next break.",
    "MEDIUM": "Manage running load and check on the batter between overs.",
    "LOW": "Continue with current plan and monitor trend.",
}

SYSTEM_PROMPT = (
    "You are the Injury Risk Analyst for an elite cricket tactical AI system. Return only valid JSON. "
    "Required keys: risk_level (low|medium|high), primary_risk_type, why (list of strings), "
    "recommended_action, confidence (0..1). Use cricket-specific terminology and do not repeat raw telemetry numbers."
)
STRICT_PROMPT = (
    "Return ONLY valid JSON with keys risk_level, primary_risk_type, why, recommended_action, confidence. No markdown."
)


def _severity_for_score(score: int) -> str:
    if score >= 9:
        return "CRITICAL"
    if score >= 7:
        return "HIGH"
    if score >= 4:
        return "MEDIUM"
    return "LOW"


def _recommendation(request: AgentRequest, severity: str) -> str:
    if request.snapshot.mode == TeamMode.BATTING:
        return BATTING_RECOMMENDATIONS[severity]
    return RECOMMENDATIONS[severity]


def escalate(severity: str) -> str:
    index = SEVERITY_ORDER.index(severity)
    return SEVERITY_ORDER[min(index + 1, len(SEVERITY_ORDER) - 1)]


def analyze_risk(request: AgentRequest) -> Dict[str, Any]:
    """Points-based injury risk score (1-10) and severity band for the active player."""
    match = request.snapshot.match
    player = request.player
    signals: List[str] = []

    fatigue = float(player.live.fatigue_index or 0.0) if player else 0.0
    injury = player.live.injury_risk if player else RiskLevel.UNKNOWN
    no_ball = player.live.no_ball_risk if player else RiskLevel.UNKNOWN
    consecutive = (player.live.consecutive_overs or 0) if player else 0
    overs = float(player.live.overs_bowled or 0.0) if player else 0.0
    recovery = (player.live.heart_rate_recovery if player else None) or RecoveryQuality.MODERATE

    points = int(round(fatigue)) + RISK_WEIGHT.get(injury, 1) + RISK_WEIGHT.get(no_ball, 1)
    if RiskLevel.HIGH in (injury, no_ball):
        signals.append("CONTROL_RISK")

    if consecutive >= 4:
        points += 3
        signals.append("CONSEC_OVERS")
    elif consecutive >= 3:
        points += 2
        signals.append("CONSEC_OVERS")

    if overs >= 12:
        points += 2
        signals.append("SPELL_LOAD")
    elif overs >= 8:
        points += 1
        signals.append("SPELL_LOAD")

    if match.phase == MatchPhase.DEATH:
        points += 2
        signals.append("DEATH_PHASE_PRESSURE")
    elif match.phase == MatchPhase.POWERPLAY:
        points += 1
        signals.append("POWERPLAY_INTENSITY")

    if match.intensity == Intensity.HIGH:
        points += 2
        signals.append("INTENSITY_HIGH")
    elif match.intensity == Intensity.MEDIUM:
        points += 1
        signals.append("INTENSITY_MEDIUM")

    if match.hot_conditions:
        points += 1
        signals.append("HEAT_STRESS")

    if recovery == RecoveryQuality.POOR:
        points += 2
        signals.append("RECOVERY_POOR")
    elif recovery == RecoveryQuality.MODERATE:
        points += 1
        signals.append("RECOVERY_MODERATE")

    remaining = match.balls_remaining
    if match.target_runs is not None and remaining:
        runs_needed = max(0, match.target_runs - match.score_runs)
        required_rate = runs_needed / remaining * 6
        if required_rate >= 10 or (runs_needed <= 20 and remaining <= 24):
            points += 2
            signals.append("CHASE_PRESSURE")
        elif required_rate >= 8 or runs_needed <= 30:
            points += 1
            signals.append("CHASE_PRESSURE")

    score = int(np.clip(points, 1, 10))
    load = "running load" if request.snapshot.mode == TeamMode.BATTING else "spell load"
    severity = _severity_for_score(score)
    return {
        "severity": severity,
        "risk_score": float(score),
        "headline": HEADLINES[severity],
        "explanation": (
            f"Risk score {score}/10 combines fatigue {fatigue:.1f}, injury/no-ball control risk, "
            f"{load}, and match context pressure."
        ),
        "recommendation": _recommendation(request, severity),
        "signals": signals,
    }


def _enrich(request: AgentRequest, base: Dict[str, Any]) -> Dict[str, Any]:
    player = request.player
    enriched = dict(base)
    if player is None:
        enriched.update(likely_injuries=[], continue_risk_summary=build_continue_risk_summary(request.player_name, []))
        return enriched

    severity = enriched["severity"]
    score = enriched["risk_score"]
    baseline, live = player.baseline, player.live
    low_resilience = (baseline.sleep_hours is not None and baseline.sleep_hours < LOW_RESILIENCE_SLEEP_HOURS) or (
        baseline.recovery_score is not None and baseline.recovery_score < LOW_RESILIENCE_RECOVERY_SCORE
    )
    if low_resilience:
        severity = escalate(severity)
        score += 0.4
        enriched["signals"] = enriched["signals"] + ["LOW_RESILIENCE_BASELINE"]
    if RiskLevel.HIGH in (live.injury_risk, live.no_ball_risk) and severity == "LOW":
        severity = "MEDIUM"
        score += 0.3
    if live.injury_risk == RiskLevel.HIGH and severity == "MEDIUM":
        severity = "HIGH"
        score += 0.3

    injuries = map_likely_injuries(player, request.snapshot.match)
    enriched.update(
        severity=severity,
        risk_score=round(float(np.clip(score, 0, 10)), 2),
        headline=HEADLINES[severity],
        recommendation=_recommendation(request, severity),
        likely_injuries=injuries,
        continue_risk_summary=build_continue_risk_summary(player.name, injuries),
    )
    return enriched


def _valid_llm_output(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and isinstance(value.get("risk_level"), str)
        and isinstance(value.get("primary_risk_type"), str)
        and is_str_list(value.get("why"))
        and isinstance(value.get("recommended_action"), str)
        and isinstance(value.get("confidence"), (int, float, str))
    )


def _llm_severity(level: str, rules_severity: str) -> str:
    token = level.strip().lower()
    if token == "high":
        # The model has no CRITICAL band; keep the rule engine's when it is stricter.
        return "CRITICAL" if rules_severity == "CRITICAL" else "HIGH"
    if token in ("medium", "med"):
        return "MEDIUM"
    if token == "low":
        return "LOW"
    return rules_severity


class RiskAgent(CapabilityAgent):
    """Injury-risk assessment for the active player."""

    code = AgentCode.RISK

    def build_fallback(self, request: AgentRequest, reason: str) -> AgentRunResult:
        output = _enrich(request, analyze_risk(request))
        output["status"] = "fallback"
        return AgentRunResult(output=output, model="rule:fallback", fallbacks_used=[reason])

    def validate_output(self, output: Any) -> bool:
        return (
            isinstance(output, dict)
            and output.get("severity") in SEVERITY_ORDER
            and isinstance(output.get("recommendation"), str)
            and isinstance(output.get("explanation", ""), str)
            and is_str_list(output.get("signals", []))
            and is_str_list(output.get("likely_injuries", []))
        )

    def _messages(self, request: AgentRequest, baseline: Dict[str, Any]) -> List[Dict[str, str]]:
        player = request.player
        payload = {
            "task": "Assess workload-driven cricket injury risk with coach-friendly interpretation.",
            "match": request.snapshot.match.model_dump(mode="json"),
            "player": player.model_dump(mode="json") if player else None,
            "deterministic_baseline": {
                key: baseline[key] for key in ("severity", "risk_score", "headline", "recommendation", "signals")
            },
        }
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": json.dumps(payload)},
        ]

    async def run(self, request: AgentRequest) -> AgentRunResult:
        if self._llm is None:
            return self.build_fallback(request, MISSING_LLM_REASON)

        rules = _enrich(request, analyze_risk(request))
        route = self._llm.route("risk", complexity="medium")
        try:
            completion = await self._llm.complete_json(
                route,
                self._messages(request, rules),
                STRICT_PROMPT,
                _valid_llm_output,
                max_tokens=max(320, route.max_tokens),
            )
        except LLMError as exc:
            logger.warning("Risk LLM unavailable for %s: %s", request.request_id, exc)
            return self.build_fallback(request, llm_error_reason(exc))

        parsed = completion.parsed
        severity = _llm_severity(parsed["risk_level"], rules["severity"])
        output = dict(rules)
        output.update(
            status="ok",
            severity=severity,
            headline=HEADLINES[severity],
            explanation=f"{parsed['primary_risk_type']}: " + " ".join(parsed["why"][:2]),
            recommendation=parsed["recommended_action"] or _recommendation(request, severity),
            primary_risk_type=parsed["primary_risk_type"],
        )
        return AgentRunResult(output=output, model=completion.deployment_used, fallbacks_used=completion.fallbacks_used)


def build_agent(llm: Optional[AzureChatClient] = None) -> RiskAgent:
    return RiskAgent(llm)
