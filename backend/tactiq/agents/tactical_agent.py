from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from tactiq.agents.base import (
    MISSING_LLM_REASON,
    AgentRequest,
    CapabilityAgent,
    is_number,
    is_str_list,
    llm_error_reason,
)
from tactiq.models.context import RecoveryQuality, RiskLevel, TeamMode
from tactiq.models.results import AgentCode, AgentRunResult, SafetyCandidate
from tactiq.services.azure_openai import AzureChatClient, LLMError
from tactiq.services.router import quota_complete

logger = logging.getLogger(__name__)

SUBSTITUTE_FATIGUE_INDEX = 7.0
SEVERE_RISK = ("HIGH", "CRITICAL")
SLEEP_CONSTRAINT_HOURS = 7.0

BATTING_ACTION = "Adjust batting plan and protect wicket value"
SUBSTITUTE_ACTION = "Substitute now and rotate workload"
CONTINUE_ACTION = "Continue with monitored plan"

BATTING_ADJUSTMENTS = [
    "Adjust batting tempo and strike rotation for the next over.",
    "Avoid high-risk boundary attempts until pressure stabilizes.",
    "If a wicket falls next, send the safest available batting option from the bench.",
]
SUBSTITUTE_ADJUSTMENTS = [
    "Substitute the current bowler before the next over.",
    "Use a fresher bowler to protect execution under pressure.",
    "Reduce high-risk line-length plans for the next spell.",
    "Reassess fatigue and risk after one over.",
]
CONTINUE_ADJUSTMENTS = [
    "Continue with current player for one over.",
    "Monitor fatigue trend and recovery markers ball-by-ball.",
    "Keep a bench substitute warm for rapid swap if risk rises.",
]

SYSTEM_PROMPT = (
    "You are the Tactical Agent for a live cricket coaching console. Return ONLY valid JSON, no markdown. "
    'Schema: {"immediate_action":"string","rationale":"string","suggested_adjustments":["string"],'
    '"substitution_advice":{"out":"string","in":"string","reason":"string"} or null,"confidence":0..1}. '
    "Only propose a replacement from eligible_candidates and never suggest a bowling change while the team is batting."
)
STRICT_PROMPT = (
    "Return ONLY valid JSON with keys immediate_action, rationale, suggested_adjustments, substitution_advice, "
    "confidence. No markdown."
)


def _valid_substitution(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, dict) and all(isinstance(value.get(key), str) for key in ("out", "in", "reason"))


def _valid_llm_output(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and isinstance(value.get("immediate_action"), str)
        and isinstance(value.get("rationale"), str)
        and is_str_list(value.get("suggested_adjustments"))
        and _valid_substitution(value.get("substitution_advice"))
        and is_number(value.get("confidence"))
    )


class TacticalAgent(CapabilityAgent):
    """Next-action recommendation that consumes the fatigue and risk outputs."""

    code = AgentCode.TACTICAL

    def _eligible(self, request: AgentRequest) -> Tuple[SafetyCandidate, ...]:
        if request.ranking is None:
            return ()
        return request.ranking.candidates_for(request.snapshot.mode)

    def _derive_baseline_directive(self, request: AgentRequest) -> str:
        player = request.player
        if player is None or player.baseline.is_empty:
            return "Baseline not available."
        sleep = player.baseline.sleep_hours
        if sleep is not None and sleep < SLEEP_CONSTRAINT_HOURS:
            return "Baseline sleep is constrained; limit consecutive high-load overs."
        return "Baseline supports a normal workload."

    def _derive_should_substitute(self, request: AgentRequest, has_replacement: bool) -> bool:
        player = request.player
        if not has_replacement or player is None:
            return False
        live = player.live
        risk_severity = str((request.risk_output or {}).get("severity", "")).upper()
        return (
            live.injury_risk == RiskLevel.HIGH
            or risk_severity in SEVERE_RISK
            or float(live.fatigue_index or 0.0) >= SUBSTITUTE_FATIGUE_INDEX
            or live.heart_rate_recovery == RecoveryQuality.POOR
            or (request.snapshot.mode == TeamMode.BOWLING and quota_complete(request.snapshot, player))
        )

    def build_fallback(self, request: AgentRequest, reason: str) -> AgentRunResult:
        player = request.player
        mode = request.snapshot.mode
        eligible = self._eligible(request)
        replacement = eligible[0] if eligible else None
        should_substitute = self._derive_should_substitute(request, replacement is not None)

        fatigue = float(player.live.fatigue_index or 0.0) if player else 0.0
        injury = player.live.injury_risk.value if player else RiskLevel.UNKNOWN.value
        no_ball = player.live.no_ball_risk.value if player else RiskLevel.UNKNOWN.value
        directive = self._derive_baseline_directive(request)

        if mode == TeamMode.BATTING:
            action = BATTING_ACTION
            adjustments = list(BATTING_ADJUSTMENTS)
        elif should_substitute:
            action = SUBSTITUTE_ACTION
            adjustments = list(SUBSTITUTE_ADJUSTMENTS)
        else:
            action = CONTINUE_ACTION
            adjustments = list(CONTINUE_ADJUSTMENTS)

        if should_substitute:
            rationale = (
                f"Heuristic fallback: elevated risk (injury {injury}, fatigue {fatigue:.1f}, no-ball {no_ball}). {directive}"
            )
        else:
            rationale = f"Heuristic fallback: current risk remains manageable (injury {injury}, fatigue {fatigue:.1f}). {directive}"

        substitution: Optional[Dict[str, str]] = None
        if should_substitute and replacement is not None:
            substitution = {
                "out": player.name if player else "Current player",
                "in": replacement.name,
                "reason": "Workload protection recommended due to elevated fatigue and risk.",
            }

        output = {
            "status": "fallback",
            "immediate_action": action,
            "rationale": rationale,
            "suggested_adjustments": adjustments,
            "substitution_advice": substitution,
            "confidence": 0.72 if should_substitute else 0.67,
            "key_signals_used": ["fatigue_index", "injury_risk", "no_ball_risk", "heart_rate_recovery", "phase", reason],
        }
        return AgentRunResult(output=output, model="fallback-heuristic", fallbacks_used=[reason])

    def validate_output(self, output: Any) -> bool:
        return (
            isinstance(output, dict)
            and isinstance(output.get("immediate_action"), str)
            and isinstance(output.get("rationale"), str)
            and is_str_list(output.get("suggested_adjustments"))
            and _valid_substitution(output.get("substitution_advice"))
            and is_number(output.get("confidence"))
        )

    def _messages(self, request: AgentRequest) -> List[Dict[str, str]]:
        player = request.player
        payload = {
            "task": "Recommend the next tactical action for the active player.",
            "team_mode": request.snapshot.mode.value,
            "focus_role": request.snapshot.focus_role,
            "match": request.snapshot.match.model_dump(mode="json"),
            "player": player.model_dump(mode="json") if player else None,
            "fatigue": request.fatigue_output,
            "risk": request.risk_output,
            "eligible_candidates": [
                {"player_id": c.player_id, "name": c.name, "role": c.role, "score": c.score}
                for c in self._eligible(request)
            ],
        }
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": json.dumps(payload)},
        ]

    async def run(self, request: AgentRequest) -> AgentRunResult:
        if self._llm is None:
            return self.build_fallback(request, MISSING_LLM_REASON)

        route = self._llm.route("tactical", complexity="high")
        try:
            completion = await self._llm.complete_json(route, self._messages(request), STRICT_PROMPT, _valid_llm_output)
        except LLMError as exc:
            logger.warning("Tactical LLM unavailable for %s: %s", request.request_id, exc)
            return self.build_fallback(request, llm_error_reason(exc))

        parsed = completion.parsed
        output = {
            "status": "ok",
            "immediate_action": parsed["immediate_action"],
            "rationale": parsed["rationale"],
            "suggested_adjustments": parsed["suggested_adjustments"][:6],
            "substitution_advice": parsed.get("substitution_advice"),
            "confidence": float(np.clip(parsed["confidence"], 0, 1)),
            "key_signals_used": ["fatigue", "risk", "eligible_candidates"],
        }
        return AgentRunResult(output=output, model=completion.deployment_used, fallbacks_used=completion.fallbacks_used)


def build_agent(llm: Optional[AzureChatClient] = None) -> TacticalAgent:
    return TacticalAgent(llm)
