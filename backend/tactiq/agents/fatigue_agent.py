from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from tactiq.agents.base import (
    MISSING_LLM_REASON,
    AgentRequest,
    CapabilityAgent,
    is_number,
    is_str_list,
    llm_error_reason,
)
from tactiq.models.context import RecoveryQuality, RiskLevel
from tactiq.models.results import AgentCode, AgentRunResult
from tactiq.services.azure_openai import AzureChatClient, LLMError
from tactiq.services.router import projected_next_over_fatigue

logger = logging.getLogger(__name__)

DEFAULT_FATIGUE_LIMIT = 6.0
SLEEP_CONSTRAINT_HOURS = 7.0
HIGH_FATIGUE_INDEX = 7.0
MODERATE_FATIGUE_INDEX = 4.0

HEADLINES = {
    "HIGH": "Fatigue limit reached",
    "MEDIUM": "Fatigue building",
    "LOW": "Fatigue under control",
}
ACTIONS = {
    "HIGH": "Rest the player after this over and rotate workload.",
    "MEDIUM": "Manage workload in the next over.",
    "LOW": "Continue current workload and monitor the trend.",
}

SYSTEM_PROMPT = (
    "You are the Fatigue Agent for a cricket tactical coaching system. Return ONLY valid JSON and no markdown. "
    'Schema: {"headline":"<=8 words","summary":"one sentence assessment","why":["max 3 short bullets"],'
    '"action":"one sentence","signals":["optional short strings"]}. '
    "Do not repeat the same sentence across fields. Use baseline sleep, recovery and fatigue limit when provided."
)
STRICT_PROMPT = (
    'Return ONLY valid JSON matching exactly: {"headline":"string","summary":"string","why":["string"],'
    '"action":"string","signals":["string"]}. No markdown.'
)


def _valid_llm_output(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and isinstance(value.get("headline"), str)
        and isinstance(value.get("summary"), str)
        and isinstance(value.get("action"), str)
        and is_str_list(value.get("why", []))
        and is_str_list(value.get("signals", []))
    )


class FatigueAgent(CapabilityAgent):
    """Workload and fatigue assessment for the active player."""

    code = AgentCode.FATIGUE

    def _derive_severity(self, request: AgentRequest) -> str:
        player = request.player
        if player is None:
            return "LOW"
        fatigue = float(player.live.fatigue_index or 0.0)
        injury = player.live.injury_risk
        if injury == RiskLevel.HIGH or fatigue >= HIGH_FATIGUE_INDEX:
            return "HIGH"
        if injury == RiskLevel.MEDIUM or fatigue >= MODERATE_FATIGUE_INDEX:
            return "MEDIUM"
        return "LOW"

    def _derive_signals(self, request: AgentRequest, projected: Optional[float]) -> List[str]:
        player = request.player
        signals: List[str] = []
        if player is None:
            return signals
        live, baseline = player.live, player.baseline
        fatigue = float(live.fatigue_index or 0.0)
        limit = baseline.fatigue_limit if baseline.fatigue_limit is not None else DEFAULT_FATIGUE_LIMIT
        if baseline.sleep_hours is not None and baseline.sleep_hours < SLEEP_CONSTRAINT_HOURS:
            signals.append("LOW_SLEEP")
        if (live.consecutive_overs or 0) >= 2:
            signals.append("CONSEC_OVERS")
        if live.fatigue_index is not None and fatigue >= limit:
            signals.append("NEARING_LIMIT")
        if fatigue >= HIGH_FATIGUE_INDEX:
            signals.append("HIGH_FATIGUE")
        if live.heart_rate_recovery == RecoveryQuality.POOR:
            signals.append("RECOVERY_POOR")
        if projected is not None:
            signals.append(f"projection:{projected:.1f}")
        return signals

    def _baseline_directive(self, request: AgentRequest) -> str:
        player = request.player
        if player is None or player.baseline.is_empty:
            return "Baseline not available; using live telemetry only."
        sleep = player.baseline.sleep_hours
        if sleep is not None and sleep < SLEEP_CONSTRAINT_HOURS:
            return f"Sleep of {sleep:.1f}h limits recovery, so keep the spell short."
        return "Baseline recovery supports the current workload plan."

    def _projection(self, request: AgentRequest) -> Optional[float]:
        player = request.player
        if player is None:
            return None
        return projected_next_over_fatigue(player, request.snapshot.match.intensity)

    def build_fallback(self, request: AgentRequest, reason: str) -> AgentRunResult:
        player = request.player
        severity = self._derive_severity(request)
        projected = self._projection(request)
        fatigue = float(player.live.fatigue_index or 0.0) if player else 0.0
        limit = DEFAULT_FATIGUE_LIMIT
        if player is not None and player.baseline.fatigue_limit is not None:
            limit = player.baseline.fatigue_limit
        recovery = player.live.heart_rate_recovery if player else None
        recovery_text = recovery.value if recovery else "unknown"
        directive = self._baseline_directive(request)
        projection_text = f"Next over: {projected:.1f}/10" if projected is not None else "Next over: unknown"

        output = {
            "status": "fallback",
            "severity": severity,
            "headline": HEADLINES[severity],
            "explanation": f"Fatigue {fatigue:.1f}/10 against a limit of {limit:.1f}/10 with {recovery_text} recovery.",
            "why": [
                f"Fatigue {fatigue:.1f}/10 versus limit {limit:.1f}/10.",
                f"Injury risk {player.live.injury_risk.value if player else 'UNKNOWN'}.",
                directive,
            ],
            "recommendation": f"{ACTIONS[severity]} {projection_text}",
            "projection": projected,
            "signals": self._derive_signals(request, projected),
        }
        return AgentRunResult(output=output, model="rule:fallback", fallbacks_used=[reason])

    def validate_output(self, output: Any) -> bool:
        return (
            isinstance(output, dict)
            and output.get("severity") in HEADLINES
            and isinstance(output.get("headline"), str)
            and isinstance(output.get("recommendation"), str)
            and is_str_list(output.get("signals", []))
            and (output.get("projection") is None or is_number(output.get("projection")))
        )

    def _messages(self, request: AgentRequest) -> List[Dict[str, str]]:
        player = request.player
        payload: Dict[str, Any] = {
            "task": "Analyze fatigue and workload risk.",
            "match": request.snapshot.match.model_dump(mode="json"),
            "player": player.model_dump(mode="json") if player else None,
            "projected_next_over": self._projection(request),
        }
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": json.dumps(payload)},
        ]

    async def run(self, request: AgentRequest) -> AgentRunResult:
        if self._llm is None:
            return self.build_fallback(request, MISSING_LLM_REASON)

        route = self._llm.route("fatigue", complexity="low")
        try:
            completion = await self._llm.complete_json(route, self._messages(request), STRICT_PROMPT, _valid_llm_output)
        except LLMError as exc:
            logger.warning("Fatigue LLM unavailable for %s: %s", request.request_id, exc)
            return self.build_fallback(request, llm_error_reason(exc))

        parsed = completion.parsed
        severity = self._derive_severity(request)
        projected = self._projection(request)
        projection_text = f"Next over: {projected:.1f}/10" if projected is not None else ""
        signals = self._derive_signals(request, projected)
        for signal in parsed.get("signals", []):
            if signal not in signals:
                signals.append(signal)

        output = {
            "status": "ok",
            "severity": severity,
            "headline": parsed["headline"] or HEADLINES[severity],
            "explanation": parsed["summary"],
            "why": parsed.get("why", [])[:3],
            "recommendation": f"{parsed['action']} {projection_text}".strip(),
            "projection": projected,
            "signals": signals[:8],
        }
        return AgentRunResult(output=output, model=completion.deployment_used, fallbacks_used=completion.fallbacks_used)


def build_agent(llm: Optional[AzureChatClient] = None) -> FatigueAgent:
    return FatigueAgent(llm)
