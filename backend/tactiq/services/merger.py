"""Combines domain outputs into one recommendation and enforces the team mode.

Safety comes first: a HIGH or CRITICAL risk assessment replaces the tactical
action. The mode guard runs after every merge so a batting side is never told
to change bowlers and a bowling side is never handed a next batter.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Sequence

from tactiq.models.context import OrchestrationSnapshot, TeamMode
from tactiq.models.results import (
    AgentCode,
    CombinedDecision,
    FinalRecommendation,
    IfContinues,
    Intent,
    MergeOutcome,
    OrchestrationRun,
    PlayerPick,
    RouterDecision,
    SafetyCandidate,
    SafetyRanking,
)
from tactiq.services.injury_map import build_continue_risk_summary, map_likely_injuries

MAX_ADJUSTMENTS = 6
SEVERE_RISK = ("HIGH", "CRITICAL")

SEVERITY_CONFIDENCE = {"CRITICAL": 0.52, "HIGH": 0.58, "MEDIUM": 0.68}
DEFAULT_SEVERITY_CONFIDENCE = 0.78
HIGH_CONFIDENCE = 0.75
MEDIUM_CONFIDENCE = 0.55

BOWLER_SWAP_PATTERN = re.compile(
    r"\b(bowlers?|bowling change|spells?|over quota|rotate (?:the )?bowl\w*)\b",
    re.IGNORECASE,
)
NEXT_BATTER_PATTERN = re.compile(
    r"\b(batters?|batsm[ae]n|batting order|batting option|strike rotation|send \w+ (?:in )?to bat)\b",
    re.IGNORECASE,
)
GUARDED_SUBSTITUTION_REASON = "Replacement chosen from eligible players for the current mode."
BATTING_MODE_ACTION = "Adjust batting plan and protect wicket value"
BOWLING_MODE_ACTION = "Continue with monitored plan"
BATTING_SAFETY_ACTION = "Protect the batter now: cut hard running and reassess fitness at the next break"
GUARDED_SAFETY_RATIONALE = "Injury risk for the active player is elevated."

INTENT_TITLES = {
    Intent.SAFETY_ALERT: "Safety alert",
    Intent.SUBSTITUTION: "Substitution required",
    Intent.BOWLING_NEXT: "Next over plan",
    Intent.BATTING_NEXT: "Batting plan",
    Intent.BOTH_NEXT: "Full match analysis",
    Intent.GENERAL: "Workload check",
}


def severity_confidence(severity: Optional[str]) -> float:
    return SEVERITY_CONFIDENCE.get(str(severity or "").upper(), DEFAULT_SEVERITY_CONFIDENCE)


def numeric_confidence(value: Any) -> Optional[float]:
    """Confidence as a float in 0-1, or ``None`` when the value is not a number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return min(1.0, max(0.0, float(value)))


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item) for item in value if isinstance(item, str)]


def _substitution_advice(value: Any) -> Optional[Dict[str, str]]:
    if not isinstance(value, dict):
        return None
    return {key: str(value.get(key) or "") for key in ("out", "in", "reason")}


def confidence_band(value: float) -> str:
    if value >= HIGH_CONFIDENCE:
        return "HIGH"
    if value >= MEDIUM_CONFIDENCE:
        return "MEDIUM"
    return "LOW"


def _role_word(mode: TeamMode) -> str:
    return "batter" if mode == TeamMode.BATTING else "bowler"


def _dedupe(items: Sequence[str]) -> List[str]:
    seen = set()
    unique: List[str] = []
    for item in items:
        text = str(item or "").strip()
        if not text or text.lower() in seen:
            continue
        seen.add(text.lower())
        unique.append(text)
    return unique


def _off_mode_pattern(mode: TeamMode) -> re.Pattern:
    return BOWLER_SWAP_PATTERN if mode == TeamMode.BATTING else NEXT_BATTER_PATTERN


def _synthesize(run: OrchestrationRun) -> CombinedDecision:
    fatigue_severity = run.fatigue.severity
    risk_severity = run.risk.severity
    if risk_severity in SEVERE_RISK:
        action = "Protect workload and rotate immediately"
    elif fatigue_severity == "HIGH":
        action = "Reduce spell intensity and monitor closely"
    else:
        action = "Continue with monitored plan"

    outputs = [result.output for result in (run.fatigue, run.risk) if result.produced_output]
    headlines = [str(output.get("headline", "")) for output in outputs]
    adjustments = [str(output.get("recommendation", "")) for output in outputs]
    return CombinedDecision(
        immediate_action=action,
        rationale=" | ".join(h for h in headlines if h) or "Derived from executed agents.",
        suggested_adjustments=_dedupe(adjustments)[:MAX_ADJUSTMENTS],
        confidence=max(severity_confidence(fatigue_severity), severity_confidence(risk_severity)),
        source="synthesized",
    )


def _combine(run: OrchestrationRun) -> CombinedDecision:
    tactical = run.tactical.output if run.tactical.produced_output else None
    risk = run.risk.output if run.risk.produced_output else None

    if risk is not None and run.risk.severity in SEVERE_RISK:
        tactical_adjustments = _str_list((tactical or {}).get("suggested_adjustments"))
        return CombinedDecision(
            immediate_action=str(risk.get("recommendation", "")),
            rationale=str(risk.get("explanation") or risk.get("headline", "")),
            suggested_adjustments=_dedupe([str(risk.get("recommendation", ""))] + tactical_adjustments)[:MAX_ADJUSTMENTS],
            confidence=severity_confidence(run.risk.severity),
            source="risk-override",
            substitution=_substitution_advice((tactical or {}).get("substitution_advice")),
        )

    if tactical is not None:
        confidence = numeric_confidence(tactical.get("confidence"))
        return CombinedDecision(
            immediate_action=str(tactical.get("immediate_action") or BOWLING_MODE_ACTION),
            rationale=str(tactical.get("rationale") or ""),
            suggested_adjustments=_dedupe(_str_list(tactical.get("suggested_adjustments")))[:MAX_ADJUSTMENTS],
            confidence=confidence if confidence is not None else DEFAULT_SEVERITY_CONFIDENCE,
            source="tactical",
            substitution=_substitution_advice(tactical.get("substitution_advice")),
        )

    return _synthesize(run)


def _find_eligible(token: str, candidates: Sequence[SafetyCandidate]) -> Optional[SafetyCandidate]:
    needle = token.strip().lower()
    if not needle:
        return None
    for candidate in candidates:
        if needle in (candidate.player_id.lower(), candidate.name.lower()):
            return candidate
    return None


def enforce_mode(decision: CombinedDecision, mode: TeamMode, ranking: SafetyRanking) -> Optional[SafetyCandidate]:
    """Rewrite ``decision`` in place so it only references the active mode.

    Returns the eligible replacement the decision now names, if any.
    """
    pattern = _off_mode_pattern(mode)
    safety_override = decision.source == "risk-override"
    if pattern.search(decision.immediate_action):
        if mode == TeamMode.BATTING:
            decision.immediate_action = BATTING_SAFETY_ACTION if safety_override else BATTING_MODE_ACTION
        else:
            decision.immediate_action = BOWLING_MODE_ACTION
    decision.rationale = " ".join(
        sentence for sentence in re.split(r"(?<=[.!?])\s+", decision.rationale) if not pattern.search(sentence)
    ).strip()
    if safety_override and not decision.rationale:
        decision.rationale = GUARDED_SAFETY_RATIONALE
    decision.suggested_adjustments = [item for item in decision.suggested_adjustments if not pattern.search(item)]

    eligible = ranking.candidates_for(mode)
    substitution = decision.substitution
    if not substitution:
        return None

    reason = str(substitution.get("reason", "")).strip()
    if pattern.search(reason):
        reason = GUARDED_SUBSTITUTION_REASON

    named = _find_eligible(str(substitution.get("in", "")), eligible)
    if named is not None:
        decision.substitution = {"out": str(substitution.get("out", "")), "in": named.name, "reason": reason}
        return named

    if eligible:
        replacement = eligible[0]
        decision.substitution = {
            "out": str(substitution.get("out", "")),
            "in": replacement.name,
            "reason": f"{reason} Mode guard selected an eligible replacement.".strip(),
        }
        return replacement

    role = _role_word(mode)
    decision.substitution = None
    decision.rationale = f"{decision.rationale} Mode guard: No eligible {role} available for current mode.".strip()
    decision.suggested_adjustments = (
        decision.suggested_adjustments[: MAX_ADJUSTMENTS - 1] + ["No eligible replacement available for current mode."]
    )
    return None


def _pick(candidate: Optional[SafetyCandidate], role: str) -> PlayerPick:
    if candidate is None:
        return PlayerPick.none(
            name=f"No eligible {role} available in roster",
            reason=f"No {role}-capable player other than the active player is available.",
        )
    return PlayerPick(player_id=candidate.player_id, name=candidate.name, reason=candidate.reason)


def _next_picks(mode: TeamMode, ranking: SafetyRanking, replacement: Optional[SafetyCandidate]) -> Dict[str, PlayerPick]:
    if mode == TeamMode.BATTING:
        return {
            "bowler": PlayerPick.none(
                name="Not applicable while batting",
                reason="Bowling changes are not available while the team is batting.",
            ),
            "batter": _pick(replacement or ranking.next_safe_batter, "batter"),
        }
    return {
        "bowler": _pick(replacement or ranking.next_safe_bowler, "bowler"),
        "batter": PlayerPick.none(
            name="Not applicable while bowling",
            reason="Batting order changes are not available while the team is bowling.",
        ),
    }


def _if_continues(snapshot: OrchestrationSnapshot, run: OrchestrationRun) -> IfContinues:
    player = snapshot.active_player()
    if player is None:
        return IfContinues(
            player_id="UNKNOWN",
            name="Current player",
            risk_summary=build_continue_risk_summary("the current player", []),
        )
    risk_output: Dict[str, Any] = run.risk.output if run.risk.produced_output else {}
    injuries = risk_output.get("likely_injuries")
    if not isinstance(injuries, list):
        injuries = map_likely_injuries(player, snapshot.match)
    return IfContinues(
        player_id=player.player_id,
        name=player.name,
        risk_summary=build_continue_risk_summary(player.name, injuries),
        likely_injuries=tuple(injuries),
    )


def merge(
    snapshot: OrchestrationSnapshot,
    decision: RouterDecision,
    run: OrchestrationRun,
    ranking: SafetyRanking,
) -> MergeOutcome:
    mode = snapshot.mode
    combined = _combine(run)
    replacement = enforce_mode(combined, mode, ranking)
    picks = _next_picks(mode, ranking, replacement)

    player = snapshot.active_player()
    name = player.name if player is not None else "Current player"
    statement = combined.immediate_action.rstrip(".")
    if combined.substitution:
        statement = f"{statement}: bring in {combined.substitution['in']} for {combined.substitution['out']}"
    if combined.rationale:
        statement = f"{statement}. {combined.rationale}"

    recommendation = FinalRecommendation(
        title=f"{INTENT_TITLES[decision.intent]}: {name}",
        statement=statement.strip(),
        next_safe_bowler=picks["bowler"],
        next_safe_batter=picks["batter"],
        confidence=confidence_band(combined.confidence),
        if_continues=_if_continues(snapshot, run),
    )
    return MergeOutcome(combined_decision=combined, final_recommendation=recommendation)


def executed_agents(run: OrchestrationRun) -> List[AgentCode]:
    return [result.agent for result in run.all() if result.produced_output]
