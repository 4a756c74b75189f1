"""Rule engine that picks the intent and the capability domains for a snapshot.

Rules are checked in a fixed order and every branch taken is appended to
``rules_fired`` so the decision can be audited from the response alone.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np

from tactiq.models.context import (
    AnalysisMode,
    Intensity,
    OrchestrationSnapshot,
    RiskLevel,
    RosterPlayerContext,
    TeamMode,
)
from tactiq.models.results import AgentCode, Intent, RouterDecision

FATIGUE_TRIGGER_INDEX = 6.0
STRAIN_TRIGGER_INDEX = 3.0
ELEVATED_RISK_LEVELS = (RiskLevel.MEDIUM, RiskLevel.HIGH)

INTENSITY_FATIGUE_DELTA = {Intensity.HIGH: 0.8, Intensity.MEDIUM: 0.5, Intensity.LOW: 0.25}
WELL_SLEPT_HOURS = 7.0
WELL_RECOVERED_SCORE = 45.0
RECOVERY_RELIEF = 0.2


@dataclass(frozen=True)
class RouterThresholds:
    fatigue_index: float = FATIGUE_TRIGGER_INDEX
    strain_index: float = STRAIN_TRIGGER_INDEX


DEFAULT_THRESHOLDS = RouterThresholds()


def projected_next_over_fatigue(player: RosterPlayerContext, intensity: Intensity) -> Optional[float]:
    fatigue = player.live.fatigue_index
    if fatigue is None:
        return None
    projected = float(fatigue) + INTENSITY_FATIGUE_DELTA[intensity]
    sleep = player.baseline.sleep_hours
    recovery = player.baseline.recovery_score
    if sleep is not None and sleep >= WELL_SLEPT_HOURS:
        projected -= RECOVERY_RELIEF
    if recovery is not None and recovery >= WELL_RECOVERED_SCORE:
        projected -= RECOVERY_RELIEF
    return round(float(np.clip(projected, 0, 10)), 1)


def quota_complete(snapshot: OrchestrationSnapshot, player: RosterPlayerContext) -> bool:
    if player.live.quota_complete is not None:
        return bool(player.live.quota_complete)
    max_overs = snapshot.match.max_overs
    overs = player.live.overs_bowled
    return max_overs is not None and overs is not None and overs >= max_overs


def _inputs_used(snapshot: OrchestrationSnapshot, player: Optional[RosterPlayerContext]) -> Dict[str, Any]:
    match = snapshot.match
    inputs: Dict[str, Any] = {
        "match": {
            "format": match.format,
            "phase": match.phase.value,
            "mode": match.mode.value,
            "intensity": match.intensity.value,
            "overs": match.overs,
            "balls": match.balls,
            "score_runs": match.score_runs,
            "wickets": match.wickets,
            "target_runs": match.target_runs,
        },
        "active_player_id": snapshot.active_player_id,
    }
    if player is not None:
        inputs["active"] = {
            "fatigue_index": player.live.fatigue_index,
            "strain_index": player.live.strain_index,
            "injury_risk": player.live.injury_risk.value,
            "no_ball_risk": player.live.no_ball_risk.value,
            "overs_bowled": player.live.overs_bowled,
            "fatigue_limit": player.baseline.fatigue_limit,
        }
    return inputs


def _degenerate(snapshot: OrchestrationSnapshot) -> RouterDecision:
    return RouterDecision(
        intent=Intent.GENERAL,
        agents_to_run=(AgentCode.TACTICAL,),
        rules_fired=("fallback:degenerate_snapshot",),
        inputs_used=_inputs_used(snapshot, None),
        reason="Active player could not be resolved from the roster; running tactical guidance only.",
    )


def decide(
    mode: AnalysisMode,
    snapshot: OrchestrationSnapshot,
    thresholds: RouterThresholds = DEFAULT_THRESHOLDS,
) -> RouterDecision:
    player = snapshot.active_player()
    if player is None:
        return _degenerate(snapshot)

    inputs = _inputs_used(snapshot, player)

    if mode == AnalysisMode.FULL:
        return RouterDecision(
            intent=Intent.BOTH_NEXT,
            agents_to_run=(AgentCode.FATIGUE, AgentCode.RISK, AgentCode.TACTICAL),
            rules_fired=("mode:full", "agents:all"),
            inputs_used=inputs,
            reason="Full analysis requested; running fatigue, risk and tactical together.",
        )

    rules: List[str] = []
    reasons: List[str] = []
    live = player.live

    projected = projected_next_over_fatigue(player, snapshot.match.intensity)
    inputs["active"]["projected_next_over_fatigue"] = projected
    limit = player.baseline.fatigue_limit

    fatigue_triggered = False
    if live.fatigue_index is not None and live.fatigue_index >= thresholds.fatigue_index:
        fatigue_triggered = True
        rules.append(f"fatigue:index>={thresholds.fatigue_index:g}")
    if projected is not None and limit is not None and projected >= limit:
        fatigue_triggered = True
        rules.append("fatigue:projected>=limit")
    if live.strain_index is not None and live.strain_index >= thresholds.strain_index:
        fatigue_triggered = True
        rules.append(f"fatigue:strain>={thresholds.strain_index:g}")

    risk_triggered = False
    if live.injury_risk in ELEVATED_RISK_LEVELS:
        risk_triggered = True
        rules.append(f"risk:injury={live.injury_risk.value}")
    if live.no_ball_risk in ELEVATED_RISK_LEVELS:
        risk_triggered = True
        rules.append(f"risk:no_ball={live.no_ball_risk.value}")

    if snapshot.mode == TeamMode.BATTING:
        intent = Intent.BATTING_NEXT
        rules.append("intent:batting_mode")
        reasons.append(f"{player.name}'s side is batting; planning the next batting decision.")
    elif risk_triggered:
        intent = Intent.SAFETY_ALERT
        rules.append("intent:risk_triggered")
        reasons.append(
            f"Injury risk {live.injury_risk.value} / no-ball risk {live.no_ball_risk.value} for {player.name}."
        )
    elif quota_complete(snapshot, player):
        intent = Intent.SUBSTITUTION
        rules.append("intent:quota_complete")
        max_overs = snapshot.match.max_overs
        quota = f" ({max_overs} overs in {snapshot.match.format})" if max_overs else ""
        reasons.append(f"{player.name} has completed the bowling quota{quota}; a replacement bowler is required.")
    elif fatigue_triggered:
        intent = Intent.GENERAL
        rules.append("intent:fatigue_triggered")
        reasons.append(f"Fatigue signals are elevated for {player.name}.")
    else:
        intent = Intent.BOWLING_NEXT
        rules.append("intent:bowling_default")
        reasons.append(f"No fatigue or risk trigger for {player.name}; planning the next over.")

    agents: List[AgentCode] = []
    if fatigue_triggered:
        agents.append(AgentCode.FATIGUE)
    if risk_triggered:
        agents.append(AgentCode.RISK)
    agents.append(AgentCode.TACTICAL)
    rules.append("agents:tactical_forced")

    return RouterDecision(
        intent=intent,
        agents_to_run=tuple(agents),
        rules_fired=tuple(rules),
        inputs_used=inputs,
        reason=" ".join(reasons),
    )
