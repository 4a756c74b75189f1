from __future__ import annotations

import numpy as np

from tactiq.models.context import AnalysisMode, MatchPhase, OrchestrationSnapshot, RecoveryQuality, RiskLevel
from tactiq.models.results import TriggerScores

RECOVERY_FATIGUE_POINTS = {RecoveryQuality.POOR: 12, RecoveryQuality.MODERATE: 6, RecoveryQuality.GOOD: 0}
INJURY_BAND_POINTS = {RiskLevel.HIGH: 40, RiskLevel.MEDIUM: 20}
NO_BALL_BAND_POINTS = {RiskLevel.HIGH: 25, RiskLevel.MEDIUM: 12}
PHASE_PRESSURE_POINTS = {MatchPhase.DEATH: 25, MatchPhase.POWERPLAY: 10, MatchPhase.MIDDLE: 8}
FULL_ANALYSIS_POINTS = 18


def _score(value: float) -> int:
    return int(round(float(np.clip(value, 0, 100))))


def _wickets_pressure(wickets_in_hand: int) -> int:
    if wickets_in_hand <= 3:
        return 20
    if wickets_in_hand <= 5:
        return 10
    return 4


def compute_triggers(snapshot: OrchestrationSnapshot, mode: AnalysisMode = AnalysisMode.AUTO) -> TriggerScores:
    """Urgency per domain on a 0-100 scale, for display and escalation hints only."""
    match = snapshot.match
    player = snapshot.active_player()
    live = player.live if player is not None else None

    fatigue_index = float(live.fatigue_index or 0.0) if live else 0.0
    consecutive = float(live.consecutive_overs or 0) if live else 0.0
    overs_bowled = float(live.overs_bowled or 0.0) if live else 0.0
    recovery = (live.heart_rate_recovery if live else None) or RecoveryQuality.MODERATE
    injury = live.injury_risk if live else RiskLevel.UNKNOWN
    no_ball = live.no_ball_risk if live else RiskLevel.UNKNOWN

    workload_ratio = min(1.0, overs_bowled / match.max_overs) if match.max_overs else 0.0

    fatigue = fatigue_index * 8 + consecutive * 4 + workload_ratio * 20 + RECOVERY_FATIGUE_POINTS[recovery]
    risk = (
        INJURY_BAND_POINTS.get(injury, 8)
        + NO_BALL_BAND_POINTS.get(no_ball, 4)
        + fatigue_index * 3
        + consecutive * 4
    )
    tactical = (
        match.run_rate_gap * 12
        + PHASE_PRESSURE_POINTS[match.phase]
        + _wickets_pressure(match.wickets_in_hand)
        + (FULL_ANALYSIS_POINTS if mode == AnalysisMode.FULL else 0)
    )
    return TriggerScores(fatigue=_score(fatigue), risk=_score(risk), tactical=_score(tactical))
