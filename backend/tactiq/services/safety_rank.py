from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from tactiq.models.context import Intensity, OrchestrationSnapshot, RiskLevel, RosterPlayerContext
from tactiq.models.results import SafetyCandidate, SafetyRanking

DEFAULT_LIMIT = 3
DEFAULT_FATIGUE = 5.0
DEFAULT_SLEEP_HOURS = 6.0
DEFAULT_RECOVERY_SCORE = 45.0

RISK_BONUS = {
    RiskLevel.LOW: 2.0,
    RiskLevel.MEDIUM: 0.8,
    RiskLevel.HIGH: -2.2,
    RiskLevel.UNKNOWN: 0.0,
}

_COLUMNS = [
    "order", "player_id", "name", "role", "can_bowl", "can_bat",
    "fatigue", "sleep", "recovery", "workload_7d", "workload_28d", "overs", "injury_risk",
]


def _clip(value: Optional[float], default: float, low: float, high: float) -> float:
    if value is None:
        return default
    return float(np.clip(float(value), low, high))


def _roster_row(order: int, player: RosterPlayerContext) -> Dict[str, Any]:
    live, baseline = player.live, player.baseline
    return {
        "order": order,
        "player_id": player.player_id,
        "name": player.name,
        "role": player.role,
        "can_bowl": player.can_bowl,
        "can_bat": player.can_bat,
        "fatigue": _clip(live.fatigue_index, DEFAULT_FATIGUE, 0, 10),
        "sleep": _clip(baseline.sleep_hours, DEFAULT_SLEEP_HOURS, 0, 12),
        "recovery": _clip(baseline.recovery_score, DEFAULT_RECOVERY_SCORE, 0, 100),
        "workload_7d": max(0.0, float(baseline.workload_7d or 0.0)),
        "workload_28d": max(0.0, float(baseline.workload_28d or 0.0)),
        "overs": max(0.0, float(live.overs_bowled or 0.0)),
        "injury_risk": live.injury_risk,
    }


def _bowling_score(row: pd.Series, high_intensity: bool) -> float:
    intensity_factor = 1.2 if high_intensity else 1.0
    fatigue_score = 10 - row["fatigue"]
    sleep_bonus = (row["sleep"] - 6) * 0.6
    recovery_bonus = (row["recovery"] - 40) / 20
    # Bowlers carry spell load, so live overs weigh in on top of the rolling windows.
    workload_penalty = (row["workload_7d"] / 12 + row["workload_28d"] / 28 + row["overs"] * 0.45) * intensity_factor
    score = fatigue_score + RISK_BONUS[row["injury_risk"]] + sleep_bonus + recovery_bonus - workload_penalty
    return round(float(score), 2)


def _batting_score(row: pd.Series, high_intensity: bool) -> float:
    recovery_factor = 1.15 if high_intensity else 1.0
    fatigue_score = (10 - row["fatigue"]) * 0.95
    sleep_bonus = (row["sleep"] - 6) * 0.55
    recovery_bonus = ((row["recovery"] - 40) / 18) * recovery_factor
    workload_penalty = row["workload_7d"] / 14 + row["workload_28d"] / 35
    score = fatigue_score + RISK_BONUS[row["injury_risk"]] + sleep_bonus + recovery_bonus - workload_penalty
    return round(float(score), 2)


def _reason(row: pd.Series) -> str:
    return f"Fatigue {row['fatigue']:.1f}/10, injury {row['injury_risk'].value}, recovery {row['recovery']:.0f}."


def _to_candidates(df: pd.DataFrame, score_col: str) -> List[SafetyCandidate]:
    return [
        SafetyCandidate(
            player_id=str(row["player_id"]),
            name=str(row["name"]),
            role=str(row["role"]),
            score=float(row[score_col]),
            reason=_reason(row),
        )
        for _, row in df.iterrows()
    ]


def _rank_pool(pool: pd.DataFrame, score_col: str, limit: int) -> pd.DataFrame:
    # mergesort is stable, so equal scores keep roster order.
    return pool.sort_values(score_col, ascending=False, kind="mergesort").head(limit)


def score_roster(snapshot: OrchestrationSnapshot) -> pd.DataFrame:
    """Score every roster player for both bowling and batting suitability."""
    df = pd.DataFrame(
        [_roster_row(order, player) for order, player in enumerate(snapshot.roster)],
        columns=_COLUMNS,
    )
    if df.empty:
        return df.assign(bowling_score=pd.Series(dtype=float), batting_score=pd.Series(dtype=float))
    high_intensity = snapshot.match.intensity == Intensity.HIGH
    df["bowling_score"] = df.apply(_bowling_score, axis=1, high_intensity=high_intensity)
    df["batting_score"] = df.apply(_batting_score, axis=1, high_intensity=high_intensity)
    return df


def rank(snapshot: OrchestrationSnapshot, active_player_id: Optional[str] = None, limit: int = DEFAULT_LIMIT) -> SafetyRanking:
    limit = max(1, int(limit))
    active_id = active_player_id if active_player_id is not None else snapshot.active_player_id

    scored = score_roster(snapshot)
    if scored.empty:
        return SafetyRanking()
    eligible = scored[scored["player_id"] != active_id]

    bowlers = _rank_pool(eligible[eligible["can_bowl"]], "bowling_score", limit)
    batters = _rank_pool(eligible[eligible["can_bat"]], "batting_score", limit)

    bowler_candidates = _to_candidates(bowlers, "bowling_score")
    batter_candidates = _to_candidates(batters, "batting_score")

    bench: Dict[str, Tuple[int, SafetyCandidate]] = {}
    for candidate in bowler_candidates + batter_candidates:
        order = int(scored.loc[scored["player_id"] == candidate.player_id, "order"].iloc[0])
        existing = bench.get(candidate.player_id)
        if existing is None or candidate.score > existing[1].score:
            bench[candidate.player_id] = (order, candidate)
    bench_sorted = sorted(bench.values(), key=lambda item: (-item[1].score, item[0]))

    return SafetyRanking(
        bowler_candidates=tuple(bowler_candidates),
        batter_candidates=tuple(batter_candidates),
        bench_options=tuple(candidate for _, candidate in bench_sorted[:limit]),
    )
