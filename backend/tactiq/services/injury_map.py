from __future__ import annotations

from typing import List, Sequence

from tactiq.models.context import MatchState, RiskLevel, RosterPlayerContext

MAX_LIKELY_INJURIES = 4

PACE_ROLE_TOKENS = ("PACE", "PACER", "FAST", "SEAM")
SPIN_ROLE_TOKENS = ("SPIN",)


def _high_overs(match: MatchState) -> float:
    return 7 if match.format == "ODI" else 4


def map_likely_injuries(player: RosterPlayerContext, match: MatchState) -> List[str]:
    """Injury types most consistent with the player's current load profile."""
    live, baseline = player.live, player.baseline
    fatigue = float(live.fatigue_index or 0.0)
    strain = float(live.strain_index or 0.0)
    overs = float(live.overs_bowled or 0.0)
    role = player.role.upper()

    high_fatigue = fatigue >= 7
    high_strain = strain >= 3
    high_workload = (baseline.workload_28d or 0) >= 70 or (baseline.workload_7d or 0) >= 25
    low_recovery = (baseline.sleep_hours is not None and baseline.sleep_hours < 6) or (
        baseline.recovery_score is not None and baseline.recovery_score < 35
    )
    high_overs = overs >= _high_overs(match)

    injuries: List[str] = []
    if high_fatigue and high_strain:
        injuries += ["hamstring strain", "calf strain", "general soft-tissue strain"]
    if high_workload and low_recovery:
        injuries += ["overuse injury", "lower back stress", "tendonitis"]
    if live.no_ball_risk == RiskLevel.HIGH and fatigue >= 6:
        injuries += ["ankle/knee landing stress", "shoulder overload"]
    if any(token in role for token in PACE_ROLE_TOKENS) and high_overs:
        injuries += ["lumbar stress", "side strain", "shoulder impingement"]
    if any(token in role for token in SPIN_ROLE_TOKENS) and high_overs and high_strain:
        injuries += ["finger/wrist overuse", "shoulder overuse"]
    if not injuries and (live.injury_risk == RiskLevel.HIGH or fatigue >= 6):
        injuries.append("general soft-tissue strain")

    unique: List[str] = []
    for injury in injuries:
        if injury not in unique:
            unique.append(injury)
    return unique[:MAX_LIKELY_INJURIES]


def build_continue_risk_summary(name: str, injuries: Sequence[str]) -> str:
    if not injuries:
        return f"If {name} continues, keep close monitoring for fatigue-linked control drop."
    if len(injuries) == 1:
        listed = injuries[0]
    else:
        listed = ", ".join(injuries[:-1]) + f" and {injuries[-1]}"
    return f"If {name} continues, there is increased risk of {listed}."
