from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Dict, List, Mapping, Optional, Tuple

from tactiq.agents import fatigue_agent, risk_agent, tactical_agent
from tactiq.agents.base import AgentRequest, CapabilityAgent
from tactiq.core.config import Settings
from tactiq.models.context import AnalysisMode, OrchestrationSnapshot
from tactiq.models.results import (
    AgentCode,
    AgentError,
    CapabilityResult,
    OrchestrationResponse,
    OrchestrationRun,
    ResultStatus,
    RouterDecision,
    SafetyRanking,
    TriggerScores,
)
from tactiq.services import router, safety_rank
from tactiq.services.azure_openai import build_chat_client
from tactiq.services.merger import executed_agents, merge, numeric_confidence, severity_confidence
from tactiq.services.remote_agents import RemoteAgent, RemoteAgentsClient
from tactiq.services.triggers import compute_triggers

logger = logging.getLogger(__name__)

LEVEL_ONE = (AgentCode.FATIGUE, AgentCode.RISK)
CLOSE_TRIGGER_GAP = 10
LOW_CONFIDENCE = 0.55


class RunnerUnavailable(RuntimeError):
    pass


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def summarize_context(snapshot: OrchestrationSnapshot) -> Dict[str, Any]:
    player = snapshot.active_player()
    return {
        "roster_size": len(snapshot.roster),
        "with_baseline": sum(1 for p in snapshot.roster if not p.baseline.is_empty),
        "with_telemetry": sum(1 for p in snapshot.roster if not p.live.is_empty),
        "active_player": {"player_id": player.player_id, "name": player.name, "role": player.role} if player else None,
        "format": snapshot.match.format,
        "phase": snapshot.match.phase.value,
        "mode": snapshot.mode.value,
    }


def suggest_full_analysis(mode: AnalysisMode, triggers: TriggerScores, run: OrchestrationRun) -> bool:
    if mode != AnalysisMode.AUTO:
        return False
    top, second, _ = triggers.ordered()
    confidences = [severity_confidence(result.severity) for result in (run.fatigue, run.risk) if result.produced_output]
    if run.tactical.produced_output:
        tactical_confidence = numeric_confidence(run.tactical.output.get("confidence"))
        if tactical_confidence is not None:
            confidences.append(tactical_confidence)
    return (top - second) <= CLOSE_TRIGGER_GAP or any(value < LOW_CONFIDENCE for value in confidences)


class Orchestrator:
    """Runs the selected capability domains as a two-level task graph.

    Fatigue and risk run concurrently; tactical starts once both have settled
    and receives their outputs (or synthesized fallbacks) as context.
    """

    def __init__(self, settings: Settings, agents: Mapping[AgentCode, CapabilityAgent]) -> None:
        self.settings = settings
        self.agents = dict(agents)
        self.thresholds = router.RouterThresholds(
            fatigue_index=settings.fatigue_trigger_index,
            strain_index=settings.strain_trigger_index,
        )

    async def _invoke(self, code: AgentCode, request: AgentRequest) -> Tuple[CapabilityResult, Optional[AgentError]]:
        agent = self.agents[code]
        started = time.perf_counter()
        try:
            outcome = await agent.run(request)
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.warning("%s agent failed for request %s: %s", code.domain, request.request_id, message)
            error = AgentError(domain=code.domain, message=message)
            try:
                fallback = agent.build_fallback(request, f"runner-error:{message}")
            except Exception:
                logger.exception("%s fallback failed for request %s", code.domain, request.request_id)
                result = CapabilityResult(agent=code, status=ResultStatus.ERROR, output={}, elapsed_ms=_elapsed_ms(started))
                return result, error
            result = CapabilityResult(
                agent=code,
                status=ResultStatus.FALLBACK,
                output=fallback.output,
                model_used=fallback.model,
                fallbacks_used=list(fallback.fallbacks_used),
                elapsed_ms=_elapsed_ms(started),
            )
            return result, error

        status = ResultStatus.FALLBACK if outcome.fallbacks_used else ResultStatus.OK
        result = CapabilityResult(
            agent=code,
            status=status,
            output=outcome.output,
            model_used=outcome.model,
            fallbacks_used=list(outcome.fallbacks_used),
            elapsed_ms=_elapsed_ms(started),
        )
        return result, None

    async def run(
        self,
        decision: RouterDecision,
        snapshot: OrchestrationSnapshot,
        ranking: Optional[SafetyRanking] = None,
        request_id: Optional[str] = None,
    ) -> OrchestrationRun:
        request_id = request_id or str(uuid.uuid4())
        ranking = ranking if ranking is not None else safety_rank.rank(snapshot, snapshot.active_player_id)
        results: Dict[AgentCode, CapabilityResult] = {code: CapabilityResult.skipped(code) for code in AgentCode}
        errors: List[AgentError] = []

        base_request = AgentRequest(snapshot=snapshot, request_id=request_id, ranking=ranking)
        selected = [code for code in LEVEL_ONE if decision.runs(code)]
        settled = await asyncio.gather(*(self._invoke(code, base_request) for code in selected))
        for code, (result, error) in zip(selected, settled):
            results[code] = result
            if error is not None:
                errors.append(error)

        if decision.runs(AgentCode.TACTICAL):
            fatigue, risk = results[AgentCode.FATIGUE], results[AgentCode.RISK]
            tactical_request = AgentRequest(
                snapshot=snapshot,
                request_id=request_id,
                ranking=ranking,
                fatigue_output=fatigue.output if fatigue.produced_output else None,
                risk_output=risk.output if risk.produced_output else None,
            )
            result, error = await self._invoke(AgentCode.TACTICAL, tactical_request)
            results[AgentCode.TACTICAL] = result
            if error is not None:
                errors.append(error)

        timings = {code.domain: r.elapsed_ms for code, r in results.items() if r.elapsed_ms is not None}
        logger.debug("Request %s agent timings: %s", request_id, timings)
        return OrchestrationRun(
            fatigue=results[AgentCode.FATIGUE],
            risk=results[AgentCode.RISK],
            tactical=results[AgentCode.TACTICAL],
            errors=errors,
            timings_ms=timings,
        )

    async def run_single(self, code: AgentCode, snapshot: OrchestrationSnapshot) -> CapabilityResult:
        if snapshot.is_degenerate:
            raise ValueError(f"active_player_id {snapshot.active_player_id!r} does not match any roster entry")
        request = AgentRequest(
            snapshot=snapshot,
            request_id=str(uuid.uuid4()),
            ranking=safety_rank.rank(snapshot, snapshot.active_player_id, self.settings.candidate_limit),
        )
        result, error = await self._invoke(code, request)
        if result.status == ResultStatus.ERROR:
            raise RunnerUnavailable(error.message if error else f"{code.domain} agent unavailable")
        return result

    async def orchestrate(
        self,
        snapshot: OrchestrationSnapshot,
        mode: AnalysisMode = AnalysisMode.AUTO,
    ) -> OrchestrationResponse:
        request_id = str(uuid.uuid4())
        started = time.perf_counter()

        ranking = safety_rank.rank(snapshot, snapshot.active_player_id, self.settings.candidate_limit)
        triggers = compute_triggers(snapshot, mode)
        decision = router.decide(mode, snapshot, self.thresholds)
        logger.info(
            "Request %s routed: intent=%s agents=%s rules=%s",
            request_id,
            decision.intent.value,
            [code.value for code in decision.agents_to_run],
            list(decision.rules_fired),
        )

        run = await self.run(decision, snapshot, ranking, request_id)
        outcome = merge(snapshot, decision, run, ranking)

        timings = dict(run.timings_ms)
        timings["total"] = _elapsed_ms(started)
        meta = {
            "executed_agents": [code.domain for code in executed_agents(run)],
            "used_fallback_agents": [r.agent.domain for r in run.all() if r.status == ResultStatus.FALLBACK],
            "model_routing": {r.agent.domain: r.model_used or "n/a" for r in run.all()},
            "suggest_full_analysis": suggest_full_analysis(mode, triggers, run),
            "timings_ms": timings,
            "llm_enabled": self.settings.azure_openai_enabled,
            "agents_backend": "remote" if self.settings.uses_remote_agents else "local",
        }
        if run.errors:
            logger.warning("Request %s completed with %d agent error(s)", request_id, len(run.errors))

        return OrchestrationResponse(
            request_id=request_id,
            mode=mode.value,
            decision=decision,
            triggers=triggers,
            safety_ranking=ranking,
            results=run,
            combined_decision=outcome.combined_decision,
            final_recommendation=outcome.final_recommendation,
            context_summary=summarize_context(snapshot),
            meta=meta,
        )


def build_agents(settings: Settings) -> Dict[AgentCode, CapabilityAgent]:
    llm = build_chat_client(settings)
    agents: Dict[AgentCode, CapabilityAgent] = {
        AgentCode.FATIGUE: fatigue_agent.build_agent(llm),
        AgentCode.RISK: risk_agent.build_agent(llm),
        AgentCode.TACTICAL: tactical_agent.build_agent(llm),
    }
    if settings.uses_remote_agents:
        client = RemoteAgentsClient(settings.agents_base_url, settings.agents_timeout_seconds)
        agents = {code: RemoteAgent(agent, client) for code, agent in agents.items()}
    return agents


def build_orchestrator(settings: Settings) -> Orchestrator:
    return Orchestrator(settings, build_agents(settings))
