from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from tactiq.api.deps import get_orchestrator
from tactiq.models.context import OrchestrationSnapshot
from tactiq.models.results import AgentCode, to_plain_dict
from tactiq.services.orchestrator import Orchestrator, RunnerUnavailable

router = APIRouter()


@router.post("/{domain}")
async def run_agent(
    domain: str,
    snapshot: OrchestrationSnapshot,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    """Run a single capability agent (fatigue, risk or tactical) for the snapshot."""
    try:
        code = AgentCode(domain.upper())
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown agent '{domain}'")
    try:
        result = await orchestrator.run_single(code, snapshot)
    except RunnerUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return to_plain_dict(result)
