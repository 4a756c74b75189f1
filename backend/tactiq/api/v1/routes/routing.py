from typing import Any, Dict

from fastapi import APIRouter, Depends

from tactiq.api.deps import get_orchestrator
from tactiq.api.v1.schemas import OrchestrateRequest
from tactiq.models.results import to_plain_dict
from tactiq.services import router as router_service
from tactiq.services import safety_rank
from tactiq.services.orchestrator import Orchestrator
from tactiq.services.triggers import compute_triggers

router = APIRouter()


@router.post("")
def route_snapshot(body: OrchestrateRequest, orchestrator: Orchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    """Preview which agents would run for a snapshot without invoking them."""
    snapshot = body.snapshot
    decision = router_service.decide(body.mode, snapshot, orchestrator.thresholds)
    ranking = safety_rank.rank(snapshot, snapshot.active_player_id, orchestrator.settings.candidate_limit)
    return {
        "mode": body.mode.value,
        "decision": to_plain_dict(decision),
        "triggers": to_plain_dict(compute_triggers(snapshot, body.mode)),
        "safety_ranking": to_plain_dict(ranking),
    }
