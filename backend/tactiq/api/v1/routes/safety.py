from typing import Any, Dict

from fastapi import APIRouter

from tactiq.api.v1.schemas import RankRequest
from tactiq.models.results import to_plain_dict
from tactiq.services.safety_rank import rank

router = APIRouter()


@router.post("/rank")
def rank_candidates(body: RankRequest) -> Dict[str, Any]:
    return to_plain_dict(rank(body.snapshot, body.snapshot.active_player_id, body.limit))
