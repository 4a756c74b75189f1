from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from tactiq.api.deps import get_orchestrator
from tactiq.api.v1.schemas import OrchestrateRequest
from tactiq.services.orchestrator import Orchestrator

router = APIRouter()


@router.post("")
async def orchestrate(body: OrchestrateRequest, orchestrator: Orchestrator = Depends(get_orchestrator)) -> JSONResponse:
    """Route, run and merge the capability agents for one match snapshot.

    Partial agent failures still return the full body, with status 207.
    """
    response = await orchestrator.orchestrate(body.snapshot, body.mode)
    status_code = 207 if response.errors else 200
    return JSONResponse(status_code=status_code, content=response.to_dict())
