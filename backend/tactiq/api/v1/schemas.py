from pydantic import BaseModel, Field

from tactiq.models.context import AnalysisMode, OrchestrationSnapshot


class OrchestrateRequest(BaseModel):
    mode: AnalysisMode = AnalysisMode.AUTO
    snapshot: OrchestrationSnapshot


class RankRequest(BaseModel):
    snapshot: OrchestrationSnapshot
    limit: int = Field(3, ge=1, le=15)
