from fastapi import APIRouter, Depends

from tactiq.core.config import Settings, get_settings

router = APIRouter()


@router.get("/live")
def live() -> dict:
    """Liveness check for container orchestration."""
    return {"status": "ok"}


@router.get("/ready")
def ready(settings: Settings = Depends(get_settings)) -> dict:
    """Readiness check reporting which runner backend and model access are configured."""
    return {
        "status": "ready",
        "azure_openai": settings.azure_openai_enabled,
        "agents_backend": "remote" if settings.uses_remote_agents else "local",
    }
