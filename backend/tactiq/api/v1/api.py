from fastapi import APIRouter

from tactiq.api.v1.routes import agents, health, orchestrate, routing, safety

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(routing.router, prefix="/router", tags=["router"])
api_router.include_router(safety.router, prefix="/safety", tags=["safety"])
api_router.include_router(orchestrate.router, prefix="/orchestrate", tags=["orchestrate"])
api_router.include_router(agents.router, prefix="/agents", tags=["agents"])
