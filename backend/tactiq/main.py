import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tactiq.api.v1.api import api_router
from tactiq.core.config import get_settings


settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="TactIQ Coaching Orchestrator", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=settings.api_prefix)

logger.info(
    "TactIQ backend ready (agents=%s, azure_openai=%s)",
    settings.agents_backend,
    "on" if settings.azure_openai_enabled else "off",
)


@app.get("/")
def root() -> dict:
    return {"service": "tactiq-backend", "version": app.version}
