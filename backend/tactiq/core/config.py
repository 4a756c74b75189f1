from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    api_prefix: str = "/api/v1"
    cors_allow_origins: List[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    azure_openai_endpoint: Optional[str] = None
    azure_openai_api_key: Optional[str] = None
    azure_openai_api_version: str = "2024-12-01-preview"
    # Single-deployment setups only set this; the routed deployments fall back to it.
    azure_openai_deployment: Optional[str] = None
    deployment_fast: Optional[str] = None
    deployment_strong: Optional[str] = None
    deployment_fallback: Optional[str] = None
    llm_temperature: float = Field(0.2, ge=0.0, le=2.0)
    llm_max_tokens: int = Field(200, ge=1)
    llm_timeout_seconds: float = Field(12.0, gt=0)

    agents_backend: str = "local"  # local | remote
    agents_base_url: Optional[str] = None
    agents_timeout_seconds: float = Field(10.0, gt=0)

    candidate_limit: int = Field(3, ge=1)
    fatigue_trigger_index: float = 6.0
    strain_trigger_index: float = 3.0

    class Config:
        env_prefix = "TACTIQ_"
        env_file = ".env"
        case_sensitive = False

    @property
    def azure_openai_enabled(self) -> bool:
        return bool(self.azure_openai_endpoint and self.azure_openai_api_key and self.fast_deployment)

    @property
    def fast_deployment(self) -> Optional[str]:
        return self.deployment_fast or self.azure_openai_deployment

    @property
    def strong_deployment(self) -> Optional[str]:
        return self.deployment_strong or self.fast_deployment

    @property
    def fallback_deployment(self) -> Optional[str]:
        return self.deployment_fallback or self.fast_deployment

    @property
    def uses_remote_agents(self) -> bool:
        return self.agents_backend.strip().lower() == "remote" and bool(self.agents_base_url)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
