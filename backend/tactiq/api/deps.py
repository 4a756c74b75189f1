from functools import lru_cache

from tactiq.core.config import get_settings
from tactiq.services.orchestrator import Orchestrator, build_orchestrator


@lru_cache(maxsize=1)
def get_orchestrator() -> Orchestrator:
    return build_orchestrator(get_settings())
