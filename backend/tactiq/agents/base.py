from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from tactiq.models.context import OrchestrationSnapshot, RosterPlayerContext
from tactiq.models.results import AgentCode, AgentRunResult, SafetyRanking
from tactiq.services.azure_openai import AzureChatClient

MISSING_LLM_REASON = "missing:azure_openai"


@dataclass(frozen=True)
class AgentRequest:
    snapshot: OrchestrationSnapshot
    request_id: str
    ranking: Optional[SafetyRanking] = None
    fatigue_output: Optional[Dict[str, Any]] = None
    risk_output: Optional[Dict[str, Any]] = None

    @property
    def player(self) -> Optional[RosterPlayerContext]:
        return self.snapshot.active_player()

    @property
    def player_name(self) -> str:
        player = self.player
        return player.name if player is not None else "Current player"


class CapabilityAgent:
    """One advisory domain.

    ``run`` either returns a well-formed result or raises; ``build_fallback``
    must always succeed from the request alone.
    """

    code: AgentCode

    def __init__(self, llm: Optional[AzureChatClient] = None) -> None:
        self._llm = llm

    @property
    def uses_llm(self) -> bool:
        return self._llm is not None

    async def run(self, request: AgentRequest) -> AgentRunResult:
        raise NotImplementedError

    def build_fallback(self, request: AgentRequest, reason: str) -> AgentRunResult:
        raise NotImplementedError

    def validate_output(self, output: Any) -> bool:
        """Whether ``output`` is well-formed for this domain, e.g. when it comes from a remote runner."""
        return isinstance(output, dict)


def llm_error_reason(exc: Exception) -> str:
    return f"llm-error:{exc}"


def is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
