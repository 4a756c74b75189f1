from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from tactiq.agents.base import AgentRequest, CapabilityAgent
from tactiq.models.results import AgentRunResult, to_plain_dict

logger = logging.getLogger(__name__)


class RemoteAgentError(RuntimeError):
    pass


def request_payload(request: AgentRequest) -> Dict[str, Any]:
    return {
        "request_id": request.request_id,
        "snapshot": request.snapshot.model_dump(mode="json"),
        "ranking": to_plain_dict(request.ranking) if request.ranking is not None else None,
        "fatigue": request.fatigue_output,
        "risk": request.risk_output,
    }


class RemoteAgentsClient:
    """Blocking HTTP client for capability runners hosted by another service."""

    def __init__(self, base_url: str, timeout: float, session: Optional[requests.Session] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def invoke(self, domain: str, payload: Dict[str, Any]) -> AgentRunResult:
        url = f"{self.base_url}/agents/{domain}"
        try:
            resp = self.session.post(url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            body = resp.json()
        except requests.RequestException as exc:
            raise RemoteAgentError(f"{domain} agent call failed: {exc}") from exc
        except ValueError as exc:
            raise RemoteAgentError(f"{domain} agent returned invalid JSON") from exc

        output = body.get("output") if isinstance(body, dict) else None
        if not isinstance(output, dict):
            raise RemoteAgentError(f"{domain} agent response is missing an output object")
        return AgentRunResult(
            output=output,
            model=str(body.get("model") or "remote"),
            fallbacks_used=[str(item) for item in body.get("fallbacks_used") or []],
        )


class RemoteAgent(CapabilityAgent):
    """Runs a domain through the remote service; falls back to the local rules."""

    def __init__(self, local: CapabilityAgent, client: RemoteAgentsClient) -> None:
        super().__init__(None)
        self.code = local.code
        self._local = local
        self._client = client

    async def run(self, request: AgentRequest) -> AgentRunResult:
        payload = request_payload(request)
        logger.debug("Calling remote %s agent for %s", self.code.domain, request.request_id)
        result = await asyncio.to_thread(self._client.invoke, self.code.domain, payload)
        if not self._local.validate_output(result.output):
            raise RemoteAgentError(f"{self.code.domain} agent returned a malformed output")
        return result

    def build_fallback(self, request: AgentRequest, reason: str) -> AgentRunResult:
        return self._local.build_fallback(request, reason)
