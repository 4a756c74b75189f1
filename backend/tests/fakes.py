"""Stand-ins for the chat-completions client and capability agents."""

import asyncio
import json
from types import SimpleNamespace
from typing import Any, Dict, List

from tactiq.agents.base import CapabilityAgent
from tactiq.core.config import Settings
from tactiq.models.results import AgentRunResult
from tactiq.services.azure_openai import AzureChatClient


def llm_settings(**overrides: Any) -> Settings:
    values = {
        "azure_openai_endpoint": "https://example.openai.azure.com",
        "azure_openai_api_key": "test-key",
        "deployment_fast": "fast",
        "deployment_strong": "strong",
        "deployment_fallback": "backup",
        "_env_file": None,
    }
    values.update(overrides)
    return Settings(**values)


class FakeCompletions:
    """Replays queued replies; an Exception in the queue is raised instead."""

    def __init__(self, replies: List[Any]) -> None:
        self.replies = list(replies)
        self.calls: List[Dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if not isinstance(reply, str):
            reply = json.dumps(reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=reply))])


def fake_chat_client(replies: List[Any], settings: Settings = None):
    completions = FakeCompletions(replies)
    raw = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return AzureChatClient(settings or llm_settings(), raw), completions


class ScriptedAgent(CapabilityAgent):
    """Wraps a real agent and overrides how ``run`` behaves."""

    def __init__(self, inner: CapabilityAgent, *, fail: bool = False, fallback_fails: bool = False,
                 delay: float = 0.0, started: asyncio.Event = None, wait_for: asyncio.Event = None) -> None:
        super().__init__()
        self.code = inner.code
        self.inner = inner
        self.fail = fail
        self.fallback_fails = fallback_fails
        self.delay = delay
        self.started = started
        self.wait_for = wait_for
        self.requests = []

    async def run(self, request):
        self.requests.append(request)
        if self.started is not None:
            self.started.set()
        if self.wait_for is not None:
            await asyncio.wait_for(self.wait_for.wait(), timeout=1.0)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError(f"{self.code.domain} runner exploded")
        result = self.inner.build_fallback(request, "scripted")
        return AgentRunResult(output=dict(result.output, status="ok"), model="scripted-model")

    def build_fallback(self, request, reason):
        if self.fallback_fails:
            raise RuntimeError("fallback exploded")
        return self.inner.build_fallback(request, reason)
