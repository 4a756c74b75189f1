from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from openai import AsyncAzureOpenAI, OpenAIError

from tactiq.core.config import Settings

logger = logging.getLogger(__name__)

STRONG_TASKS = ("tactical",)
DEFAULT_TOP_P = 0.9


class LLMError(RuntimeError):
    pass


@dataclass(frozen=True)
class ModelRoute:
    deployment: str
    fallback_deployment: str
    temperature: float
    max_tokens: int


@dataclass
class JsonCompletion:
    parsed: Any
    deployment_used: str
    fallbacks_used: List[str] = field(default_factory=list)


def parse_json_payload(text: str) -> Any:
    """Parse a chat completion as JSON, tolerating a surrounding code fence."""
    trimmed = (text or "").strip()
    if trimmed.startswith("```"):
        trimmed = trimmed[3:]
        if trimmed.lower().startswith("json"):
            trimmed = trimmed[4:]
        if trimmed.endswith("```"):
            trimmed = trimmed[:-3]
        trimmed = trimmed.strip()
    return json.loads(trimmed)


def _build_client(settings: Settings) -> Optional[AsyncAzureOpenAI]:
    if not settings.azure_openai_enabled:
        return None
    return AsyncAzureOpenAI(
        api_key=settings.azure_openai_api_key,
        azure_endpoint=settings.azure_openai_endpoint,
        api_version=settings.azure_openai_api_version,
        timeout=settings.llm_timeout_seconds,
        max_retries=0,
    )


class AzureChatClient:
    """Chat-completions wrapper with JSON validation and a three-step retry."""

    def __init__(self, settings: Settings, client: Any) -> None:
        self._settings = settings
        self._client = client

    def route(self, task: str, complexity: str = "low") -> ModelRoute:
        strong = task in STRONG_TASKS or complexity == "high"
        deployment = self._settings.strong_deployment if strong else self._settings.fast_deployment
        return ModelRoute(
            deployment=deployment or "",
            fallback_deployment=self._settings.fallback_deployment or deployment or "",
            temperature=self._settings.llm_temperature,
            max_tokens=self._settings.llm_max_tokens,
        )

    async def _chat(self, route: ModelRoute, deployment: str, messages: List[Dict[str, str]], max_tokens: int) -> str:
        response = await self._client.chat.completions.create(
            model=deployment,
            messages=messages,
            temperature=route.temperature,
            max_tokens=max_tokens,
            top_p=DEFAULT_TOP_P,
        )
        text = response.choices[0].message.content if response.choices else ""
        if not text:
            raise LLMError(f"Empty completion from {deployment}")
        return text

    async def complete_json(
        self,
        route: ModelRoute,
        messages: List[Dict[str, str]],
        strict_system_message: str,
        validate: Callable[[Any], bool],
        max_tokens: Optional[int] = None,
    ) -> JsonCompletion:
        strict_messages = [{"role": "system", "content": strict_system_message}] + list(messages)
        attempts = [
            (route.deployment, messages, f"{route.deployment}:initial"),
            (route.deployment, strict_messages, f"{route.deployment}:strict-retry"),
            (route.fallback_deployment, strict_messages, f"{route.fallback_deployment}:fallback"),
        ]

        fallbacks_used: List[str] = []
        last_error: Optional[Exception] = None
        for index, (deployment, attempt_messages, marker) in enumerate(attempts):
            if index > 0:
                fallbacks_used.append(marker)
            try:
                text = await self._chat(route, deployment, attempt_messages, max_tokens or route.max_tokens)
                parsed = parse_json_payload(text)
            except (OpenAIError, LLMError, json.JSONDecodeError) as exc:
                logger.warning("LLM attempt %s failed: %s", marker, exc)
                last_error = exc
                continue
            if not validate(parsed):
                logger.warning("LLM attempt %s returned JSON that failed validation", marker)
                last_error = LLMError("LLM JSON failed schema validation")
                continue
            return JsonCompletion(parsed=parsed, deployment_used=deployment, fallbacks_used=fallbacks_used)

        raise LLMError(f"LLM JSON retries exhausted: {last_error}")


def build_chat_client(settings: Settings) -> Optional[AzureChatClient]:
    client = _build_client(settings)
    if client is None:
        return None
    return AzureChatClient(settings, client)
