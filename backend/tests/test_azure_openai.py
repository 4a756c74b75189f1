import asyncio
import json

import pytest
from fakes import fake_chat_client, llm_settings
from openai import OpenAIError

from tactiq.services.azure_openai import AzureChatClient, LLMError, build_chat_client, parse_json_payload


def _always_valid(value):
    return isinstance(value, dict)


def _messages():
    return [{"role": "system", "content": "sys"}, {"role": "user", "content": "{}"}]


class TestParseJsonPayload:
    def test_plain_json(self):
        assert parse_json_payload('{"a": 1}') == {"a": 1}

    def test_code_fence_is_stripped(self):
        assert parse_json_payload('```json\n{"a": 1}\n```') == {"a": 1}
        assert parse_json_payload('```\n[1, 2]\n```') == [1, 2]

    def test_invalid_json_raises(self):
        with pytest.raises(json.JSONDecodeError):
            parse_json_payload("not json")


class TestRouting:
    def test_tactical_and_high_complexity_use_strong_deployment(self):
        client, _ = fake_chat_client([])
        assert client.route("tactical").deployment == "strong"
        assert client.route("risk", complexity="high").deployment == "strong"
        assert client.route("fatigue").deployment == "fast"
        assert client.route("fatigue").fallback_deployment == "backup"

    def test_single_deployment_serves_every_route(self):
        settings = llm_settings(deployment_fast=None, deployment_strong=None, deployment_fallback=None,
                                azure_openai_deployment="gpt-main")
        client, _ = fake_chat_client([], settings)
        assert client.route("tactical").deployment == "gpt-main"
        assert client.route("fatigue").fallback_deployment == "gpt-main"

    def test_client_disabled_without_credentials(self, settings):
        assert build_chat_client(settings) is None

    def test_client_built_when_configured(self):
        assert isinstance(build_chat_client(llm_settings()), AzureChatClient)


class TestCompleteJson:
    def test_first_attempt_success(self):
        client, completions = fake_chat_client([{"ok": True}])
        result = asyncio.run(client.complete_json(client.route("fatigue"), _messages(), "strict", _always_valid))
        assert result.parsed == {"ok": True}
        assert result.deployment_used == "fast"
        assert result.fallbacks_used == []
        assert completions.calls[0]["top_p"] == 0.9
        assert completions.calls[0]["max_tokens"] == 200

    def test_strict_retry_after_invalid_json(self):
        client, completions = fake_chat_client(["not json", '```json\n{"ok": true}\n```'])
        result = asyncio.run(client.complete_json(client.route("fatigue"), _messages(), "strict", _always_valid))
        assert result.parsed == {"ok": True}
        assert result.fallbacks_used == ["fast:strict-retry"]
        assert completions.calls[1]["messages"][0] == {"role": "system", "content": "strict"}

    def test_fallback_deployment_after_api_errors(self):
        client, completions = fake_chat_client([OpenAIError("down"), OpenAIError("down"), {"ok": True}])
        result = asyncio.run(client.complete_json(client.route("fatigue"), _messages(), "strict", _always_valid))
        assert result.deployment_used == "backup"
        assert result.fallbacks_used == ["fast:strict-retry", "backup:fallback"]
        assert [call["model"] for call in completions.calls] == ["fast", "fast", "backup"]

    def test_schema_failures_exhaust_retries(self):
        client, _ = fake_chat_client([[1], [2], [3]])
        with pytest.raises(LLMError, match="retries exhausted"):
            asyncio.run(client.complete_json(client.route("fatigue"), _messages(), "strict", _always_valid))

    def test_empty_completion_counts_as_failure(self):
        client, _ = fake_chat_client(["", "", ""])
        with pytest.raises(LLMError):
            asyncio.run(client.complete_json(client.route("fatigue"), _messages(), "strict", _always_valid))

    def test_max_tokens_override(self):
        client, completions = fake_chat_client([{"ok": True}])
        asyncio.run(client.complete_json(client.route("risk"), _messages(), "strict", _always_valid, max_tokens=320))
        assert completions.calls[0]["max_tokens"] == 320
