"""Shared fixtures: settings without model access and a rule-only orchestrator."""

import pytest

from tactiq.core.config import Settings
from tactiq.services.orchestrator import Orchestrator, build_agents


@pytest.fixture
def settings():
    return Settings(
        azure_openai_endpoint=None,
        azure_openai_api_key=None,
        azure_openai_deployment=None,
        deployment_fast=None,
        agents_backend="local",
        _env_file=None,
    )


@pytest.fixture
def orchestrator(settings):
    return Orchestrator(settings, build_agents(settings))
