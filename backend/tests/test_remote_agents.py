import asyncio

import pytest
import requests
from factories import make_snapshot, standard_roster

from tactiq.agents.base import AgentRequest
from tactiq.agents.fatigue_agent import FatigueAgent
from tactiq.agents.risk_agent import RiskAgent
from tactiq.agents.tactical_agent import CONTINUE_ACTION, TacticalAgent
from tactiq.core.config import Settings
from tactiq.models.results import AgentCode, AgentError, ResultStatus
from tactiq.services.orchestrator import Orchestrator, build_agents
from tactiq.services.remote_agents import RemoteAgent, RemoteAgentError, RemoteAgentsClient

WELL_FORMED_TACTICAL = {
    "immediate_action": "Hold the current line",
    "rationale": "Control is good.",
    "suggested_adjustments": ["Keep mid-off straight"],
    "substitution_advice": None,
    "confidence": 0.7,
}


class FakeResponse:
    def __init__(self, body, status_code=200):
        self.body = body
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self.body, Exception):
            raise self.body
        return self.body


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.posts = []

    def post(self, url, json=None, timeout=None):
        self.posts.append((url, json, timeout))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def _request():
    return AgentRequest(snapshot=make_snapshot(standard_roster(fatigue=7)), request_id="req-9")


class TestRemoteAgentsClient:
    def test_posts_to_domain_endpoint(self):
        session = FakeSession(FakeResponse({"output": {"severity": "HIGH"}, "model": "remote-gpt", "fallbacks_used": []}))
        client = RemoteAgentsClient("http://runners:8080/", timeout=4, session=session)
        result = client.invoke("fatigue", {"request_id": "req-9"})
        assert session.posts == [("http://runners:8080/agents/fatigue", {"request_id": "req-9"}, 4)]
        assert result.output == {"severity": "HIGH"}
        assert result.model == "remote-gpt"

    @pytest.mark.parametrize(
        "response",
        [
            requests.ConnectionError("refused"),
            FakeResponse({"detail": "boom"}, status_code=500),
            FakeResponse(ValueError("no json")),
            FakeResponse({"model": "remote-gpt"}),
        ],
    )
    def test_failures_raise_remote_agent_error(self, response):
        client = RemoteAgentsClient("http://runners", timeout=1, session=FakeSession(response))
        with pytest.raises(RemoteAgentError):
            client.invoke("risk", {})


class TestRemoteAgent:
    def test_run_sends_serialized_request(self):
        session = FakeSession(FakeResponse({"output": {"severity": "LOW"}}))
        agent = RemoteAgent(FatigueAgent(), RemoteAgentsClient("http://runners", timeout=1, session=session))
        result = asyncio.run(agent.run(_request()))
        assert result.model == "remote"
        payload = session.posts[0][1]
        assert payload["request_id"] == "req-9"
        assert payload["snapshot"]["active_player_id"] == "P1"

    def test_fallback_uses_local_rules(self):
        agent = RemoteAgent(FatigueAgent(), RemoteAgentsClient("http://runners", timeout=1, session=FakeSession(None)))
        result = agent.build_fallback(_request(), "runner-error:down")
        assert result.model == "rule:fallback"
        assert result.fallbacks_used == ["runner-error:down"]

    def test_remote_backend_wraps_every_agent(self):
        settings = Settings(agents_backend="remote", agents_base_url="http://runners", _env_file=None)
        agents = build_agents(settings)
        assert all(isinstance(agent, RemoteAgent) for agent in agents.values())
        assert agents[AgentCode.RISK].code == AgentCode.RISK


class TestMalformedRemoteOutput:
    """A remote runner that breaks the output contract is isolated like a crash."""

    @staticmethod
    def _orchestrator(settings, output):
        session = FakeSession(FakeResponse({"output": output, "model": "remote-gpt"}))
        tactical = RemoteAgent(TacticalAgent(), RemoteAgentsClient("http://runners", timeout=1, session=session))
        agents = {AgentCode.FATIGUE: FatigueAgent(), AgentCode.RISK: RiskAgent(), AgentCode.TACTICAL: tactical}
        return Orchestrator(settings, agents)

    @pytest.mark.parametrize(
        "output",
        [
            dict(WELL_FORMED_TACTICAL, confidence="high"),
            dict(WELL_FORMED_TACTICAL, substitution_advice="Bring on P2"),
            dict(WELL_FORMED_TACTICAL, suggested_adjustments="Bowl tighter"),
            {"headline": "not a tactical payload"},
        ],
    )
    def test_malformed_tactical_output_uses_local_fallback(self, settings, output):
        snapshot = make_snapshot(standard_roster(fatigue=2, injury="LOW", no_ball="LOW"))
        response = asyncio.run(self._orchestrator(settings, output).orchestrate(snapshot))

        assert response.errors == [AgentError(domain="tactical", message="tactical agent returned a malformed output")]
        assert response.results.tactical.status == ResultStatus.FALLBACK
        assert response.results.tactical.model_used == "fallback-heuristic"
        combined = response.combined_decision
        assert combined.immediate_action == CONTINUE_ACTION
        assert combined.confidence == 0.67
        assert all(len(item) > 1 for item in combined.suggested_adjustments)

    def test_well_formed_tactical_output_is_used(self, settings):
        snapshot = make_snapshot(standard_roster(fatigue=2, injury="LOW", no_ball="LOW"))
        response = asyncio.run(self._orchestrator(settings, WELL_FORMED_TACTICAL).orchestrate(snapshot))
        assert response.errors == []
        assert response.results.tactical.status == ResultStatus.OK
        assert response.results.tactical.model_used == "remote-gpt"
        assert response.combined_decision.immediate_action == "Hold the current line"

    def test_each_domain_checks_its_own_shape(self):
        assert TacticalAgent().validate_output(WELL_FORMED_TACTICAL)
        assert not TacticalAgent().validate_output(dict(WELL_FORMED_TACTICAL, confidence=True))
        assert RiskAgent().validate_output({"severity": "HIGH", "recommendation": "Rest him."})
        assert not RiskAgent().validate_output({"severity": "SEVERE", "recommendation": "Rest him."})
        assert FatigueAgent().validate_output({"severity": "LOW", "headline": "Fine", "recommendation": "Carry on."})
        assert not FatigueAgent().validate_output({"severity": "LOW", "headline": "Fine", "recommendation": 3})
