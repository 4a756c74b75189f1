import pytest
from fastapi.testclient import TestClient
from fakes import ScriptedAgent

from tactiq.agents.fatigue_agent import FatigueAgent
from tactiq.agents.risk_agent import RiskAgent
from tactiq.agents.tactical_agent import TacticalAgent
from tactiq.api.deps import get_orchestrator
from tactiq.core.config import get_settings
from tactiq.main import app
from tactiq.models.results import AgentCode
from tactiq.services.orchestrator import Orchestrator

PREFIX = "/api/v1"


def _player(player_id, name, role, **live):
    return {"player_id": player_id, "name": name, "role": role, "live": live}


def _snapshot(mode="BOWLING", active="P1", **active_live):
    return {
        "match": {"format": "t20", "phase": "Death", "mode": mode, "intensity": "high", "wickets": 4},
        "active_player_id": active,
        "roster": [
            _player("P1", "Active Pacer", "Fast Bowler", **active_live),
            _player("P2", "Fresh Seamer", "Seam Bowler", fatigue_index=2, injury_risk="low"),
            _player("P5", "Opening Batter", "Batter", fatigue_index=3, injury_risk="LOW"),
        ],
    }


@pytest.fixture
def client(orchestrator, settings):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:
    def test_root(self, client):
        assert client.get("/").json() == {"service": "tactiq-backend", "version": "1.0.0"}

    def test_live_and_ready(self, client):
        assert client.get(f"{PREFIX}/health/live").json() == {"status": "ok"}
        ready = client.get(f"{PREFIX}/health/ready").json()
        assert ready == {"status": "ready", "azure_openai": False, "agents_backend": "local"}


class TestRoutingEndpoints:
    def test_router_preview(self, client):
        resp = client.post(f"{PREFIX}/router", json={"snapshot": _snapshot(fatigue_index=8, injury_risk="high")})
        assert resp.status_code == 200
        body = resp.json()
        assert body["mode"] == "auto"
        assert body["decision"]["intent"] == "SAFETY_ALERT"
        assert body["decision"]["agents_to_run"] == ["FATIGUE", "RISK", "TACTICAL"]
        assert body["safety_ranking"]["bowler_candidates"][0]["player_id"] == "P2"

    def test_rank_excludes_active_player(self, client):
        resp = client.post(f"{PREFIX}/safety/rank", json={"snapshot": _snapshot(), "limit": 2})
        assert resp.status_code == 200
        ids = [c["player_id"] for c in resp.json()["bench_options"]]
        assert "P1" not in ids
        assert len(ids) == 2

    def test_invalid_snapshot_is_422(self, client):
        snapshot = _snapshot()
        snapshot["match"]["wickets"] = 11
        assert client.post(f"{PREFIX}/orchestrate", json={"snapshot": snapshot}).status_code == 422


class TestOrchestrateEndpoint:
    def test_batting_orchestration(self, client):
        resp = client.post(f"{PREFIX}/orchestrate", json={"snapshot": _snapshot(mode="BAT", fatigue_index=5)})
        assert resp.status_code == 200
        body = resp.json()
        assert body["decision"]["intent"] == "BATTING_NEXT"
        assert body["errors"] == []
        final = body["final_recommendation"]
        assert final["next_safe_bowler"]["player_id"] == "NONE"
        assert final["next_safe_batter"]["player_id"] == "P5"

    def test_partial_failure_returns_207(self, client, settings):
        failing = Orchestrator(
            settings,
            {
                AgentCode.FATIGUE: FatigueAgent(),
                AgentCode.RISK: ScriptedAgent(RiskAgent(), fail=True),
                AgentCode.TACTICAL: TacticalAgent(),
            },
        )
        app.dependency_overrides[get_orchestrator] = lambda: failing
        resp = client.post(f"{PREFIX}/orchestrate", json={"snapshot": _snapshot(fatigue_index=8, injury_risk="HIGH")})
        assert resp.status_code == 207
        body = resp.json()
        assert body["errors"] == [{"domain": "risk", "message": "risk runner exploded"}]
        assert body["results"]["tactical"]["status"] == "fallback"


class TestAgentEndpoints:
    def test_single_agent(self, client):
        resp = client.post(f"{PREFIX}/agents/risk", json=_snapshot(fatigue_index=7, injury_risk="MEDIUM"))
        assert resp.status_code == 200
        body = resp.json()
        assert body["agent"] == "RISK"
        assert body["status"] == "fallback"
        assert body["output"]["severity"] in ("LOW", "MEDIUM", "HIGH", "CRITICAL")

    def test_unknown_agent_is_404(self, client):
        assert client.post(f"{PREFIX}/agents/weather", json=_snapshot()).status_code == 404

    def test_unresolvable_active_player_is_400(self, client):
        assert client.post(f"{PREFIX}/agents/fatigue", json=_snapshot(active="P42")).status_code == 400
