import pytest

from app.core import health as health_module


@pytest.fixture(autouse=True)
def _mock_env(monkeypatch):
    monkeypatch.setattr(health_module.settings, "environment", "test")
    yield


def test_health_live_returns_ok(client) -> None:
    response = client.get("/api/v1/health/live")
    assert response.status_code == 200
    payload = response.json()["data"]
    assert payload.get("status") == "ok"
    assert "timestamp" in payload


def test_health_ready_ok(client) -> None:
    response = client.get("/api/v1/health/ready")
    assert response.status_code == 200
    payload = response.json()["data"]
    assert payload.get("status") == "ok"
    assert payload.get("ready") is True
    assert payload.get("environment") == "test"
    assert payload["checks"]["api"]["version"] == health_module.APP_VERSION
    assert payload["checks"]["policies"]["status"] == "ok"


def test_health_ready_degraded(client, monkeypatch) -> None:
    async def bad_policies():
        return {"status": "error", "error": "contribution min base exceeds max base"}

    monkeypatch.setattr(health_module, "_check_policy_tables", bad_policies)

    response = client.get("/api/v1/health/ready")
    assert response.status_code == 200
    payload = response.json()["data"]
    assert payload.get("status") == "degraded"
    assert payload.get("ready") is False
    assert payload["checks"]["policies"]["status"] == "error"
