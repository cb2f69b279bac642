"""
Tests for health and version endpoints
"""


def test_health(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "leave-ledger"}


def test_version(client):
    response = client.get("/api/v1/version")
    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "leave-ledger"
    assert data["env"] == "local"
    assert "version" in data
