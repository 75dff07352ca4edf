"""
Tests for health and monitoring endpoints.
"""

import json
import shutil
from pathlib import Path

from fastapi.testclient import TestClient

from oncosafe.config import get_settings
from oncosafe.services import reference_store as reference_store_module


def test_health_check(test_client: TestClient):
    """Test health endpoint returns correct structure."""
    response = test_client.get("/api/v1/health")

    assert response.status_code == 200
    data = response.json()

    assert "service" in data
    assert "version" in data
    assert data["status"] == "healthy"
    assert data["reference_data"]["regimens"] >= 8
    assert data["reference_data"]["interactions"] > 0
    assert data["redis"] is False


def test_root_endpoint(test_client: TestClient):
    """Test root endpoint returns service info."""
    response = test_client.get("/")

    assert response.status_code == 200
    data = response.json()

    assert "service" in data
    assert "version" in data


def test_metrics_endpoint(test_client: TestClient):
    test_client.post("/api/v1/interactions/check", json={"drugs": ["11289", "1191"]})

    response = test_client.get("/api/v1/metrics")

    assert response.status_code == 200
    assert "oncosafe_interaction_checks_total" in response.text


def test_timing_header(test_client: TestClient):
    response = test_client.get("/api/v1/health")

    assert "X-Process-Time" in response.headers


def test_health_degraded_with_invalid_reference_data(
    test_client: TestClient,
    tmp_path: Path,
    monkeypatch
):
    settings = get_settings()
    for name in (settings.ALIAS_FILE, settings.INTERACTION_FILE, settings.REGIMEN_FILE):
        shutil.copy(Path(settings.REFERENCE_DATA_DIR) / name, tmp_path / name)

    aliases = json.loads((tmp_path / settings.ALIAS_FILE).read_text())
    aliases[1]["aliases"] = ["Coumadin"]
    (tmp_path / settings.ALIAS_FILE).write_text(json.dumps(aliases))
    monkeypatch.setattr(settings, "REFERENCE_DATA_DIR", tmp_path)
    monkeypatch.setattr(reference_store_module, "_store", None)

    response = test_client.get("/api/v1/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["reference_data"]["drugs"] == 0

    # Requests keep working against the empty store
    response = test_client.post("/api/v1/interactions/check", json={"drugs": ["11289", "1191"]})
    assert response.status_code == 200
    assert response.json()["stored"] == []
