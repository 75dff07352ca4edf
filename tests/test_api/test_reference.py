"""
Tests for reference data administration endpoints.
"""

import json
import shutil
from pathlib import Path

from fastapi.testclient import TestClient

from oncosafe.config import get_settings
from oncosafe.services import reference_store as reference_store_module
from oncosafe.services.reference_store import ReferenceStore


def test_validate_requires_auth(test_client: TestClient):
    response = test_client.post(
        "/api/v1/reference/validate",
        json={"aliases": [], "interactions": []}
    )

    assert response.status_code == 401


def test_invalid_api_key(test_client: TestClient):
    """Test endpoint rejects invalid API key."""
    headers = {"X-API-Key": "invalid-key"}
    response = test_client.post(
        "/api/v1/reference/validate",
        json={"aliases": [], "interactions": []},
        headers=headers
    )

    assert response.status_code == 403


def test_validate_documents(
    test_client: TestClient,
    api_key_headers: dict,
    alias_document,
    interaction_document,
    regimen_document
):
    response = test_client.post(
        "/api/v1/reference/validate",
        json={
            "aliases": alias_document,
            "interactions": interaction_document,
            "regimens": regimen_document,
        },
        headers=api_key_headers
    )

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["counts"]["regimens"] == 2


def test_validate_reports_violations(
    test_client: TestClient,
    api_key_headers: dict,
    alias_document,
    interaction_document
):
    interaction_document[1]["severity"] = "N/A"

    response = test_client.post(
        "/api/v1/reference/validate",
        json={"aliases": alias_document, "interactions": interaction_document},
        headers=api_key_headers
    )

    data = response.json()
    assert data["ok"] is False
    assert data["violations"][0]["path"] == "interactions[1].severity"
    assert data["violations"][0]["actual"] == "N/A"


def test_reload(test_client: TestClient, api_key_headers: dict):
    response = test_client.post("/api/v1/reference/reload", headers=api_key_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["counts"]["regimens"] >= 8


def test_rejected_reload_keeps_serving(
    test_client: TestClient,
    api_key_headers: dict,
    tmp_path: Path,
    monkeypatch
):
    assert test_client.get("/api/v1/health").json()["status"] == "healthy"

    settings = get_settings()
    for name in (settings.ALIAS_FILE, settings.INTERACTION_FILE, settings.REGIMEN_FILE):
        shutil.copy(Path(settings.REFERENCE_DATA_DIR) / name, tmp_path / name)

    aliases = json.loads((tmp_path / settings.ALIAS_FILE).read_text())
    aliases[1]["aliases"] = ["Coumadin"]
    (tmp_path / settings.ALIAS_FILE).write_text(json.dumps(aliases))
    monkeypatch.setattr(settings, "REFERENCE_DATA_DIR", tmp_path)

    response = test_client.post("/api/v1/reference/reload", headers=api_key_headers)

    assert response.status_code == 422
    data = response.json()
    assert data["error"] == "SchemaViolationError"
    assert data["details"]["violations"][0]["constraint"] == (
        "alias must resolve to a single canonical identifier"
    )

    drug = test_client.get("/api/v1/drugs/coumadin").json()
    assert drug["rxcui"] == "11289"


def test_reload_reads_files_once(test_client: TestClient, api_key_headers: dict, monkeypatch):
    """A reload on a fresh process does not load the files before reloading them."""
    monkeypatch.setattr(reference_store_module, "_store", None)
    calls = []
    original = ReferenceStore.load_configured

    def counting_load(self):
        calls.append(self)
        return original(self)

    monkeypatch.setattr(ReferenceStore, "load_configured", counting_load)

    response = test_client.post("/api/v1/reference/reload", headers=api_key_headers)

    assert response.status_code == 200
    assert len(calls) == 1
    assert reference_store_module.get_reference_store().is_loaded
