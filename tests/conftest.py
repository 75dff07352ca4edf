"""
Pytest fixtures for OncoSafeRx engine tests.
"""

import os

import pytest
from fastapi.testclient import TestClient

# Set environment variables before imports
os.environ["ENGINE_API_KEY"] = "test-api-key-12345"
os.environ["REDIS_ENABLED"] = "false"
os.environ["DEBUG"] = "true"

from oncosafe.core.cache import TTLCache
from oncosafe.dependencies import get_cache, get_vocabulary
from oncosafe.main import app
from oncosafe.services.reference_store import ReferenceStore
from oncosafe.services.vocabulary import ExternalFinding, InMemoryVocabulary

WARFARIN = "11289"
ASPIRIN = "1191"
AMIODARONE = "703"
FLUCONAZOLE = "4450"
SIMVASTATIN = "36567"


class FakeClock:
    """Manually advanced clock for cache expiry tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def alias_document() -> list[dict]:
    return [
        {"rxcui": WARFARIN, "name": "Warfarin", "brand_names": ["Coumadin"], "aliases": []},
        {"rxcui": ASPIRIN, "name": "Aspirin", "brand_names": [], "aliases": ["ASA"]},
        {"rxcui": AMIODARONE, "name": "Amiodarone", "brand_names": ["Cordarone"]},
        {"rxcui": FLUCONAZOLE, "name": "Fluconazole", "brand_names": ["Diflucan"]},
        {"rxcui": "4492", "name": "Fluorouracil", "aliases": ["5-FU"]},
        {"rxcui": "32592", "name": "Oxaliplatin"},
        {"rxcui": "6313", "name": "Leucovorin"},
        {"rxcui": "3639", "name": "Doxorubicin"},
        {"rxcui": "3002", "name": "Cyclophosphamide"},
    ]


@pytest.fixture
def interaction_document() -> list[dict]:
    return [
        {
            "drug_a": WARFARIN,
            "drug_b": ASPIRIN,
            "severity": "high",
            "mechanism": "Additive anticoagulant and antiplatelet effects",
            "effect": "Bleeding",
            "management": "Avoid routine combination",
            "evidence_level": "established",
            "sources": "Lexicomp;CHEST",
        },
        {
            "drug_a": AMIODARONE,
            "drug_b": WARFARIN,
            "severity": "Major",
            "mechanism": "CYP2C9 inhibition",
            "effect": "Elevated INR",
            "management": "Reduce warfarin dose",
            "evidence_level": "established",
            "sources": "FDA label",
        },
    ]


@pytest.fixture
def regimen_document() -> list[dict]:
    return [
        {
            "id": "FOLFOX",
            "name": "FOLFOX",
            "indication": "Colorectal cancer",
            "cycle_length_days": 14,
            "components": [
                {"name": "Oxaliplatin", "dose": "85 mg/m2", "rxcui": "32592", "tags": ["myelosuppressive"]},
                {"name": "Leucovorin", "dose": "400 mg/m2", "rxcui": "6313"},
                {"name": "Fluorouracil", "dose": "2400 mg/m2", "rxcui": "4492", "tags": ["myelosuppressive"]},
            ],
            "rules": [],
        },
        {
            "id": "AC",
            "name": "AC",
            "indication": "Breast cancer",
            "cycle_length_days": 21,
            "components": [
                {"name": "Doxorubicin", "dose": "60 mg/m2", "rxcui": "3639",
                 "tags": ["myelosuppressive", "cardiotoxic"]},
                {"name": "Cyclophosphamide", "dose": "600 mg/m2", "rxcui": "3002",
                 "tags": ["myelosuppressive"]},
            ],
            "rules": [
                {"component": "Cyclophosphamide", "lab": "creatinine_clearance", "below": 10,
                 "action": "reduce", "magnitude": 25, "rationale": "Severe renal impairment"},
            ],
        },
    ]


@pytest.fixture
def reference_store(alias_document, interaction_document, regimen_document) -> ReferenceStore:
    """Reference store loaded with the small fixture documents."""
    store = ReferenceStore()
    store.load(alias_document, interaction_document, regimen_document)
    return store


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def lookup_cache() -> TTLCache:
    return TTLCache(max_entries=100, ttl=60)


@pytest.fixture
def vocabulary() -> InMemoryVocabulary:
    """External service fake reporting a warfarin/fluconazole interaction."""
    return InMemoryVocabulary(
        identities={"855332": WARFARIN, SIMVASTATIN: SIMVASTATIN},
        findings=[
            ExternalFinding(
                rxcui=WARFARIN,
                partner_rxcui=FLUCONAZOLE,
                partner_name="fluconazole",
                severity="high",
                description="Fluconazole may increase the anticoagulant effect of warfarin.",
                source="DrugBank",
            ),
        ],
    )


@pytest.fixture
def test_client(vocabulary: InMemoryVocabulary):
    """Create synchronous test client with the external service faked out."""
    app.dependency_overrides[get_vocabulary] = lambda: vocabulary
    app.dependency_overrides[get_cache] = lambda: TTLCache(max_entries=100, ttl=60)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def api_key_headers():
    """Headers with valid API key."""
    return {"X-API-Key": "test-api-key-12345"}
