"""
Tests for the RxNav vocabulary client.

Requests are answered by ``httpx.MockTransport`` handlers, so no network
access is needed.
"""

from datetime import datetime, timedelta

import httpx
import pytest

from oncosafe.config import get_settings
from oncosafe.core.errors import ExternalServiceError
from oncosafe.services.interaction_engine import InteractionMergeEngine
from oncosafe.services.vocabulary import CircuitBreaker, RxNavVocabulary

WARFARIN = "11289"
FLUCONAZOLE = "4450"

PAYLOADS = {
    "/REST/rxcui/855332/properties.json": {
        "properties": {"rxcui": "855332", "name": "warfarin sodium 5 MG Oral Tablet", "tty": "SCD"}
    },
    "/REST/rxcui/855332/related.json": {
        "relatedGroup": {
            "rxcui": "855332",
            "conceptGroup": [
                {"tty": "IN", "conceptProperties": [{"rxcui": WARFARIN, "name": "warfarin", "tty": "IN"}]}
            ]
        }
    },
    "/REST/rxcui/11289/properties.json": {
        "properties": {"rxcui": WARFARIN, "name": "warfarin", "tty": "IN"}
    },
    "/REST/rxcui/999/properties.json": {},
    "/REST/interaction/interaction.json": {
        "interactionTypeGroup": [
            {
                "sourceName": "DrugBank",
                "interactionType": [
                    {
                        "minConceptItem": {"rxcui": WARFARIN, "name": "warfarin"},
                        "interactionPair": [
                            {
                                "interactionConcept": [
                                    {"minConceptItem": {"rxcui": WARFARIN, "name": "warfarin"}},
                                    {"minConceptItem": {"rxcui": FLUCONAZOLE, "name": "fluconazole"}}
                                ],
                                "severity": "N/A",
                                "description": "Fluconazole may increase the anticoagulant effect of warfarin."
                            },
                            {
                                "interactionConcept": [
                                    {"minConceptItem": {"rxcui": WARFARIN, "name": "warfarin"}}
                                ],
                                "severity": "N/A",
                                "description": "Self-referencing pair without a partner."
                            }
                        ]
                    }
                ]
            }
        ]
    },
}


def _rxnav(handler) -> RxNavVocabulary:
    return RxNavVocabulary(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def _from_payloads(request: httpx.Request) -> httpx.Response:
    payload = PAYLOADS.get(request.url.path)
    if payload is None:
        return httpx.Response(404)
    return httpx.Response(200, json=payload)


@pytest.mark.asyncio
async def test_lookup_interactions_parses_pairs():
    vocabulary = _rxnav(_from_payloads)

    findings = await vocabulary.lookup_interactions(WARFARIN)

    assert len(findings) == 1
    finding = findings[0]
    assert finding.rxcui == WARFARIN
    assert finding.partner_rxcui == FLUCONAZOLE
    assert finding.partner_name == "fluconazole"
    assert finding.severity == "N/A"
    assert finding.source == "DrugBank"


@pytest.mark.asyncio
async def test_resolve_identities_falls_back_to_ingredient():
    vocabulary = _rxnav(_from_payloads)

    resolved = await vocabulary.resolve_identities(["855332", WARFARIN, "999"])

    assert resolved == {"855332": WARFARIN, WARFARIN: WARFARIN}


@pytest.mark.asyncio
async def test_non_object_payload_is_external_error():
    vocabulary = _rxnav(lambda request: httpx.Response(200, json=[{"x": 1}]))

    with pytest.raises(ExternalServiceError):
        await vocabulary.lookup_interactions(WARFARIN)


@pytest.mark.asyncio
async def test_malformed_nested_payload_is_external_error():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("related.json"):
            return httpx.Response(200, json={"relatedGroup": "unavailable"})
        if request.url.path.endswith("interaction.json"):
            return httpx.Response(200, json={"interactionTypeGroup": ["DrugBank"]})
        return _from_payloads(request)

    vocabulary = _rxnav(handler)

    with pytest.raises(ExternalServiceError):
        await vocabulary.resolve_identities(["855332"])
    with pytest.raises(ExternalServiceError):
        await vocabulary.lookup_interactions(WARFARIN)


@pytest.mark.asyncio
async def test_malformed_payload_degrades_check(reference_store, lookup_cache):
    vocabulary = _rxnav(lambda request: httpx.Response(200, json=[{"x": 1}]))
    engine = InteractionMergeEngine(reference_store, vocabulary, lookup_cache)

    result = await engine.check([WARFARIN, FLUCONAZOLE])

    assert result.partial is True
    assert result.external == []
    assert any("unavailable" in w for w in result.warnings)


@pytest.mark.asyncio
async def test_timeout_maps_to_external_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    vocabulary = _rxnav(handler)

    with pytest.raises(ExternalServiceError) as exc_info:
        await vocabulary.lookup_interactions(WARFARIN)

    assert exc_info.value.message == "Vocabulary service timed out"


@pytest.mark.asyncio
async def test_server_error_maps_to_external_error():
    vocabulary = _rxnav(lambda request: httpx.Response(503))

    with pytest.raises(ExternalServiceError) as exc_info:
        await vocabulary.lookup_interactions(WARFARIN)

    assert "HTTPStatusError" in exc_info.value.message


@pytest.mark.asyncio
async def test_open_circuit_skips_requests(monkeypatch):
    monkeypatch.setattr(get_settings(), "CIRCUIT_BREAKER_THRESHOLD", 2)
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(500)

    vocabulary = _rxnav(handler)

    for _ in range(2):
        with pytest.raises(ExternalServiceError):
            await vocabulary.lookup_interactions(WARFARIN)

    with pytest.raises(ExternalServiceError) as exc_info:
        await vocabulary.lookup_interactions(WARFARIN)

    assert exc_info.value.message == "Vocabulary service temporarily unavailable"
    assert len(calls) == 2


def test_circuit_breaker_half_opens_after_timeout():
    breaker = CircuitBreaker("test", failure_threshold=2, reset_timeout=60)

    breaker.record_failure()
    assert breaker.is_open is False

    breaker.record_failure()
    assert breaker.is_open is True
    assert breaker.state == "open"

    breaker._last_failure = datetime.utcnow() - timedelta(seconds=61)
    assert breaker.is_open is False
    assert breaker.state == "half-open"

    breaker.record_success()
    assert breaker.state == "closed"
