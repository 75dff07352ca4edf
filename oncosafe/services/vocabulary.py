"""
External vocabulary / interaction service clients.

The engine talks to the outside world only through ``VocabularyService``:
``resolve_identities`` maps numeric drug identifiers to canonical ingredient
identifiers and ``lookup_interactions`` lists the drugs a given identifier
interacts with, with source-specific severity tokens. ``RxNavVocabulary``
implements it over the RxNav REST API; ``InMemoryVocabulary`` is a fixed
table used for tests and offline runs.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

import httpx

from oncosafe.config import get_settings
from oncosafe.core.errors import ExternalServiceError
from oncosafe.core.logging import get_logger

logger = get_logger(__name__)

# RxNorm term types that already denote an ingredient
INGREDIENT_TTYS = {"IN", "MIN", "PIN"}


@dataclass(frozen=True)
class ExternalFinding:
    """One interaction reported by the external service for a queried drug."""

    rxcui: str
    partner_rxcui: str
    partner_name: Optional[str]
    severity: str
    description: str
    source: str

    def to_dict(self) -> dict:
        return {
            "rxcui": self.rxcui,
            "partner_rxcui": self.partner_rxcui,
            "partner_name": self.partner_name,
            "severity": self.severity,
            "description": self.description,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExternalFinding":
        return cls(**data)


class VocabularyService(Protocol):
    """Capability interface for the external vocabulary/interaction lookup."""

    async def resolve_identities(self, identifiers: list[str]) -> dict[str, str]:
        """Map identifiers to canonical ids; unknown identifiers are omitted."""
        ...

    async def lookup_interactions(self, rxcui: str) -> list[ExternalFinding]:
        """List interactions reported for one canonical identifier."""
        ...

    async def close(self) -> None:
        ...


class CircuitBreaker:
    """Circuit breaker for external API calls."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: int = 60
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._failure_count = 0
        self._last_failure: Optional[datetime] = None
        self._state = "closed"  # closed, open, half-open

    @property
    def state(self) -> str:
        return self._state

    @property
    def is_open(self) -> bool:
        """Check if circuit is open (blocking requests)."""
        if self._state == "open":
            if self._last_failure:
                elapsed = (datetime.utcnow() - self._last_failure).total_seconds()
                if elapsed >= self.reset_timeout:
                    self._state = "half-open"
                    return False
            return True
        return False

    def record_success(self) -> None:
        """Record a successful call."""
        self._failure_count = 0
        self._state = "closed"

    def record_failure(self) -> None:
        """Record a failed call."""
        self._failure_count += 1
        self._last_failure = datetime.utcnow()

        if self._failure_count >= self.failure_threshold:
            self._state = "open"
            logger.warning(
                f"Circuit breaker {self.name} opened",
                extra={"failures": self._failure_count}
            )


class RxNavVocabulary:
    """``VocabularyService`` backed by the NLM RxNav REST API."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        settings = get_settings()
        self._base_url = settings.VOCABULARY_BASE_URL.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.VOCABULARY_TIMEOUT),
            limits=httpx.Limits(
                max_keepalive_connections=settings.HTTP_POOL_SIZE,
                keepalive_expiry=settings.HTTP_POOL_KEEPALIVE
            )
        )
        self._breaker = CircuitBreaker(
            "rxnav",
            failure_threshold=settings.CIRCUIT_BREAKER_THRESHOLD,
            reset_timeout=settings.CIRCUIT_BREAKER_TIMEOUT
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get_json(self, path: str, params: Optional[dict] = None) -> dict:
        if self._breaker.is_open:
            raise ExternalServiceError(
                "Vocabulary service temporarily unavailable",
                {"circuit": self._breaker.name}
            )

        try:
            response = await self._client.get(f"{self._base_url}{path}", params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as e:
            self._breaker.record_failure()
            raise ExternalServiceError("Vocabulary service timed out", {"path": path}) from e
        except (httpx.HTTPError, ValueError) as e:
            self._breaker.record_failure()
            raise ExternalServiceError(
                f"Vocabulary service request failed: {type(e).__name__}",
                {"path": path}
            ) from e

        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            self._breaker.record_failure()
            raise ExternalServiceError(
                f"Vocabulary service returned a {type(payload).__name__}, expected an object",
                {"path": path}
            )

        self._breaker.record_success()
        return payload

    @staticmethod
    def _first_ingredient(related: dict) -> Optional[str]:
        for group in (related.get("relatedGroup") or {}).get("conceptGroup") or []:
            for concept in group.get("conceptProperties") or []:
                if concept.get("rxcui"):
                    return concept["rxcui"]
        return None

    async def _resolve_one(self, identifier: str) -> Optional[str]:
        data = await self._get_json(f"/rxcui/{identifier}/properties.json")
        try:
            properties = data.get("properties") or {}
            rxcui = properties.get("rxcui")
            is_ingredient = properties.get("tty") in INGREDIENT_TTYS
        except (AttributeError, TypeError) as e:
            raise ExternalServiceError(
                "Malformed properties payload from vocabulary service",
                {"identifier": identifier}
            ) from e

        if not rxcui:
            return None
        if is_ingredient:
            return rxcui

        # Clinical drugs and brands resolve to their ingredient
        related = await self._get_json(f"/rxcui/{rxcui}/related.json", params={"tty": "IN"})
        try:
            return self._first_ingredient(related) or rxcui
        except (AttributeError, TypeError, KeyError) as e:
            raise ExternalServiceError(
                "Malformed related-concept payload from vocabulary service",
                {"identifier": identifier}
            ) from e

    async def resolve_identities(self, identifiers: list[str]) -> dict[str, str]:
        results = await asyncio.gather(*(self._resolve_one(i) for i in identifiers))
        return {
            identifier: canonical
            for identifier, canonical in zip(identifiers, results)
            if canonical
        }

    @staticmethod
    def _parse_interactions(rxcui: str, data: dict) -> list[ExternalFinding]:
        findings = []
        for group in data.get("interactionTypeGroup") or []:
            source = group.get("sourceName") or "RxNav"
            for interaction_type in group.get("interactionType") or []:
                for pair in interaction_type.get("interactionPair") or []:
                    concepts = [
                        c.get("minConceptItem") or {}
                        for c in pair.get("interactionConcept") or []
                    ]
                    partners = [c for c in concepts if c.get("rxcui") and c.get("rxcui") != rxcui]
                    if not partners:
                        continue
                    partner = partners[0]
                    findings.append(ExternalFinding(
                        rxcui=rxcui,
                        partner_rxcui=str(partner["rxcui"]),
                        partner_name=partner.get("name"),
                        severity=pair.get("severity") or "",
                        description=pair.get("description") or "",
                        source=source
                    ))
        return findings

    async def lookup_interactions(self, rxcui: str) -> list[ExternalFinding]:
        data = await self._get_json("/interaction/interaction.json", params={"rxcui": rxcui})
        try:
            findings = self._parse_interactions(rxcui, data)
        except (AttributeError, TypeError, KeyError) as e:
            raise ExternalServiceError(
                "Malformed interaction payload from vocabulary service",
                {"rxcui": rxcui}
            ) from e

        logger.debug(f"RxNav returned {len(findings)} interactions for {rxcui}")
        return findings


class InMemoryVocabulary:
    """
    ``VocabularyService`` over fixed tables.

    Set ``fail_with`` to make every call raise, which is how tests exercise
    degraded behaviour.
    """

    def __init__(
        self,
        identities: Optional[dict[str, str]] = None,
        findings: Optional[list[ExternalFinding]] = None,
        fail_with: Optional[Exception] = None
    ):
        self.identities = dict(identities or {})
        self.findings = list(findings or [])
        self.fail_with = fail_with
        self.resolve_calls: list[list[str]] = []
        self.lookup_calls: list[str] = []

    async def resolve_identities(self, identifiers: list[str]) -> dict[str, str]:
        self.resolve_calls.append(list(identifiers))
        if self.fail_with is not None:
            raise self.fail_with
        return {i: self.identities[i] for i in identifiers if i in self.identities}

    async def lookup_interactions(self, rxcui: str) -> list[ExternalFinding]:
        self.lookup_calls.append(rxcui)
        if self.fail_with is not None:
            raise self.fail_with

        results = []
        for finding in self.findings:
            if finding.rxcui == rxcui:
                results.append(finding)
            elif finding.partner_rxcui == rxcui:
                # Symmetric view of the same finding
                results.append(ExternalFinding(
                    rxcui=rxcui,
                    partner_rxcui=finding.rxcui,
                    partner_name=None,
                    severity=finding.severity,
                    description=finding.description,
                    source=finding.source
                ))
        return results

    async def close(self) -> None:
        return None
