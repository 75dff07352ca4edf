"""
Drug Identity Resolver

Maps accepted drug identifiers and names to canonical RxCUIs using the
AliasMap, falling back to one batched call to the external vocabulary for
numeric identifiers the local data does not know.
"""

import re
from typing import Optional

from oncosafe.core.cache import CacheService, TTLCache
from oncosafe.core.errors import ExternalServiceError, ValidationError
from oncosafe.core.logging import get_logger
from oncosafe.schemas.interactions import ResolveResponse
from oncosafe.services.reference_store import ReferenceStore
from oncosafe.services.vocabulary import VocabularyService

logger = get_logger(__name__)

_RXCUI_RE = re.compile(r"[0-9]{1,10}")


def is_rxcui(value: str) -> bool:
    """True if ``value`` has the numeric identifier format the vocabulary accepts."""
    return bool(_RXCUI_RE.fullmatch(value))


class DrugIdentityResolver:
    """Resolve raw drug identifiers to canonical identifiers."""

    def __init__(
        self,
        store: ReferenceStore,
        vocabulary: VocabularyService,
        cache: TTLCache,
        shared_cache: Optional[CacheService] = None
    ):
        self.store = store
        self.vocabulary = vocabulary
        self.cache = cache
        self.shared_cache = shared_cache

    async def resolve(self, identifiers: list[str]) -> ResolveResponse:
        """
        Resolve identifiers.

        Raises:
            ValidationError: If any identifier is blank, or is neither a known
                alias nor a well-formed numeric identifier.
        """
        snapshot = self.store.snapshot
        canonical: dict[str, str] = {}
        pending: dict[str, list[str]] = {}
        invalid: list[str] = []

        for raw in identifiers:
            if raw in canonical or any(raw in inputs for inputs in pending.values()):
                continue

            normalized = raw.strip().casefold() if isinstance(raw, str) else ""
            if not normalized:
                invalid.append(raw)
                continue

            local = snapshot.resolve_alias(normalized)
            if local is not None:
                canonical[raw] = local
            elif is_rxcui(normalized):
                pending.setdefault(normalized, []).append(raw)
            else:
                invalid.append(raw)

        if invalid:
            raise ValidationError(
                f"Unrecognized drug identifier(s): {', '.join(repr(i) for i in invalid)}",
                {"invalid": invalid}
            )

        warnings: list[str] = []
        if pending:
            found = await self._resolve_external(list(pending), warnings)
            for normalized, inputs in pending.items():
                if normalized in found:
                    for raw in inputs:
                        canonical[raw] = found[normalized]

        unresolved = [raw for inputs in pending.values() for raw in inputs if raw not in canonical]
        if unresolved:
            logger.info(
                f"{len(unresolved)} identifier(s) could not be resolved",
                extra={"unresolved": unresolved}
            )

        return ResolveResponse(canonical=canonical, unresolved=unresolved, warnings=warnings)

    async def _resolve_external(self, identifiers: list[str], warnings: list[str]) -> dict[str, str]:
        """Resolve via caches first, then one batched vocabulary call."""
        found: dict[str, str] = {}
        misses: list[str] = []

        for identifier in identifiers:
            cached = self.cache.get(("identity", identifier))
            if cached is None and self.shared_cache is not None:
                cached = await self.shared_cache.get_identity(identifier)
                if cached is not None:
                    self.cache.set(("identity", identifier), cached)
            if cached is not None:
                found[identifier] = cached
            else:
                misses.append(identifier)

        if not misses:
            return found

        try:
            resolved = await self.vocabulary.resolve_identities(misses)
        except ExternalServiceError as e:
            logger.warning(f"Identity lookup degraded: {e.message}", extra={"identifiers": misses})
            warnings.append(
                "External vocabulary unavailable; identifiers not in the local alias table were not resolved"
            )
            return found

        for identifier, canonical_id in resolved.items():
            found[identifier] = canonical_id
            self.cache.set(("identity", identifier), canonical_id)
            if self.shared_cache is not None:
                await self.shared_cache.set_identity(identifier, canonical_id)

        return found
