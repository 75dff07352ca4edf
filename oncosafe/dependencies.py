"""
FastAPI dependency injection utilities.
"""

from typing import Optional

from fastapi import Depends

from oncosafe.core.auth import verify_api_key
from oncosafe.core.cache import CacheService, TTLCache, get_cache_service, get_lookup_cache
from oncosafe.services.dosing_adjuster import DosingAdjuster
from oncosafe.services.identity_resolver import DrugIdentityResolver
from oncosafe.services.interaction_engine import InteractionMergeEngine
from oncosafe.services.reference_store import ReferenceStore, get_reference_store
from oncosafe.services.regimen_store import RegimenStore
from oncosafe.services.vocabulary import RxNavVocabulary, VocabularyService


# Global vocabulary client for connection pooling
_vocabulary: Optional[RxNavVocabulary] = None


def get_vocabulary() -> VocabularyService:
    """Get the shared RxNav client."""
    global _vocabulary
    if _vocabulary is None:
        _vocabulary = RxNavVocabulary()
    return _vocabulary


async def close_vocabulary() -> None:
    """Close the vocabulary client on shutdown."""
    global _vocabulary
    if _vocabulary is not None:
        await _vocabulary.close()
        _vocabulary = None


def get_store() -> ReferenceStore:
    """Get the reference data store."""
    return get_reference_store()


def get_reload_target() -> ReferenceStore:
    """Get the reference data store without loading the configured files."""
    return get_reference_store(load=False)


def get_cache() -> TTLCache:
    """Get the in-memory lookup cache."""
    return get_lookup_cache()


async def get_shared_cache() -> CacheService:
    """Get the Redis tier (a no-op when Redis is unavailable)."""
    return await get_cache_service()


def get_identity_resolver(
    store: ReferenceStore = Depends(get_store),
    vocabulary: VocabularyService = Depends(get_vocabulary),
    cache: TTLCache = Depends(get_cache),
    shared_cache: CacheService = Depends(get_shared_cache)
) -> DrugIdentityResolver:
    """Get drug identity resolver instance."""
    return DrugIdentityResolver(store, vocabulary, cache, shared_cache)


def get_interaction_engine(
    store: ReferenceStore = Depends(get_store),
    vocabulary: VocabularyService = Depends(get_vocabulary),
    cache: TTLCache = Depends(get_cache),
    shared_cache: CacheService = Depends(get_shared_cache)
) -> InteractionMergeEngine:
    """Get interaction merge engine instance."""
    return InteractionMergeEngine(store, vocabulary, cache, shared_cache)


def get_regimen_store(store: ReferenceStore = Depends(get_store)) -> RegimenStore:
    """Get regimen template store instance."""
    return RegimenStore(store)


def get_dosing_adjuster(regimens: RegimenStore = Depends(get_regimen_store)) -> DosingAdjuster:
    """Get dosing adjuster instance."""
    return DosingAdjuster(regimens)


# Re-export for convenience
__all__ = [
    "verify_api_key",
    "get_vocabulary",
    "close_vocabulary",
    "get_store",
    "get_reload_target",
    "get_cache",
    "get_shared_cache",
    "get_identity_resolver",
    "get_interaction_engine",
    "get_regimen_store",
    "get_dosing_adjuster",
]
