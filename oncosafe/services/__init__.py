"""Services for the OncoSafeRx engine."""

from oncosafe.services.dosing_adjuster import ConservativeActionPolicy, DosingAdjuster
from oncosafe.services.identity_resolver import DrugIdentityResolver
from oncosafe.services.interaction_engine import InteractionMergeEngine
from oncosafe.services.reference_store import ReferenceStore, get_reference_store
from oncosafe.services.regimen_store import RegimenStore
from oncosafe.services.vocabulary import InMemoryVocabulary, RxNavVocabulary, VocabularyService

__all__ = [
    "ConservativeActionPolicy",
    "DosingAdjuster",
    "DrugIdentityResolver",
    "InteractionMergeEngine",
    "ReferenceStore",
    "get_reference_store",
    "RegimenStore",
    "InMemoryVocabulary",
    "RxNavVocabulary",
    "VocabularyService",
]
