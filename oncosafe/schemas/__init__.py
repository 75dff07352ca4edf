"""Pydantic schemas for request/response validation and reference documents."""

from oncosafe.schemas.common import ErrorResponse, HealthResponse
from oncosafe.schemas.dosing import (
    DosingAction,
    DosingAdjustRequest,
    DosingAdjustResponse,
    DosingRecommendation,
    DosingTrigger,
    LabSnapshot,
    MetabolizerPhenotype,
    TriggerKind,
)
from oncosafe.schemas.interactions import (
    DrugInteractionsResponse,
    DrugResponse,
    InteractionCheckRequest,
    InteractionCheckResponse,
    InteractionRecord,
    KnownInteractionsResponse,
    Provenance,
    ResolveRequest,
    ResolveResponse,
    Severity,
    SeverityConflict,
)
from oncosafe.schemas.reference import (
    CuratedInteractionEntry,
    DrugEntry,
    ReferenceValidateRequest,
    ReloadResponse,
    ValidationReport,
    Violation,
)
from oncosafe.schemas.regimens import (
    Regimen,
    RegimenComponent,
    RegimenLabRule,
    RegimenListResponse,
    ToxicityTag,
)

__all__ = [
    # Common
    "ErrorResponse",
    "HealthResponse",
    # Dosing
    "DosingAction",
    "DosingAdjustRequest",
    "DosingAdjustResponse",
    "DosingRecommendation",
    "DosingTrigger",
    "LabSnapshot",
    "MetabolizerPhenotype",
    "TriggerKind",
    # Interactions
    "DrugInteractionsResponse",
    "DrugResponse",
    "InteractionCheckRequest",
    "InteractionCheckResponse",
    "InteractionRecord",
    "KnownInteractionsResponse",
    "Provenance",
    "ResolveRequest",
    "ResolveResponse",
    "Severity",
    "SeverityConflict",
    # Reference data
    "CuratedInteractionEntry",
    "DrugEntry",
    "ReferenceValidateRequest",
    "ReloadResponse",
    "ValidationReport",
    "Violation",
    # Regimens
    "Regimen",
    "RegimenComponent",
    "RegimenLabRule",
    "RegimenListResponse",
    "ToxicityTag",
]
