"""
Drug identity and interaction schemas.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    """Canonical four-level interaction severity."""
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    CONTRAINDICATED = "contraindicated"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.MINOR: 0,
    Severity.MODERATE: 1,
    Severity.MAJOR: 2,
    Severity.CONTRAINDICATED: 3,
}


class Provenance(str, Enum):
    """Where an interaction record came from."""
    CURATED = "curated"
    EXTERNAL = "external"


class InteractionRecord(BaseModel):
    """A normalized pairwise interaction. ``drug_a`` always sorts before ``drug_b``."""

    model_config = ConfigDict(frozen=True)

    drug_a: str = Field(..., description="Canonical RxCUI of the first drug")
    drug_b: str = Field(..., description="Canonical RxCUI of the second drug")
    drug_a_name: Optional[str] = None
    drug_b_name: Optional[str] = None
    severity: Severity
    source_severity: str = Field(..., description="Severity token as reported by the source")
    mechanism: str = ""
    clinical_effect: str = ""
    management: str = ""
    provenance: Provenance
    evidence: str = ""
    sources: tuple[str, ...] = Field(default_factory=tuple)
    primary: bool = Field(True, description="Authoritative record for this pair")

    @property
    def pair(self) -> tuple[str, str]:
        return (self.drug_a, self.drug_b)


class SeverityConflict(BaseModel):
    """Curated and external sources disagree on severity for one pair."""

    drug_a: str
    drug_b: str
    curated_severity: Severity
    external_severity: Severity
    resolution: str = "curated"


class InteractionCheckRequest(BaseModel):
    """Request body for an interaction check."""

    drugs: list[str] = Field(..., description="2-10 canonical RxCUIs")

    class Config:
        json_schema_extra = {
            "example": {"drugs": ["11289", "1191"]}
        }


class InteractionCheckResponse(BaseModel):
    """Merged interaction findings."""

    input_drugs: list[str]
    pairs_checked: int
    stored: list[InteractionRecord] = Field(default_factory=list)
    external: list[InteractionRecord] = Field(default_factory=list)
    conflicts: list[SeverityConflict] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    partial: bool = Field(False, description="External data was unavailable for at least one drug")
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ResolveRequest(BaseModel):
    """Request body for identity resolution."""

    identifiers: list[str] = Field(..., min_length=1, max_length=50)


class ResolveResponse(BaseModel):
    """Canonical identifiers for each resolvable input."""

    canonical: dict[str, str] = Field(default_factory=dict)
    unresolved: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class DrugResponse(BaseModel):
    """Catalog entry for a single drug."""

    rxcui: str
    name: str
    generic_name: Optional[str] = None
    brand_names: list[str] = Field(default_factory=list)
    aliases: list[str] = Field(default_factory=list)


class KnownInteractionsResponse(BaseModel):
    """Filtered view of the curated interaction store."""

    count: int
    total: int
    filters: dict[str, Optional[str]]
    interactions: list[InteractionRecord]


class DrugInteractionsResponse(BaseModel):
    """Every known interaction partner of one drug."""

    rxcui: str
    name: Optional[str] = None
    total: int = Field(..., description="Distinct interaction partners")
    breakdown: dict[str, int] = Field(..., description="Partner count per severity level")
    stored: list[InteractionRecord] = Field(default_factory=list)
    external: list[InteractionRecord] = Field(default_factory=list)
    conflicts: list[SeverityConflict] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    partial: bool = False
    timestamp: datetime = Field(default_factory=datetime.utcnow)
