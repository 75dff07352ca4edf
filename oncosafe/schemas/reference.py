"""
Reference-data document schemas.

These models declare the exact shape of externally authored datasets. They
forbid undeclared fields so that the validator can reject anything outside
the declared layout.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

RXCUI_PATTERN = r"^[0-9]{1,10}$"


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


class StrictModel(BaseModel):
    """Base for document rows: unknown fields fail, rows are immutable."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class DrugEntry(StrictModel):
    """One drug in the alias document."""

    rxcui: str = Field(..., pattern=RXCUI_PATTERN, description="Canonical RxCUI")
    name: str = Field(..., min_length=1, description="Display name")
    generic_name: Optional[str] = Field(None, description="Generic name if different from display name")
    brand_names: tuple[str, ...] = Field(default_factory=tuple)
    aliases: tuple[str, ...] = Field(default_factory=tuple, description="Other strings and RxCUIs that denote this drug")

    @field_validator("rxcui", "name", "generic_name", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        return _strip(v)

    def all_names(self) -> list[str]:
        """Every raw string that should resolve to this drug."""
        names = [self.rxcui, self.name]
        if self.generic_name:
            names.append(self.generic_name)
        names.extend(self.brand_names)
        names.extend(self.aliases)
        return names


class CuratedInteractionEntry(StrictModel):
    """One row of the curated interaction table."""

    drug_a: str = Field(..., pattern=RXCUI_PATTERN)
    drug_b: str = Field(..., pattern=RXCUI_PATTERN)
    severity: str = Field(..., min_length=1, description="Source severity token")
    mechanism: str = Field(..., min_length=1)
    effect: str = Field(..., min_length=1)
    management: str = Field(..., min_length=1)
    evidence_level: str = Field(..., min_length=1)
    sources: tuple[str, ...] = Field(default_factory=tuple)

    @field_validator(
        "drug_a", "drug_b", "severity", "mechanism", "effect",
        "management", "evidence_level", mode="before"
    )
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        return _strip(v)

    @field_validator("sources", mode="before")
    @classmethod
    def split_sources(cls, v: Any) -> Any:
        """Tabular files carry sources as one ``;``-separated cell."""
        if isinstance(v, str):
            return tuple(s.strip() for s in v.split(";") if s.strip())
        return v


class Violation(BaseModel):
    """A single reason a reference document was rejected."""

    document: str = Field(..., description="aliases, interactions or regimens")
    path: str = Field(..., description="Dotted path to the offending field")
    constraint: str = Field(..., description="Expected constraint")
    actual: Any = Field(None, description="Value that was found")


class ValidationReport(BaseModel):
    """Outcome of validating a set of reference documents."""

    ok: bool
    violations: list[Violation] = Field(default_factory=list)
    counts: dict[str, int] = Field(default_factory=dict)


class ReferenceValidateRequest(BaseModel):
    """Raw documents submitted for validation."""

    aliases: Any = Field(..., description="Alias document (list of drug entries)")
    interactions: Any = Field(..., description="Interaction document (list of rows)")
    regimens: Optional[Any] = Field(None, description="Optional regimen document")


class ReloadResponse(BaseModel):
    """Reference data reload result."""

    success: bool
    message: str
    counts: dict[str, int] = Field(default_factory=dict)
