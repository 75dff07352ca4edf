"""
Regimen template schemas.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from oncosafe.schemas.reference import RXCUI_PATTERN, StrictModel


class ToxicityTag(str, Enum):
    """Toxicity classes that safety-threshold rules target."""
    MYELOSUPPRESSIVE = "myelosuppressive"
    CARDIOTOXIC = "cardiotoxic"
    NEPHROTOXIC = "nephrotoxic"
    HEPATOTOXIC = "hepatotoxic"


class RegimenComponent(StrictModel):
    """A drug within a regimen and its standard dose."""

    name: str = Field(..., min_length=1)
    dose: str = Field(..., min_length=1, description="Standard dose, e.g. '85 mg/m2 IV day 1'")
    rxcui: Optional[str] = Field(None, pattern=RXCUI_PATTERN)
    tags: tuple[ToxicityTag, ...] = Field(default_factory=tuple)

    @property
    def key(self) -> str:
        return self.name.strip().lower()


class RegimenLabRule(StrictModel):
    """
    Regimen-specific safety threshold.

    Fires when ``lab`` is below ``below`` (or at/above ``at_or_above``).
    """

    component: str = Field(..., min_length=1)
    lab: str = Field(..., pattern=r"^(anc|platelets|creatinine_clearance|lvef|bilirubin)$")
    below: Optional[float] = None
    at_or_above: Optional[float] = None
    action: str = Field(..., pattern=r"^(hold|reduce)$")
    magnitude: Optional[int] = Field(None, ge=1, le=100)
    rationale: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_threshold(self) -> "RegimenLabRule":
        if (self.below is None) == (self.at_or_above is None):
            raise ValueError("exactly one of 'below' or 'at_or_above' is required")
        if self.action == "reduce" and self.magnitude is None:
            raise ValueError("'reduce' rules require a magnitude")
        return self


class Regimen(StrictModel):
    """Canonical multi-drug treatment regimen."""

    id: str = Field(..., pattern=r"^[A-Za-z0-9][A-Za-z0-9_\-]*$")
    name: str = Field(..., min_length=1)
    indication: str = Field(..., min_length=1)
    cycle_length_days: int = Field(..., ge=1, le=365)
    components: tuple[RegimenComponent, ...] = Field(..., min_length=1)
    pretreatment: tuple[str, ...] = Field(default_factory=tuple)
    monitoring: tuple[str, ...] = Field(default_factory=tuple)
    notes: tuple[str, ...] = Field(default_factory=tuple)
    rules: tuple[RegimenLabRule, ...] = Field(default_factory=tuple)

    @field_validator("id", mode="before")
    @classmethod
    def strip_id(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    def component(self, name: str) -> Optional[RegimenComponent]:
        key = name.strip().lower()
        for component in self.components:
            if component.key == key:
                return component
        return None


class RegimenListResponse(BaseModel):
    """Response for the regimen listing endpoint."""

    count: int
    regimens: list[Regimen]
