"""
Dosing adjustment schemas.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class DosingAction(str, Enum):
    """Dose modification actions, most conservative first."""
    HOLD = "hold"
    REDUCE = "reduce"
    NO_CHANGE = "no-change"


class MetabolizerPhenotype(str, Enum):
    """Gene-specific metabolizer classification."""
    POOR = "poor"
    INTERMEDIATE = "intermediate"
    NORMAL = "normal"
    RAPID = "rapid"
    ULTRARAPID = "ultrarapid"


class TriggerKind(str, Enum):
    LAB = "lab"
    PHENOTYPE = "phenotype"


class LabSnapshot(BaseModel):
    """
    Lab values relevant to safety gating.

    A missing key means the value was not supplied; it is never read as zero.
    Keys outside the declared set are kept in ``model_extra`` and reported
    as warnings by the adjuster.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    anc: Optional[float] = Field(
        None,
        validation_alias=AliasChoices("anc", "ANC"),
        description="Absolute neutrophil count (cells/uL)"
    )
    platelets: Optional[float] = Field(
        None,
        validation_alias=AliasChoices("platelets", "PLT", "plt"),
        description="Platelet count (cells/uL)"
    )
    creatinine_clearance: Optional[float] = Field(
        None,
        validation_alias=AliasChoices("creatinine_clearance", "CrCl", "crcl"),
        description="Creatinine clearance (mL/min)"
    )
    lvef: Optional[float] = Field(
        None,
        validation_alias=AliasChoices("lvef", "LVEF"),
        description="Left-ventricular ejection fraction (%)"
    )
    bilirubin: Optional[float] = Field(
        None,
        validation_alias=AliasChoices("bilirubin", "total_bilirubin"),
        description="Total bilirubin (mg/dL)"
    )


class DosingTrigger(BaseModel):
    """The condition that fired a dosing rule."""

    kind: TriggerKind
    condition: str


class DosingRecommendation(BaseModel):
    """One dose modification for one regimen component."""

    regimen_id: str
    component: str
    action: DosingAction
    magnitude: Optional[int] = Field(None, ge=1, le=100, description="Percent dose reduction")
    rationale: str
    triggers: list[DosingTrigger] = Field(default_factory=list)


class DosingAdjustRequest(BaseModel):
    """Request body for a dosing adjustment."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "regimen_id": "FOLFOX",
                "labs": {"anc": 900, "platelets": 150000},
                "phenotypes": {"DPYD": "intermediate"}
            }
        }
    )

    regimen_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("regimen_id", "regimenId")
    )
    labs: LabSnapshot = Field(default_factory=LabSnapshot)
    phenotypes: dict[str, str] = Field(default_factory=dict)


class DosingAdjustResponse(BaseModel):
    """Dosing recommendations for a regimen."""

    regimen_id: str
    recommendations: list[DosingRecommendation] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    policy: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
