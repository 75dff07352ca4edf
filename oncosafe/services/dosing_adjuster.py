"""
Pharmacogenomic Dosing Adjuster

Produces per-component dose modifications for a regimen from a lab snapshot
and gene metabolizer phenotypes. Safety thresholds are evaluated first, then
the drug-gene table; when several rules fire for the same component the
ConservativeActionPolicy picks the action and every rationale is kept.
"""

import operator
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

from prometheus_client import Counter

from oncosafe.config import get_settings
from oncosafe.core.logging import get_logger
from oncosafe.schemas.dosing import (
    DosingAction,
    DosingAdjustResponse,
    DosingRecommendation,
    DosingTrigger,
    LabSnapshot,
    MetabolizerPhenotype,
    TriggerKind,
)
from oncosafe.schemas.regimens import Regimen, RegimenComponent, ToxicityTag
from oncosafe.services.regimen_store import RegimenStore

logger = get_logger(__name__)

DOSING_RECOMMENDATIONS = Counter(
    "oncosafe_dosing_recommendations_total",
    "Dosing recommendations emitted",
    ["action"]
)

_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


# ============================================================================
# LAB PLAUSIBILITY
# ============================================================================

# Values outside these bounds are still evaluated but flagged
LAB_PLAUSIBLE_RANGES: dict[str, tuple[float, float]] = {
    "anc": (0, 100_000),
    "platelets": (0, 2_000_000),
    "creatinine_clearance": (0, 250),
    "lvef": (0, 100),
    "bilirubin": (0, 50),
}

LAB_LABELS = {
    "anc": "ANC",
    "platelets": "platelets",
    "creatinine_clearance": "CrCl",
    "lvef": "LVEF",
    "bilirubin": "bilirubin",
}


# ============================================================================
# SAFETY THRESHOLD RULES
# ============================================================================
# Each band is (operator, threshold, action, magnitude, rationale). Bands are
# checked in order and the first match wins for that table.

TAG_RULES: list[dict[str, Any]] = [
    {
        "lab": "anc",
        "tag": ToxicityTag.MYELOSUPPRESSIVE,
        "bands": [
            ("<", 1000, DosingAction.HOLD, None,
             "ANC below 1000/uL; hold myelosuppressive therapy until count recovery"),
            ("<", 1500, DosingAction.REDUCE, 25,
             "ANC 1000-1499/uL; reduce myelosuppressive dose by 25%"),
        ],
    },
    {
        "lab": "platelets",
        "tag": ToxicityTag.MYELOSUPPRESSIVE,
        "bands": [
            ("<", 75_000, DosingAction.HOLD, None,
             "Platelets below 75,000/uL; hold myelosuppressive therapy"),
            ("<", 100_000, DosingAction.REDUCE, 25,
             "Platelets 75,000-99,999/uL; reduce myelosuppressive dose by 25%"),
        ],
    },
    {
        "lab": "lvef",
        "tag": ToxicityTag.CARDIOTOXIC,
        "bands": [
            ("<", 50, DosingAction.HOLD, None,
             "LVEF below 50%; hold cardiotoxic therapy pending cardiology review"),
        ],
    },
]

RENAL_RULES: dict[str, list[tuple]] = {
    "carboplatin": [
        ("<=", 15, DosingAction.HOLD, None, "CrCl 15 mL/min or less; carboplatin not recommended"),
        ("<=", 40, DosingAction.REDUCE, 50, "CrCl 16-40 mL/min; reduce carboplatin by 50%"),
        ("<=", 60, DosingAction.REDUCE, 25, "CrCl 41-60 mL/min; reduce carboplatin by 25%"),
    ],
    "cisplatin": [
        ("<=", 30, DosingAction.HOLD, None, "CrCl 30 mL/min or less; avoid cisplatin"),
        ("<=", 60, DosingAction.REDUCE, 25, "CrCl 31-60 mL/min; reduce cisplatin by 25%"),
    ],
    "irinotecan": [
        ("<=", 30, DosingAction.REDUCE, 50, "CrCl 30 mL/min or less; reduce irinotecan by 50%"),
    ],
}

HEPATIC_RULES: dict[str, list[tuple]] = {
    "doxorubicin": [
        (">", 3.0, DosingAction.REDUCE, 75, "Bilirubin above 3.0 mg/dL; reduce doxorubicin by 75%"),
        (">=", 1.2, DosingAction.REDUCE, 50, "Bilirubin 1.2-3.0 mg/dL; reduce doxorubicin by 50%"),
    ],
    "paclitaxel": [
        (">", 7.5, DosingAction.HOLD, None, "Bilirubin above 7.5 mg/dL; paclitaxel not recommended"),
        (">", 2.0, DosingAction.REDUCE, 50, "Bilirubin 2.01-7.5 mg/dL; reduce paclitaxel by 50%"),
        (">=", 1.26, DosingAction.REDUCE, 25, "Bilirubin 1.26-2.0 mg/dL; reduce paclitaxel by 25%"),
    ],
}


# ============================================================================
# PHARMACOGENOMIC RULES
# ============================================================================

PHARMACOGENOMIC_RULES: dict[str, dict[str, Any]] = {
    "DPYD": {
        "drugs": ("fluorouracil", "capecitabine"),
        "phenotypes": {
            MetabolizerPhenotype.POOR: (
                DosingAction.HOLD, None,
                "DPYD poor metabolizer; avoid fluoropyrimidines (risk of severe toxicity)"
            ),
            MetabolizerPhenotype.INTERMEDIATE: (
                DosingAction.REDUCE, 50,
                "DPYD intermediate metabolizer; start at 50% of the fluoropyrimidine dose"
            ),
        },
    },
    "UGT1A1": {
        "drugs": ("irinotecan",),
        "phenotypes": {
            MetabolizerPhenotype.POOR: (
                DosingAction.REDUCE, 30,
                "UGT1A1 poor metabolizer; reduce irinotecan starting dose by 30%"
            ),
        },
    },
    "CYP2D6": {
        "drugs": ("tamoxifen",),
        "phenotypes": {
            MetabolizerPhenotype.POOR: (
                DosingAction.HOLD, None,
                "CYP2D6 poor metabolizer; consider an alternative endocrine therapy"
            ),
            MetabolizerPhenotype.INTERMEDIATE: (
                DosingAction.NO_CHANGE, None,
                "CYP2D6 intermediate metabolizer; no dose change, avoid strong CYP2D6 inhibitors"
            ),
        },
    },
    "TPMT": {
        "drugs": ("mercaptopurine", "thioguanine"),
        "phenotypes": {
            MetabolizerPhenotype.POOR: (
                DosingAction.REDUCE, 90,
                "TPMT poor metabolizer; reduce thiopurine dose by 90%"
            ),
            MetabolizerPhenotype.INTERMEDIATE: (
                DosingAction.REDUCE, 50,
                "TPMT intermediate metabolizer; reduce thiopurine dose by 50%"
            ),
        },
    },
    "NUDT15": {
        "drugs": ("mercaptopurine", "thioguanine"),
        "phenotypes": {
            MetabolizerPhenotype.POOR: (
                DosingAction.REDUCE, 90,
                "NUDT15 poor metabolizer; reduce thiopurine dose by 90%"
            ),
            MetabolizerPhenotype.INTERMEDIATE: (
                DosingAction.REDUCE, 50,
                "NUDT15 intermediate metabolizer; reduce thiopurine dose by 50%"
            ),
        },
    },
}

PHENOTYPE_ALIASES: dict[str, MetabolizerPhenotype] = {
    "pm": MetabolizerPhenotype.POOR,
    "im": MetabolizerPhenotype.INTERMEDIATE,
    "nm": MetabolizerPhenotype.NORMAL,
    "em": MetabolizerPhenotype.NORMAL,
    "extensive": MetabolizerPhenotype.NORMAL,
    "rm": MetabolizerPhenotype.RAPID,
    "um": MetabolizerPhenotype.ULTRARAPID,
    "ultra rapid": MetabolizerPhenotype.ULTRARAPID,
}


def normalize_phenotype(token: Optional[str]) -> Optional[MetabolizerPhenotype]:
    """
    Map a phenotype token to ``MetabolizerPhenotype``.

    Accepts ``poor``, ``PM``, ``poor_metabolizer``, ``Intermediate Metaboliser``
    and similar spellings; returns None for anything else.
    """
    if not isinstance(token, str):
        return None
    text = re.sub(r"[\s_\-]+", " ", token).strip().casefold()
    text = re.sub(r" ?metaboli[sz]er$", "", text)
    if text in PHENOTYPE_ALIASES:
        return PHENOTYPE_ALIASES[text]
    try:
        return MetabolizerPhenotype(text.replace(" ", ""))
    except ValueError:
        return None


# ============================================================================
# POLICY
# ============================================================================

@dataclass(frozen=True)
class RuleFinding:
    """One fired rule for one component."""

    component: str
    action: DosingAction
    magnitude: Optional[int]
    rationale: str
    trigger: DosingTrigger


class ConservativeActionPolicy:
    """
    Combines fired rules per component.

    ``hold`` beats ``reduce`` beats ``no-change``; between reductions the
    larger magnitude wins. Rationales and triggers of every fired rule are
    kept in evaluation order.
    """

    name = "conservative-action"

    ACTION_RANK = {
        DosingAction.NO_CHANGE: 0,
        DosingAction.REDUCE: 1,
        DosingAction.HOLD: 2,
    }

    def resolve(self, findings: list[RuleFinding]) -> tuple[DosingAction, Optional[int]]:
        action = max((f.action for f in findings), key=self.ACTION_RANK.__getitem__)
        if action != DosingAction.REDUCE:
            return action, None
        return action, max(f.magnitude or 0 for f in findings if f.action == DosingAction.REDUCE)

    def combine(self, regimen_id: str, findings: list[RuleFinding]) -> DosingRecommendation:
        action, magnitude = self.resolve(findings)
        rationales = list(dict.fromkeys(f.rationale for f in findings))
        return DosingRecommendation(
            regimen_id=regimen_id,
            component=findings[0].component,
            action=action,
            magnitude=magnitude,
            rationale="; ".join(rationales),
            triggers=[f.trigger for f in findings]
        )


# ============================================================================
# ADJUSTER
# ============================================================================

class DosingAdjuster:
    """Two-pass dosing evaluation for a regimen."""

    def __init__(self, regimens: RegimenStore, policy: Optional[ConservativeActionPolicy] = None):
        self.regimens = regimens
        self.policy = policy or ConservativeActionPolicy()

    @staticmethod
    def _lab_values(labs: LabSnapshot, warnings: list[str]) -> dict[str, float]:
        values: dict[str, float] = {}
        for lab, (low, high) in LAB_PLAUSIBLE_RANGES.items():
            value = getattr(labs, lab)
            if value is None:
                continue
            if not low <= value <= high:
                warnings.append(
                    f"{LAB_LABELS[lab]} value {value:g} is outside the plausible range "
                    f"{low:g}-{high:g}; please verify"
                )
            values[lab] = value

        for key in sorted(labs.model_extra or {}):
            warnings.append(f"Unrecognized lab key {key!r} was ignored")
        return values

    @staticmethod
    def _match_band(
        component: RegimenComponent,
        lab: str,
        value: float,
        bands: list[tuple]
    ) -> Optional[RuleFinding]:
        for op, threshold, action, magnitude, rationale in bands:
            if _OPERATORS[op](value, threshold):
                return RuleFinding(
                    component=component.name,
                    action=action,
                    magnitude=magnitude,
                    rationale=rationale,
                    trigger=DosingTrigger(
                        kind=TriggerKind.LAB,
                        condition=f"{LAB_LABELS[lab]} {value:g} {op} {threshold:g}"
                    )
                )
        return None

    def _safety_pass(
        self,
        regimen: Regimen,
        component: RegimenComponent,
        labs: dict[str, float]
    ) -> list[RuleFinding]:
        findings: list[RuleFinding] = []

        for rule in TAG_RULES:
            value = labs.get(rule["lab"])
            if value is None or rule["tag"] not in component.tags:
                continue
            finding = self._match_band(component, rule["lab"], value, rule["bands"])
            if finding:
                findings.append(finding)

        for lab, table in (("creatinine_clearance", RENAL_RULES), ("bilirubin", HEPATIC_RULES)):
            value = labs.get(lab)
            bands = table.get(component.key)
            if value is None or bands is None:
                continue
            finding = self._match_band(component, lab, value, bands)
            if finding:
                findings.append(finding)

        for lab, bands in self._regimen_bands(regimen, component):
            value = labs.get(lab)
            if value is None:
                continue
            finding = self._match_band(component, lab, value, bands)
            if finding:
                findings.append(finding)

        return findings

    @staticmethod
    def _regimen_bands(regimen: Regimen, component: RegimenComponent) -> list[tuple[str, list[tuple]]]:
        """
        Group a component's regimen rules into bands per lab and direction.

        Bands run from the most extreme threshold outward (lowest ``below``
        first, highest ``at_or_above`` first) so only the band the value
        falls in fires.
        """
        grouped: dict[tuple[str, str], list[tuple]] = {}
        for rule in regimen.rules:
            if regimen.component(rule.component) is not component:
                continue
            if rule.below is not None:
                op, threshold = "<", rule.below
            else:
                op, threshold = ">=", rule.at_or_above
            grouped.setdefault((rule.lab, op), []).append(
                (op, threshold, DosingAction(rule.action), rule.magnitude, rule.rationale)
            )

        bands = []
        for (lab, op), rules in grouped.items():
            rules.sort(key=lambda band: band[1], reverse=(op == ">="))
            bands.append((lab, rules))
        return bands

    @staticmethod
    def _pharmacogenomic_pass(
        component: RegimenComponent,
        phenotypes: dict[str, MetabolizerPhenotype]
    ) -> list[RuleFinding]:
        findings: list[RuleFinding] = []
        for gene in sorted(phenotypes):
            rules = PHARMACOGENOMIC_RULES[gene]
            if component.key not in rules["drugs"]:
                continue
            phenotype = phenotypes[gene]
            outcome = rules["phenotypes"].get(phenotype)
            if outcome is None:
                continue
            action, magnitude, rationale = outcome
            findings.append(RuleFinding(
                component=component.name,
                action=action,
                magnitude=magnitude,
                rationale=rationale,
                trigger=DosingTrigger(
                    kind=TriggerKind.PHENOTYPE,
                    condition=f"{gene} {phenotype.value} metabolizer"
                )
            ))
        return findings

    @staticmethod
    def _usable_phenotypes(phenotypes: dict[str, str], warnings: list[str]) -> dict[str, MetabolizerPhenotype]:
        usable: dict[str, MetabolizerPhenotype] = {}
        used_keys: dict[str, str] = {}
        for raw_gene in sorted(phenotypes):
            gene = raw_gene.strip().upper()
            token = phenotypes[raw_gene]
            if gene not in PHARMACOGENOMIC_RULES:
                warnings.append(f"No dosing rules for gene {raw_gene!r}; phenotype ignored")
                continue
            phenotype = normalize_phenotype(token)
            if phenotype is None:
                warnings.append(f"Unrecognized phenotype {token!r} for {gene}; ignored")
                continue
            if gene in usable:
                # First key in sorted order wins
                if usable[gene] != phenotype:
                    warnings.append(
                        f"Conflicting phenotypes for {gene}: {used_keys[gene]!r} is "
                        f"{usable[gene].value}, {raw_gene!r} is {phenotype.value}; "
                        f"using {used_keys[gene]!r}"
                    )
                continue
            usable[gene] = phenotype
            used_keys[gene] = raw_gene
        return usable

    def adjust(
        self,
        regimen_id: str,
        labs: Optional[LabSnapshot] = None,
        phenotypes: Optional[dict[str, str]] = None
    ) -> DosingAdjustResponse:
        """
        Evaluate dosing rules for every component of a regimen.

        Raises:
            NotFoundError: If the regimen id is unknown.
        """
        settings = get_settings()
        regimen = self.regimens.get(regimen_id)
        warnings: list[str] = []

        lab_values = self._lab_values(labs or LabSnapshot(), warnings)
        gene_phenotypes = self._usable_phenotypes(phenotypes or {}, warnings)

        recommendations: list[DosingRecommendation] = []
        for component in regimen.components:
            findings = self._safety_pass(regimen, component, lab_values)
            findings += self._pharmacogenomic_pass(component, gene_phenotypes)

            if findings:
                recommendations.append(self.policy.combine(regimen.id, findings))
            elif settings.DOSING_EMIT_NO_CHANGE:
                recommendations.append(DosingRecommendation(
                    regimen_id=regimen.id,
                    component=component.name,
                    action=DosingAction.NO_CHANGE,
                    rationale="No dosing rule triggered"
                ))

        for recommendation in recommendations:
            DOSING_RECOMMENDATIONS.labels(action=recommendation.action.value).inc()

        logger.info(
            f"Dosing evaluated for {regimen.id}",
            extra={
                "recommendations": len(recommendations),
                "warnings": len(warnings),
                "policy": self.policy.name
            }
        )

        return DosingAdjustResponse(
            regimen_id=regimen.id,
            recommendations=recommendations,
            warnings=warnings,
            policy=self.policy.name
        )
