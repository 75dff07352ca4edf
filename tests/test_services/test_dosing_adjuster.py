"""
Tests for regimen lookup and dosing adjustment.
"""

import pytest

from oncosafe.config import get_settings
from oncosafe.core.errors import NotFoundError
from oncosafe.schemas.dosing import (
    DosingAction,
    DosingTrigger,
    LabSnapshot,
    MetabolizerPhenotype,
    TriggerKind,
)
from oncosafe.services.dosing_adjuster import (
    ConservativeActionPolicy,
    DosingAdjuster,
    RuleFinding,
    normalize_phenotype,
)
from oncosafe.services.reference_store import ReferenceStore
from oncosafe.services.regimen_store import RegimenStore


@pytest.fixture
def regimens(reference_store) -> RegimenStore:
    return RegimenStore(reference_store)


@pytest.fixture
def adjuster(regimens) -> DosingAdjuster:
    return DosingAdjuster(regimens)


def _by_component(response) -> dict:
    return {r.component: r for r in response.recommendations}


def test_regimen_lookup_is_case_insensitive(regimens):
    assert regimens.get("folfox").id == "FOLFOX"
    assert [r.id for r in regimens.list()] == ["FOLFOX", "AC"]

    with pytest.raises(NotFoundError):
        regimens.get("FOLFIRINOX")


def test_unknown_regimen_raises(adjuster):
    with pytest.raises(NotFoundError):
        adjuster.adjust("NOPE", LabSnapshot(), {})


def test_lab_hold_beats_pharmacogenomic_reduction(adjuster):
    """A low ANC holds fluorouracil even though DPYD alone would only reduce it."""
    response = adjuster.adjust("FOLFOX", LabSnapshot(anc=900), {"DPYD": "intermediate"})
    recs = _by_component(response)

    fluorouracil = recs["Fluorouracil"]
    assert fluorouracil.action == DosingAction.HOLD
    assert fluorouracil.magnitude is None
    assert "ANC" in fluorouracil.rationale
    assert "DPYD" in fluorouracil.rationale
    assert [t.kind for t in fluorouracil.triggers] == [TriggerKind.LAB, TriggerKind.PHENOTYPE]

    assert recs["Oxaliplatin"].action == DosingAction.HOLD
    assert "Leucovorin" not in recs
    assert response.policy == "conservative-action"


def test_pharmacogenomic_reduction_alone(adjuster):
    response = adjuster.adjust("FOLFOX", LabSnapshot(), {"DPYD": "IM"})

    assert len(response.recommendations) == 1
    rec = response.recommendations[0]
    assert rec.component == "Fluorouracil"
    assert rec.action == DosingAction.REDUCE
    assert rec.magnitude == 50


def test_larger_reduction_wins(adjuster):
    response = adjuster.adjust("FOLFOX", LabSnapshot(anc=1200), {"DPYD": "intermediate"})
    rec = _by_component(response)["Fluorouracil"]

    assert rec.action == DosingAction.REDUCE
    assert rec.magnitude == 50
    assert len(rec.triggers) == 2


def test_poor_metabolizer_holds(adjuster):
    response = adjuster.adjust("FOLFOX", LabSnapshot(), {"dpyd": "poor_metabolizer"})

    assert _by_component(response)["Fluorouracil"].action == DosingAction.HOLD


def test_cardiotoxic_hold_and_regimen_rule(adjuster):
    response = adjuster.adjust("AC", LabSnapshot(lvef=45, creatinine_clearance=8), {})
    recs = _by_component(response)

    assert recs["Doxorubicin"].action == DosingAction.HOLD
    assert recs["Cyclophosphamide"].action == DosingAction.REDUCE
    assert recs["Cyclophosphamide"].magnitude == 25
    assert recs["Cyclophosphamide"].rationale == "Severe renal impairment"


def test_results_are_deterministic(adjuster):
    labs = LabSnapshot(anc=1100, platelets=80000, lvef=40)
    phenotypes = {"DPYD": "intermediate", "CYP2D6": "poor"}

    first = adjuster.adjust("AC", labs, phenotypes)
    second = adjuster.adjust("AC", labs, phenotypes)

    assert first.model_dump(exclude={"timestamp"}) == second.model_dump(exclude={"timestamp"})
    assert [r.component for r in first.recommendations] == ["Doxorubicin", "Cyclophosphamide"]


def test_missing_labs_are_not_zero(adjuster):
    """No labs and no phenotypes means no recommendations."""
    response = adjuster.adjust("FOLFOX")

    assert response.recommendations == []
    assert response.warnings == []


def test_out_of_range_and_unknown_inputs_warn(adjuster):
    labs = LabSnapshot.model_validate({"anc": -5, "ldh": 300})
    response = adjuster.adjust("FOLFOX", labs, {"DPYD": "sluggish", "ABC1": "poor"})

    # Implausible values are flagged but still evaluated
    assert [r.action for r in response.recommendations] == [DosingAction.HOLD, DosingAction.HOLD]
    assert len(response.warnings) == 4
    assert any("ANC" in w and "plausible range" in w for w in response.warnings)
    assert any("'ldh'" in w for w in response.warnings)
    assert any("sluggish" in w for w in response.warnings)
    assert any("ABC1" in w for w in response.warnings)


def test_no_change_records_when_configured(adjuster, monkeypatch):
    monkeypatch.setattr(get_settings(), "DOSING_EMIT_NO_CHANGE", True)

    response = adjuster.adjust("FOLFOX", LabSnapshot(), {"DPYD": "intermediate"})
    recs = _by_component(response)

    assert [r.component for r in response.recommendations] == ["Oxaliplatin", "Leucovorin", "Fluorouracil"]
    assert recs["Leucovorin"].action == DosingAction.NO_CHANGE
    assert recs["Leucovorin"].triggers == []


def test_lab_aliases_accepted():
    labs = LabSnapshot.model_validate({"ANC": 900, "PLT": 50000, "CrCl": 40})

    assert labs.anc == 900
    assert labs.platelets == 50000
    assert labs.creatinine_clearance == 40
    assert not labs.model_extra


@pytest.mark.parametrize("token,expected", [
    ("poor", MetabolizerPhenotype.POOR),
    ("PM", MetabolizerPhenotype.POOR),
    ("Intermediate Metaboliser", MetabolizerPhenotype.INTERMEDIATE),
    ("normal_metabolizer", MetabolizerPhenotype.NORMAL),
    ("ultra-rapid", MetabolizerPhenotype.ULTRARAPID),
    ("sluggish", None),
])
def test_normalize_phenotype(token, expected):
    assert normalize_phenotype(token) == expected


def test_policy_ranking():
    policy = ConservativeActionPolicy()
    trigger = DosingTrigger(kind=TriggerKind.LAB, condition="test")

    def finding(action, magnitude=None):
        return RuleFinding("Drug", action, magnitude, f"{action.value} {magnitude}", trigger)

    assert policy.resolve([finding(DosingAction.NO_CHANGE), finding(DosingAction.REDUCE, 25)]) == (
        DosingAction.REDUCE, 25
    )
    assert policy.resolve([finding(DosingAction.REDUCE, 75), finding(DosingAction.HOLD)]) == (
        DosingAction.HOLD, None
    )
    assert policy.resolve([finding(DosingAction.REDUCE, 25), finding(DosingAction.REDUCE, 50)]) == (
        DosingAction.REDUCE, 50
    )


def test_regimen_rules_apply_as_bands():
    """CrCl 20 falls in the hold band only; the 30-50 reduction does not also fire."""
    store = ReferenceStore()
    store.load_configured()
    adjuster = DosingAdjuster(RegimenStore(store))

    response = adjuster.adjust("CAPOX", LabSnapshot(creatinine_clearance=20), {})
    capecitabine = _by_component(response)["Capecitabine"]

    assert capecitabine.action == DosingAction.HOLD
    assert capecitabine.rationale == "CrCl below 30 mL/min; capecitabine is contraindicated"
    assert [t.condition for t in capecitabine.triggers] == ["CrCl 20 < 30"]

    response = adjuster.adjust("CAPOX", LabSnapshot(creatinine_clearance=40), {})
    capecitabine = _by_component(response)["Capecitabine"]

    assert capecitabine.action == DosingAction.REDUCE
    assert capecitabine.magnitude == 25
    assert [t.condition for t in capecitabine.triggers] == ["CrCl 40 < 51"]


def test_conflicting_phenotype_keys_warn(adjuster):
    response = adjuster.adjust("FOLFOX", LabSnapshot(), {"dpyd": "intermediate", "DPYD": "poor"})

    # "DPYD" sorts before "dpyd"
    assert _by_component(response)["Fluorouracil"].action == DosingAction.HOLD
    assert len(response.warnings) == 1
    assert "Conflicting phenotypes for DPYD" in response.warnings[0]


def test_repeated_phenotype_keys_that_agree_do_not_warn(adjuster):
    response = adjuster.adjust("FOLFOX", LabSnapshot(), {"dpyd": "IM", "DPYD": "intermediate"})

    assert _by_component(response)["Fluorouracil"].magnitude == 50
    assert response.warnings == []
