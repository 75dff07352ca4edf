"""
Curated Data Validator

Gates externally authored reference datasets (drug alias table, curated
interaction table, regimen templates) before they reach the reference store.
Validation is all-or-nothing: a single violation anywhere rejects the whole
set of documents.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Optional, Type

import pandas as pd
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from oncosafe.core.logging import get_logger
from oncosafe.schemas.reference import (
    CuratedInteractionEntry,
    DrugEntry,
    ValidationReport,
    Violation,
)
from oncosafe.schemas.regimens import Regimen
from oncosafe.services.severity import SEVERITY_TOKENS, is_known_severity

logger = get_logger(__name__)

ALIASES = "aliases"
INTERACTIONS = "interactions"
REGIMENS = "regimens"


@dataclass(frozen=True)
class ValidatedReferenceData:
    """Typed collections produced by a successful validation."""

    drugs: tuple[DrugEntry, ...] = field(default_factory=tuple)
    interactions: tuple[CuratedInteractionEntry, ...] = field(default_factory=tuple)
    regimens: tuple[Regimen, ...] = field(default_factory=tuple)

    def counts(self) -> dict[str, int]:
        return {
            ALIASES: len(self.drugs),
            INTERACTIONS: len(self.interactions),
            REGIMENS: len(self.regimens),
        }


# ============================================================================
# DOCUMENT LOADING
# ============================================================================

def load_document(path: Path | str) -> Any:
    """
    Read a raw reference document from disk.

    JSON files are returned as parsed; CSV files are returned as a list of
    row dicts with every cell kept as a string.
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix == ".json":
        with path.open(encoding="utf-8") as fh:
            return json.load(fh)

    if suffix == ".csv":
        frame = pd.read_csv(path, dtype=str, keep_default_na=False)
        frame.columns = [str(c).strip() for c in frame.columns]
        return frame.to_dict(orient="records")

    raise ValueError(f"Unsupported reference document format: {path.name}")


# ============================================================================
# SCHEMA CHECKS
# ============================================================================

def _rows(document: Any, name: str, violations: list[Violation]) -> list[Any]:
    """Accept a bare list or a single-key wrapper ``{"<name>": [...]}``."""
    if isinstance(document, dict) and set(document) == {name}:
        document = document[name]

    if not isinstance(document, list):
        violations.append(Violation(
            document=name,
            path=name,
            constraint="document must be a list of records",
            actual=type(document).__name__
        ))
        return []
    return document


def _format_loc(prefix: str, loc: tuple) -> str:
    path = prefix
    for part in loc:
        path += f"[{part}]" if isinstance(part, int) else f".{part}"
    return path


def _parse_rows(
    document: Any,
    name: str,
    model: Type[BaseModel],
    violations: list[Violation]
) -> list[tuple[int, Any]]:
    """Validate every row against ``model``; return (index, parsed) pairs."""
    parsed = []
    for index, row in enumerate(_rows(document, name, violations)):
        prefix = f"{name}[{index}]"
        try:
            parsed.append((index, model.model_validate(row)))
        except PydanticValidationError as exc:
            for error in exc.errors():
                is_missing = error["type"] == "missing"
                constraint = error["msg"]
                if error["type"] == "extra_forbidden":
                    constraint = "field is not declared in the schema"
                violations.append(Violation(
                    document=name,
                    path=_format_loc(prefix, error["loc"]),
                    constraint=constraint,
                    actual=None if is_missing else error.get("input")
                ))
    return parsed


# ============================================================================
# CROSS-RECORD CHECKS
# ============================================================================

def _named_fields(index: int, drug: DrugEntry) -> Iterator[tuple[str, str]]:
    prefix = f"{ALIASES}[{index}]"
    yield f"{prefix}.rxcui", drug.rxcui
    yield f"{prefix}.name", drug.name
    if drug.generic_name:
        yield f"{prefix}.generic_name", drug.generic_name
    for i, brand in enumerate(drug.brand_names):
        yield f"{prefix}.brand_names[{i}]", brand
    for i, alias in enumerate(drug.aliases):
        yield f"{prefix}.aliases[{i}]", alias


def _check_drugs(parsed: list[tuple[int, DrugEntry]], violations: list[Violation]) -> None:
    seen_ids: dict[str, int] = {}
    alias_owner: dict[str, str] = {}

    for index, drug in parsed:
        if drug.rxcui in seen_ids:
            violations.append(Violation(
                document=ALIASES,
                path=f"{ALIASES}[{index}].rxcui",
                constraint=f"drug identifier already declared at {ALIASES}[{seen_ids[drug.rxcui]}]",
                actual=drug.rxcui
            ))
            continue
        seen_ids[drug.rxcui] = index

        for path, raw in _named_fields(index, drug):
            key = raw.strip().casefold()
            if not key:
                violations.append(Violation(
                    document=ALIASES,
                    path=path,
                    constraint="alias must be a non-empty string",
                    actual=raw
                ))
                continue
            owner = alias_owner.setdefault(key, drug.rxcui)
            if owner != drug.rxcui:
                violations.append(Violation(
                    document=ALIASES,
                    path=path,
                    constraint="alias must resolve to a single canonical identifier",
                    actual=f"{raw!r} maps to both {owner} and {drug.rxcui}"
                ))


def _check_interactions(
    parsed: list[tuple[int, CuratedInteractionEntry]],
    declared: set[str],
    violations: list[Violation]
) -> None:
    seen_pairs: dict[frozenset, int] = {}

    for index, row in parsed:
        prefix = f"{INTERACTIONS}[{index}]"

        if not is_known_severity(row.severity):
            violations.append(Violation(
                document=INTERACTIONS,
                path=f"{prefix}.severity",
                constraint=f"severity token must be one of {sorted(SEVERITY_TOKENS)}",
                actual=row.severity
            ))

        for column in ("drug_a", "drug_b"):
            value = getattr(row, column)
            if value not in declared:
                violations.append(Violation(
                    document=INTERACTIONS,
                    path=f"{prefix}.{column}",
                    constraint="drug must be declared in the alias document",
                    actual=value
                ))

        if row.drug_a == row.drug_b:
            violations.append(Violation(
                document=INTERACTIONS,
                path=f"{prefix}.drug_b",
                constraint="an interaction pairs two different drugs",
                actual=row.drug_b
            ))
            continue

        pair = frozenset((row.drug_a, row.drug_b))
        if pair in seen_pairs:
            violations.append(Violation(
                document=INTERACTIONS,
                path=prefix,
                constraint=f"pair already declared at {INTERACTIONS}[{seen_pairs[pair]}]",
                actual=f"{row.drug_a}/{row.drug_b}"
            ))
        else:
            seen_pairs[pair] = index


def _check_regimens(
    parsed: list[tuple[int, Regimen]],
    declared: set[str],
    violations: list[Violation]
) -> None:
    seen_ids: dict[str, int] = {}

    for index, regimen in parsed:
        prefix = f"{REGIMENS}[{index}]"
        key = regimen.id.casefold()
        if key in seen_ids:
            violations.append(Violation(
                document=REGIMENS,
                path=f"{prefix}.id",
                constraint=f"regimen id already declared at {REGIMENS}[{seen_ids[key]}]",
                actual=regimen.id
            ))
        else:
            seen_ids[key] = index

        names = [c.key for c in regimen.components]
        for c_index, component in enumerate(regimen.components):
            if names.count(component.key) > 1 and names.index(component.key) != c_index:
                violations.append(Violation(
                    document=REGIMENS,
                    path=f"{prefix}.components[{c_index}].name",
                    constraint="component names are unique within a regimen",
                    actual=component.name
                ))
            if component.rxcui and component.rxcui not in declared:
                violations.append(Violation(
                    document=REGIMENS,
                    path=f"{prefix}.components[{c_index}].rxcui",
                    constraint="drug must be declared in the alias document",
                    actual=component.rxcui
                ))

        for r_index, rule in enumerate(regimen.rules):
            if regimen.component(rule.component) is None:
                violations.append(Violation(
                    document=REGIMENS,
                    path=f"{prefix}.rules[{r_index}].component",
                    constraint="rule must reference a component of the regimen",
                    actual=rule.component
                ))


# ============================================================================
# ENTRY POINT
# ============================================================================

def validate_reference_data(
    alias_document: Any,
    interaction_document: Any,
    regimen_document: Optional[Any] = None
) -> tuple[ValidationReport, Optional[ValidatedReferenceData]]:
    """
    Validate reference documents against their declared schemas.

    Args:
        alias_document: Raw drug alias records.
        interaction_document: Raw curated interaction rows.
        regimen_document: Raw regimen templates, if regimens are being loaded.

    Returns:
        The validation report, and the typed collections when (and only
        when) the report has no violations.
    """
    violations: list[Violation] = []

    drugs = _parse_rows(alias_document, ALIASES, DrugEntry, violations)
    interactions = _parse_rows(interaction_document, INTERACTIONS, CuratedInteractionEntry, violations)
    regimens = []
    if regimen_document is not None:
        regimens = _parse_rows(regimen_document, REGIMENS, Regimen, violations)

    _check_drugs(drugs, violations)
    declared = {drug.rxcui for _, drug in drugs}
    _check_interactions(interactions, declared, violations)
    _check_regimens(regimens, declared, violations)

    counts = {
        ALIASES: len(drugs),
        INTERACTIONS: len(interactions),
        REGIMENS: len(regimens),
    }

    if violations:
        logger.warning(
            f"Reference data rejected with {len(violations)} violation(s)",
            extra={"first_violation": violations[0].path}
        )
        return ValidationReport(ok=False, violations=violations, counts=counts), None

    data = ValidatedReferenceData(
        drugs=tuple(d for _, d in drugs),
        interactions=tuple(i for _, i in interactions),
        regimens=tuple(r for _, r in regimens),
    )
    logger.info("Reference data validated", extra=counts)
    return ValidationReport(ok=True, counts=counts), data
