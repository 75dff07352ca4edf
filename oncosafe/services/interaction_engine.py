"""
Interaction Merge Engine

Combines pairwise interaction findings from the curated store and the
external interaction service:

- pairs are enumerated in canonical order, so results do not depend on the
  order of the input identifiers;
- severity tokens from either source are normalized to the four-level scale;
- curated records are authoritative; external records for the same pair are
  still returned, flagged as non-primary;
- records are unique per (unordered pair, provenance);
- external failures degrade the check to curated-only data with a warning.
"""

import asyncio
import csv
from itertools import combinations
from typing import Optional

import pandas as pd
from prometheus_client import Counter

from oncosafe.config import get_settings
from oncosafe.core.cache import CacheService, TTLCache
from oncosafe.core.errors import ExternalServiceError, NotFoundError, ValidationError
from oncosafe.core.logging import get_logger
from oncosafe.schemas.interactions import (
    DrugInteractionsResponse,
    InteractionCheckResponse,
    InteractionRecord,
    Provenance,
    Severity,
    SeverityConflict,
)
from oncosafe.services.identity_resolver import is_rxcui
from oncosafe.services.reference_store import ReferenceSnapshot, ReferenceStore, pair_key
from oncosafe.services.severity import is_known_severity, normalize_severity
from oncosafe.services.vocabulary import ExternalFinding, VocabularyService

logger = get_logger(__name__)

INTERACTION_CHECKS = Counter(
    "oncosafe_interaction_checks_total",
    "Interaction checks performed",
    ["outcome"]
)
EXTERNAL_LOOKUP_FAILURES = Counter(
    "oncosafe_external_lookup_failures_total",
    "External interaction lookups that failed or timed out"
)


class InteractionMergeEngine:
    """Pairwise interaction check over curated and external sources."""

    def __init__(
        self,
        store: ReferenceStore,
        vocabulary: VocabularyService,
        cache: TTLCache,
        shared_cache: Optional[CacheService] = None
    ):
        self.store = store
        self.vocabulary = vocabulary
        self.cache = cache
        self.shared_cache = shared_cache

    # ------------------------------------------------------------------
    # Input validation
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(drugs: list[str]) -> list[str]:
        settings = get_settings()

        if len(drugs) < settings.MIN_CHECK_DRUGS:
            raise ValidationError("need at least two drugs", {"received": len(drugs)})
        if len(drugs) > settings.MAX_CHECK_DRUGS:
            raise ValidationError(
                "too many drugs in a single check",
                {"received": len(drugs), "maximum": settings.MAX_CHECK_DRUGS}
            )

        malformed = [d for d in drugs if not isinstance(d, str) or not is_rxcui(d.strip())]
        if malformed:
            raise ValidationError(
                f"Malformed drug identifier(s): {', '.join(repr(d) for d in malformed)}",
                {"invalid": malformed}
            )

        unique = list(dict.fromkeys(d.strip() for d in drugs))
        if len(unique) < settings.MIN_CHECK_DRUGS:
            raise ValidationError("need at least two distinct drugs", {"received": unique})
        return unique

    # ------------------------------------------------------------------
    # External lookups
    # ------------------------------------------------------------------

    async def _findings_for(self, rxcui: str) -> Optional[tuple[ExternalFinding, ...]]:
        """External findings for one drug, or None if the lookup failed."""
        key = ("interactions", rxcui)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        if self.shared_cache is not None:
            shared = await self.shared_cache.get_interactions(rxcui)
            if shared is not None:
                findings = tuple(ExternalFinding.from_dict(f) for f in shared)
                self.cache.set(key, findings)
                return findings

        try:
            findings = tuple(await self.vocabulary.lookup_interactions(rxcui))
        except ExternalServiceError as e:
            EXTERNAL_LOOKUP_FAILURES.inc()
            logger.warning(
                f"External interaction lookup failed: {e.message}",
                extra={"rxcui": rxcui}
            )
            return None

        self.cache.set(key, findings)
        if self.shared_cache is not None:
            await self.shared_cache.set_interactions(rxcui, [f.to_dict() for f in findings])
        return findings

    # ------------------------------------------------------------------
    # Merging
    # ------------------------------------------------------------------

    @staticmethod
    def _merge_external(
        pair: tuple[str, str],
        findings: list[ExternalFinding],
        snapshot: ReferenceSnapshot,
        primary: bool,
        warnings: list[str]
    ) -> InteractionRecord:
        """Collapse every external finding for one pair into one record."""
        names: dict[str, Optional[str]] = {}
        normalized = []
        for finding in sorted(findings, key=lambda f: (f.source, f.description, f.severity)):
            severity, recognized = normalize_severity(finding.severity, source=finding.source)
            if not recognized:
                message = (
                    f"Unrecognized severity token {finding.severity!r} from {finding.source} "
                    f"for {pair[0]}/{pair[1]} treated as moderate"
                )
                if message not in warnings:
                    warnings.append(message)
            normalized.append((severity, finding))
            if finding.partner_name:
                names.setdefault(finding.partner_rxcui, finding.partner_name)

        # Most severe finding wins; earlier (sorted) findings win ties
        severity, chosen = max(normalized, key=lambda item: item[0].rank)
        sources = tuple(sorted({f.source for f in findings}))

        return InteractionRecord(
            drug_a=pair[0],
            drug_b=pair[1],
            drug_a_name=snapshot.drug_name(pair[0]) or names.get(pair[0]),
            drug_b_name=snapshot.drug_name(pair[1]) or names.get(pair[1]),
            severity=severity,
            source_severity=chosen.severity,
            mechanism="",
            clinical_effect=chosen.description,
            management="",
            provenance=Provenance.EXTERNAL,
            evidence="; ".join(sources),
            sources=sources,
            primary=primary
        )

    def _merge_grouped(
        self,
        grouped: dict[tuple[str, str], list[ExternalFinding]],
        stored: dict[tuple[str, str], InteractionRecord],
        snapshot: ReferenceSnapshot,
        warnings: list[str]
    ) -> tuple[list[InteractionRecord], list[SeverityConflict]]:
        external: list[InteractionRecord] = []
        conflicts: list[SeverityConflict] = []

        for pair in sorted(grouped):
            curated = stored.get(pair)
            record = self._merge_external(
                pair, grouped[pair], snapshot, primary=curated is None, warnings=warnings
            )
            external.append(record)
            if curated is not None and curated.severity != record.severity:
                conflicts.append(SeverityConflict(
                    drug_a=pair[0],
                    drug_b=pair[1],
                    curated_severity=curated.severity,
                    external_severity=record.severity
                ))
        return external, conflicts

    async def check(self, drugs: list[str]) -> InteractionCheckResponse:
        """
        Check all pairwise interactions among 2-10 canonical identifiers.

        Raises:
            ValidationError: On wrong cardinality or malformed identifiers.
        """
        settings = get_settings()
        try:
            unique = self._validate(drugs)
        except ValidationError:
            INTERACTION_CHECKS.labels(outcome="rejected").inc()
            raise

        snapshot = self.store.snapshot
        pairs = list(combinations(sorted(unique), 2))

        stored: dict[tuple[str, str], InteractionRecord] = {}
        for drug_a, drug_b in pairs:
            record = snapshot.curated_interaction(drug_a, drug_b)
            if record is not None:
                stored[(drug_a, drug_b)] = record

        if settings.EXTERNAL_LOOKUP_FOR_CURATED_PAIRS:
            external_pairs = set(pairs)
        else:
            external_pairs = {p for p in pairs if p not in stored}
        lookup_ids = sorted({drug for pair in external_pairs for drug in pair})

        results = await asyncio.gather(*(self._findings_for(rxcui) for rxcui in lookup_ids))

        failed = [rxcui for rxcui, findings in zip(lookup_ids, results) if findings is None]
        grouped: dict[tuple[str, str], list[ExternalFinding]] = {}
        for rxcui, findings in zip(lookup_ids, results):
            for finding in findings or ():
                pair = pair_key(rxcui, finding.partner_rxcui)
                if pair in external_pairs:
                    grouped.setdefault(pair, []).append(finding)

        warnings: list[str] = []
        external, conflicts = self._merge_grouped(grouped, stored, snapshot, warnings)

        if failed:
            warnings.append(
                "External interaction data unavailable for "
                f"{', '.join(failed)}; results are limited to curated data"
            )

        INTERACTION_CHECKS.labels(outcome="partial" if failed else "complete").inc()
        logger.info(
            f"Interaction check complete: {len(stored)} curated, {len(external)} external",
            extra={"pairs": len(pairs), "conflicts": len(conflicts), "partial": bool(failed)}
        )

        return InteractionCheckResponse(
            input_drugs=unique,
            pairs_checked=len(pairs),
            stored=[stored[p] for p in sorted(stored)],
            external=external,
            conflicts=conflicts,
            warnings=warnings,
            partial=bool(failed)
        )

    async def for_drug(self, rxcui: str) -> DrugInteractionsResponse:
        """
        Every known interaction partner of one drug, curated and external.

        Raises:
            ValidationError: If ``rxcui`` is malformed.
            NotFoundError: If neither the catalog nor the external service
                knows the drug.
        """
        rxcui = rxcui.strip()
        if not is_rxcui(rxcui):
            raise ValidationError(f"Malformed drug identifier: {rxcui!r}", {"invalid": [rxcui]})

        snapshot = self.store.snapshot
        stored = {
            pair: record
            for pair, record in sorted(snapshot.interactions.items())
            if rxcui in pair
        }

        findings = await self._findings_for(rxcui)
        grouped: dict[tuple[str, str], list[ExternalFinding]] = {}
        for finding in findings or ():
            grouped.setdefault(pair_key(rxcui, finding.partner_rxcui), []).append(finding)

        if rxcui not in snapshot.drugs and not stored and findings == ():
            raise NotFoundError(f"Drug not found: {rxcui}", {"rxcui": rxcui})

        warnings: list[str] = []
        external, conflicts = self._merge_grouped(grouped, stored, snapshot, warnings)
        if findings is None:
            warnings.append(
                f"External interaction data unavailable for {rxcui}; "
                "results are limited to curated data"
            )

        # One entry per partner; the curated record wins where both exist
        primary = list(stored.values()) + [r for r in external if r.primary]
        breakdown = {level.value: 0 for level in Severity}
        for record in primary:
            breakdown[record.severity.value] += 1

        return DrugInteractionsResponse(
            rxcui=rxcui,
            name=snapshot.drug_name(rxcui),
            total=len(primary),
            breakdown=breakdown,
            stored=list(stored.values()),
            external=external,
            conflicts=conflicts,
            warnings=warnings,
            partial=findings is None
        )

    @staticmethod
    def _matches(record: InteractionRecord, term: str) -> bool:
        """``term`` is an identifier in the pair or a substring of either name."""
        term = term.strip().casefold()
        return term in (record.drug_a, record.drug_b) or any(
            term in (name or "").casefold() for name in (record.drug_a_name, record.drug_b_name)
        )

    def known(
        self,
        drug: Optional[str] = None,
        severity: Optional[str] = None,
        limit: Optional[int] = None,
        drug_a: Optional[str] = None,
        drug_b: Optional[str] = None
    ) -> tuple[list[InteractionRecord], int]:
        """
        Filter the curated store.

        ``drug`` matches an identifier or a case-insensitive substring of a
        drug name. ``drug_a`` and ``drug_b`` together select pairs where each
        term matches a member, in either order. ``severity`` matches the
        normalized level.
        """
        records = [r for _, r in sorted(self.store.snapshot.interactions.items())]

        if drug:
            records = [r for r in records if self._matches(r, drug)]

        if drug_a and drug_b:
            records = [
                r for r in records
                if self._matches(r, drug_a) and self._matches(r, drug_b)
            ]
        elif drug_a or drug_b:
            raise ValidationError(
                "drug_a and drug_b must be given together",
                {"drug_a": drug_a, "drug_b": drug_b}
            )

        if severity:
            if not is_known_severity(severity):
                raise ValidationError(f"Unknown severity filter {severity!r}", {"severity": severity})
            level, _ = normalize_severity(severity, source="query")
            records = [r for r in records if r.severity == level]

        total = len(records)
        if limit is not None and limit > 0:
            records = records[:limit]

        return records, total


EXPORT_COLUMNS = [
    "drug_a", "drug_a_name", "drug_b", "drug_b_name", "severity", "source_severity",
    "mechanism", "effect", "management", "evidence", "sources",
]


def export_interactions(records: list[InteractionRecord], view: str) -> str:
    """
    Render interaction records as CSV (every cell quoted) or TSV.

    TSV cells have tabs and line breaks collapsed to single spaces.
    """
    rows = [
        {
            "drug_a": r.drug_a,
            "drug_a_name": r.drug_a_name or "",
            "drug_b": r.drug_b,
            "drug_b_name": r.drug_b_name or "",
            "severity": r.severity.value,
            "source_severity": r.source_severity,
            "mechanism": r.mechanism,
            "effect": r.clinical_effect,
            "management": r.management,
            "evidence": r.evidence,
            "sources": ";".join(r.sources),
        }
        for r in records
    ]
    frame = pd.DataFrame(rows, columns=EXPORT_COLUMNS)

    if view == "tsv":
        frame = frame.replace(r"[\t\r\n]+", " ", regex=True)
        lines = ["\t".join(EXPORT_COLUMNS)]
        lines += ["\t".join(row) for row in frame.itertuples(index=False)]
        return "\n".join(lines) + "\n"

    frame = frame.replace(r"[\r\n]+", " ", regex=True)
    return frame.to_csv(index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")
