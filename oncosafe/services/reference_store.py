"""
Reference data store.

Holds immutable snapshots of validated reference data: the drug catalog and
its AliasMap, the curated interaction index, and regimen templates. A new
snapshot is only ever built from validator output and swapped in whole, so
readers never observe a partially loaded state.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

from oncosafe.config import get_settings
from oncosafe.core.errors import SchemaViolationError
from oncosafe.core.logging import get_logger
from oncosafe.schemas.interactions import InteractionRecord, Provenance
from oncosafe.schemas.reference import DrugEntry, Violation
from oncosafe.schemas.regimens import Regimen
from oncosafe.services.severity import normalize_severity
from oncosafe.services.validator import (
    ValidatedReferenceData,
    load_document,
    validate_reference_data,
)

logger = get_logger(__name__)


def pair_key(drug_a: str, drug_b: str) -> tuple[str, str]:
    """Order-independent key for a drug pair."""
    return (drug_a, drug_b) if drug_a <= drug_b else (drug_b, drug_a)


def normalize_alias(raw: str) -> str:
    return raw.strip().casefold()


@dataclass(frozen=True)
class ReferenceSnapshot:
    """One immutable generation of reference data."""

    drugs: Mapping[str, DrugEntry] = field(default_factory=lambda: MappingProxyType({}))
    alias_map: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    interactions: Mapping[tuple[str, str], InteractionRecord] = field(
        default_factory=lambda: MappingProxyType({})
    )
    regimens: tuple[Regimen, ...] = field(default_factory=tuple)
    loaded_at: Optional[datetime] = None

    @classmethod
    def from_validated(cls, data: ValidatedReferenceData) -> "ReferenceSnapshot":
        drugs = {drug.rxcui: drug for drug in data.drugs}

        alias_map: dict[str, str] = {}
        for drug in data.drugs:
            for raw in drug.all_names():
                alias_map[normalize_alias(raw)] = drug.rxcui

        interactions: dict[tuple[str, str], InteractionRecord] = {}
        for row in data.interactions:
            drug_a, drug_b = pair_key(row.drug_a, row.drug_b)
            severity, _ = normalize_severity(row.severity, source="curated")
            interactions[(drug_a, drug_b)] = InteractionRecord(
                drug_a=drug_a,
                drug_b=drug_b,
                drug_a_name=drugs[drug_a].name,
                drug_b_name=drugs[drug_b].name,
                severity=severity,
                source_severity=row.severity,
                mechanism=row.mechanism,
                clinical_effect=row.effect,
                management=row.management,
                provenance=Provenance.CURATED,
                evidence=row.evidence_level,
                sources=row.sources,
                primary=True
            )

        return cls(
            drugs=MappingProxyType(drugs),
            alias_map=MappingProxyType(alias_map),
            interactions=MappingProxyType(interactions),
            regimens=tuple(data.regimens),
            loaded_at=datetime.utcnow()
        )

    def resolve_alias(self, raw: str) -> Optional[str]:
        return self.alias_map.get(normalize_alias(raw))

    def curated_interaction(self, drug_a: str, drug_b: str) -> Optional[InteractionRecord]:
        return self.interactions.get(pair_key(drug_a, drug_b))

    def drug_name(self, rxcui: str) -> Optional[str]:
        drug = self.drugs.get(rxcui)
        return drug.name if drug else None

    def summary(self) -> dict[str, Any]:
        return {
            "drugs": len(self.drugs),
            "aliases": len(self.alias_map),
            "interactions": len(self.interactions),
            "regimens": len(self.regimens),
            "loaded_at": self.loaded_at.isoformat() if self.loaded_at else None,
        }


class ReferenceStore:
    """Owner of the current reference snapshot."""

    def __init__(self, snapshot: Optional[ReferenceSnapshot] = None) -> None:
        self._snapshot = snapshot or ReferenceSnapshot()
        self._reload_lock = threading.Lock()

    @property
    def snapshot(self) -> ReferenceSnapshot:
        return self._snapshot

    @property
    def is_loaded(self) -> bool:
        return self._snapshot.loaded_at is not None

    def load(
        self,
        alias_document: Any,
        interaction_document: Any,
        regimen_document: Optional[Any] = None
    ) -> ReferenceSnapshot:
        """
        Validate documents and swap in a new snapshot.

        Raises:
            SchemaViolationError: If any document fails validation. The
                current snapshot is left untouched.
        """
        if regimen_document is None and self._snapshot.regimens:
            # Interaction-only reloads re-validate the regimens already loaded
            regimen_document = [
                regimen.model_dump(mode="json") for regimen in self._snapshot.regimens
            ]

        report, data = validate_reference_data(
            alias_document, interaction_document, regimen_document
        )
        if not report.ok or data is None:
            raise SchemaViolationError(
                f"Reference data rejected: {len(report.violations)} violation(s)",
                report.violations
            )

        snapshot = ReferenceSnapshot.from_validated(data)
        with self._reload_lock:
            self._snapshot = snapshot

        logger.info("Reference snapshot loaded", extra=snapshot.summary())
        return snapshot

    def load_files(
        self,
        alias_path: Path | str,
        interaction_path: Path | str,
        regimen_path: Optional[Path | str] = None
    ) -> ReferenceSnapshot:
        """
        Read documents from disk and load them.

        Raises:
            SchemaViolationError: If a document cannot be read or parsed, or
                fails validation.
        """
        documents = []
        for name, path in (
            ("aliases", alias_path),
            ("interactions", interaction_path),
            ("regimens", regimen_path),
        ):
            if path is None:
                documents.append(None)
                continue
            try:
                documents.append(load_document(path))
            except (OSError, ValueError) as e:
                raise SchemaViolationError(
                    f"Reference document could not be read: {Path(path).name}",
                    [Violation(
                        document=name,
                        path=name,
                        constraint="document must be a readable JSON or CSV file",
                        actual=f"{type(e).__name__}: {e}"
                    )]
                ) from e

        return self.load(*documents)

    def load_configured(self) -> ReferenceSnapshot:
        """Load the files named in settings."""
        settings = get_settings()
        data_dir = Path(settings.REFERENCE_DATA_DIR)
        return self.load_files(
            data_dir / settings.ALIAS_FILE,
            data_dir / settings.INTERACTION_FILE,
            data_dir / settings.REGIMEN_FILE
        )


# Singleton instance
_store: Optional[ReferenceStore] = None


def get_reference_store(load: bool = True) -> ReferenceStore:
    """
    Get the global reference store.

    The first call installs an empty store and, when ``load`` is set, loads
    the configured files into it. A rejected load is logged and the store
    keeps serving empty data until a reload succeeds.
    """
    global _store
    if _store is None:
        _store = ReferenceStore()
        if load:
            try:
                _store.load_configured()
            except SchemaViolationError as e:
                logger.error(
                    f"Reference data failed to load: {e.message}",
                    extra={"violations": len(e.violations)}
                )
    return _store
