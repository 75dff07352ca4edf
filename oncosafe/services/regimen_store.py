"""
Regimen Template Store

Read-only accessor over the validated regimen dataset.
"""

from oncosafe.core.errors import NotFoundError
from oncosafe.schemas.regimens import Regimen
from oncosafe.services.reference_store import ReferenceStore


class RegimenStore:
    """Lists regimens and looks them up by id (case-insensitive)."""

    def __init__(self, store: ReferenceStore):
        self.store = store

    def list(self) -> list[Regimen]:
        return list(self.store.snapshot.regimens)

    def get(self, regimen_id: str) -> Regimen:
        """
        Raises:
            NotFoundError: If no regimen has this id.
        """
        key = regimen_id.strip().casefold()
        for regimen in self.store.snapshot.regimens:
            if regimen.id.casefold() == key:
                return regimen
        raise NotFoundError(f"Regimen not found: {regimen_id}", {"regimen_id": regimen_id})
