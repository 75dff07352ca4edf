"""
Error taxonomy for the interaction and dosing engine.

Validation and not-found errors surface to callers; external service errors
are absorbed by the services that call the vocabulary and downgraded to
warnings; schema violations abort a reference-data load.
"""

from typing import Any, Optional


class EngineError(Exception):
    """Base class for all engine errors."""

    error_type = "EngineError"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(EngineError):
    """Malformed request shape, bad identifier format or wrong cardinality."""

    error_type = "ValidationError"


class NotFoundError(EngineError):
    """Unknown regimen or drug."""

    error_type = "NotFoundError"


class SchemaViolationError(EngineError):
    """Curated reference data failed its schema; the load was rejected."""

    error_type = "SchemaViolationError"

    def __init__(self, message: str, violations: list):
        super().__init__(message, {"violations": [v.model_dump() for v in violations]})
        self.violations = violations


class ExternalServiceError(EngineError):
    """Timeout or failure while calling the vocabulary/interaction service."""

    error_type = "ExternalServiceError"
