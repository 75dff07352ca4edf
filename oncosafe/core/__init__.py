"""Core modules for the OncoSafeRx engine."""

from oncosafe.core.auth import verify_api_key
from oncosafe.core.cache import CacheService, TTLCache, get_cache_service, get_lookup_cache
from oncosafe.core.errors import (
    EngineError,
    ExternalServiceError,
    NotFoundError,
    SchemaViolationError,
    ValidationError,
)
from oncosafe.core.logging import get_logger, setup_logging
from oncosafe.core.rate_limit import limiter

__all__ = [
    "verify_api_key",
    "CacheService",
    "TTLCache",
    "get_cache_service",
    "get_lookup_cache",
    "EngineError",
    "ExternalServiceError",
    "NotFoundError",
    "SchemaViolationError",
    "ValidationError",
    "get_logger",
    "setup_logging",
    "limiter",
]
