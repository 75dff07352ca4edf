"""
Configuration management for the OncoSafeRx engine.
Uses pydantic-settings for type-safe environment variable handling.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

DEFAULT_DATA_DIR = Path(__file__).parent / "data"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "OncoSafeRx Interaction & Dosing Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Security
    ENGINE_API_KEY: str = ""
    FRONTEND_ORIGIN: str = "https://oncosaferx.com"

    # Redis (shared lookup tier)
    REDIS_ENABLED: bool = True
    REDIS_URL: str = "redis://localhost:6379"

    # In-process lookup cache
    LOOKUP_CACHE_TTL: int = 3600  # 1 hour
    LOOKUP_CACHE_MAX_ENTRIES: int = 5000

    # External vocabulary / interaction service
    VOCABULARY_BASE_URL: str = "https://rxnav.nlm.nih.gov/REST"
    VOCABULARY_TIMEOUT: float = 10.0

    # Reference data
    REFERENCE_DATA_DIR: Path = DEFAULT_DATA_DIR
    ALIAS_FILE: str = "drug_aliases.json"
    INTERACTION_FILE: str = "curated_interactions.csv"
    REGIMEN_FILE: str = "regimens.json"

    # Interaction check
    MIN_CHECK_DRUGS: int = 2
    MAX_CHECK_DRUGS: int = 10
    EXTERNAL_LOOKUP_FOR_CURATED_PAIRS: bool = True

    # Dosing
    DOSING_EMIT_NO_CHANGE: bool = False

    # Rate limiting
    RATE_LIMIT_REQUESTS: int = 100
    RATE_LIMIT_WINDOW: int = 60  # seconds

    # Circuit breaker
    CIRCUIT_BREAKER_THRESHOLD: int = 5
    CIRCUIT_BREAKER_TIMEOUT: int = 60

    # Connection pooling
    HTTP_POOL_SIZE: int = 100
    HTTP_POOL_KEEPALIVE: int = 30

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
