"""
Severity vocabulary normalization.

Curated files and external sources describe interaction risk with
inconsistent tokens (``high``, ``severe``, ``avoid``...). Every recognized
token maps to exactly one canonical ``Severity``. External sources may also
report a pair as unrated (DrugBank uses ``N/A``); those records are treated
as moderate without a warning. Curated data must always carry a rating.
"""

import re
from typing import Optional

from prometheus_client import Counter

from oncosafe.core.logging import get_logger
from oncosafe.schemas.interactions import Severity

logger = get_logger(__name__)

UNKNOWN_SEVERITY_TOKENS = Counter(
    "oncosafe_unknown_severity_tokens_total",
    "Severity tokens that were not in the mapping table"
)

SEVERITY_TOKENS: dict[str, Severity] = {
    # minor
    "minor": Severity.MINOR,
    "low": Severity.MINOR,
    "mild": Severity.MINOR,
    "minimal": Severity.MINOR,
    # moderate
    "moderate": Severity.MODERATE,
    "medium": Severity.MODERATE,
    "intermediate": Severity.MODERATE,
    "significant": Severity.MODERATE,
    # major
    "major": Severity.MAJOR,
    "high": Severity.MAJOR,
    "severe": Severity.MAJOR,
    "serious": Severity.MAJOR,
    # contraindicated
    "contraindicated": Severity.CONTRAINDICATED,
    "contraindication": Severity.CONTRAINDICATED,
    "avoid": Severity.CONTRAINDICATED,
    "avoid combination": Severity.CONTRAINDICATED,
    "do not use": Severity.CONTRAINDICATED,
}

DEFAULT_SEVERITY = Severity.MODERATE

# Tokens external sources use for pairs they have not rated
UNRATED_TOKENS = {"n/a", "na", "not available", "unrated"}


def canonical_token(token: Optional[str]) -> str:
    """Case-fold and collapse separators: ``Avoid_Combination`` -> ``avoid combination``."""
    if token is None:
        return ""
    return re.sub(r"[\s_\-]+", " ", str(token)).strip().casefold()


def is_known_severity(token: Optional[str]) -> bool:
    return canonical_token(token) in SEVERITY_TOKENS


def normalize_severity(token: Optional[str], source: str = "unknown") -> tuple[Severity, bool]:
    """
    Map a source severity token to the canonical scale.

    Returns:
        Tuple of (severity, recognized). Unrated and unrecognized tokens map
        to ``moderate``; only unrecognized ones are logged and counted.
    """
    canonical = canonical_token(token)
    severity = SEVERITY_TOKENS.get(canonical)
    if severity is not None:
        return severity, True
    if canonical in UNRATED_TOKENS:
        return DEFAULT_SEVERITY, True

    UNKNOWN_SEVERITY_TOKENS.inc()
    logger.warning(
        f"Unrecognized severity token {token!r}; defaulting to {DEFAULT_SEVERITY.value}",
        extra={"source": source}
    )
    return DEFAULT_SEVERITY, False


def most_severe(*levels: Severity) -> Severity:
    """Return the highest of the given severities."""
    return max(levels, key=lambda s: s.rank)
