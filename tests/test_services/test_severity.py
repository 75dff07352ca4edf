"""
Tests for severity token normalization.
"""

import pytest

from oncosafe.schemas.interactions import Severity
from oncosafe.services.severity import (
    canonical_token,
    is_known_severity,
    most_severe,
    normalize_severity,
)


@pytest.mark.parametrize("token,expected", [
    ("high", Severity.MAJOR),
    ("Major", Severity.MAJOR),
    ("SEVERE", Severity.MAJOR),
    ("low", Severity.MINOR),
    ("medium", Severity.MODERATE),
    ("Avoid_Combination", Severity.CONTRAINDICATED),
    ("contraindicated", Severity.CONTRAINDICATED),
])
def test_known_tokens_map_to_one_level(token: str, expected: Severity):
    """Each recognized token lands on exactly one canonical level."""
    severity, recognized = normalize_severity(token)

    assert severity == expected
    assert recognized is True


@pytest.mark.parametrize("token", ["", None, "catastrophic"])
def test_unknown_tokens_default_to_moderate(token):
    """Unrecognized tokens are flagged and treated as moderate."""
    severity, recognized = normalize_severity(token, source="test")

    assert severity == Severity.MODERATE
    assert recognized is False


@pytest.mark.parametrize("token", ["N/A", "n/a", "Not Available"])
def test_unrated_external_tokens_are_moderate_without_warning(token):
    severity, recognized = normalize_severity(token, source="DrugBank")

    assert severity == Severity.MODERATE
    assert recognized is True
    # Curated documents still need a real rating
    assert not is_known_severity(token)


def test_canonical_token_collapses_separators():
    assert canonical_token("  Do-Not_Use ") == "do not use"
    assert is_known_severity("do-not-use")
    assert not is_known_severity("unknown")


def test_most_severe():
    assert most_severe(Severity.MINOR, Severity.CONTRAINDICATED, Severity.MAJOR) == Severity.CONTRAINDICATED
    assert Severity.MAJOR.rank > Severity.MODERATE.rank
