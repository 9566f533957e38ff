"""Unit tests for the artifact file name slug utility."""

from __future__ import annotations

import pytest

from siteproof.common.slug import file_slug


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("Weekly NCR Summary (Site #4)", "weekly-ncr-summary-site-4"),
        ("  Leading and trailing  ", "leading-and-trailing"),
        ("Café Façade Inspection", "cafe-facade-inspection"),
        ("ITP_report/2024", "itp-report-2024"),
    ],
)
def test_file_slug_reduces_free_text(name: str, expected: str) -> None:
    """file_slug lowercases and hyphenates free-text names."""
    assert file_slug(name) == expected


@pytest.mark.parametrize("name", ["", "***", "   ", "日本語"])
def test_file_slug_falls_back_when_nothing_survives(name: str) -> None:
    """Names without ASCII letters or digits use the fallback stem."""
    assert file_slug(name) == "report"
    assert file_slug(name, fallback="export") == "export"


def test_file_slug_caps_length_without_trailing_hyphen() -> None:
    """Long names are cut to 80 characters and never end in a hyphen."""
    stem = file_slug("a" * 79 + " b" * 10)
    assert len(stem) <= 80
    assert not stem.endswith("-")
    assert stem == "a" * 79
