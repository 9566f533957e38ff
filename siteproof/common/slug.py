"""File name slugs for generated report artifacts.

Report names are free text typed by users. Artifacts are written under
predictable paths, so the stem is reduced to lowercase ASCII words joined by
hyphens.
"""

from __future__ import annotations

import re
import unicodedata

_NON_WORD = re.compile(r"[^a-z0-9]+")
_MAX_STEM_LENGTH = 80


def file_slug(name: str, *, fallback: str = "report") -> str:
    """Reduce *name* to a filesystem-safe stem.

    Parameters
    ----------
    name:
        Free-text name to reduce.
    fallback:
        Stem returned when nothing usable survives.

    Returns
    -------
    str
        Lowercase stem of at most 80 characters.

    Examples
    --------
    >>> file_slug("Weekly NCR Summary (Site #4)")
    'weekly-ncr-summary-site-4'
    >>> file_slug("***")
    'report'

    """
    ascii_name = (
        unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    )
    stem = _NON_WORD.sub("-", ascii_name.lower()).strip("-")
    stem = stem[:_MAX_STEM_LENGTH].rstrip("-")
    return stem or fallback
