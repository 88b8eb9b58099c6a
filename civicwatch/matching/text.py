"""Text canonicalization used by the matchers and the duplicate detector."""

import re
import unicodedata
from typing import Optional

_COMBINING_MARKS = re.compile("[\u0300-\u036f]")
_CURLY_APOSTROPHES = re.compile("[\u2018\u2019]")
_DASHES = re.compile("[-\u2013\u2014]")
_WHITESPACE = re.compile(r"\s+")
_REGEX_SPECIALS = re.compile(r"([.*+?^${}()|\[\]\\])")

# Editorial markers left on imported titles
_TITLE_MARKERS = re.compile(
    r"^\s*\[(?:à vérifier|a verifier|draft|auto)\]\s*", re.IGNORECASE
)


def normalize(text: Optional[str]) -> str:
    """Canonicalize text for accent and case insensitive matching.

    Lowercases, strips diacritics, maps curly apostrophes to straight
    ones and turns hyphens and dashes into spaces.

    Examples:
        >>> normalize("François")
        'francois'
        >>> normalize("Jean-Luc")
        'jean luc'
    """
    if not text:
        return ""

    result = unicodedata.normalize("NFD", text.lower())
    result = _COMBINING_MARKS.sub("", result)
    result = _CURLY_APOSTROPHES.sub("'", result)
    result = _DASHES.sub(" ", result)
    return result.strip()


def escape_regex(value: str) -> str:
    """Escape regex metacharacters so a name can be embedded in a pattern."""
    return _REGEX_SPECIALS.sub(r"\\\1", value)


def strip_title_marker(title: Optional[str]) -> str:
    """Remove a leading "[À VÉRIFIER]" style marker from a title."""
    if not title:
        return ""
    return _TITLE_MARKERS.sub("", title).strip()


def normalize_title(title: Optional[str]) -> str:
    """Normalize an affair title for comparison."""
    return _WHITESPACE.sub(" ", normalize(strip_title_marker(title)))
