"""Text normalization and entity mention matching."""

from .text import normalize, escape_regex, normalize_title, strip_title_marker
from .mentions import (
    NameCandidate,
    Mention,
    MentionMatcher,
    PartyMentionMatcher,
    build_person_index,
    build_party_index,
    find_mentions,
    find_party_mentions,
    EXCLUDED_NAMES,
    EXCLUDED_PARTY_SHORTNAMES,
)

__all__ = [
    "normalize",
    "escape_regex",
    "normalize_title",
    "strip_title_marker",
    "NameCandidate",
    "Mention",
    "MentionMatcher",
    "PartyMentionMatcher",
    "build_person_index",
    "build_party_index",
    "find_mentions",
    "find_party_mentions",
    "EXCLUDED_NAMES",
    "EXCLUDED_PARTY_SHORTNAMES",
]
