"""
Entity Mention Matching

Finds references to known people and parties in free text (press articles,
fact-checks, claims). Full names are matched first, then the last name (or
party short name) alone, with guards against:

- common French words and first names that double as surnames
- a surname that is really the first name of another matched figure
  ("Laurent Wauquiez" must not credit "Daniel Laurent")
- fragments of hyphenated compounds ("Saint-Laurent")
"""

import re
import unicodedata
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from .text import normalize, escape_regex

# Words too common to identify anyone when they appear alone
EXCLUDED_NAMES = frozenset(
    {
        # first names that are also surnames
        "paul", "jean", "pierre", "louis", "charles", "marie", "anne",
        "richard", "martin", "moreau", "bernard", "thomas", "robert",
        "simon", "michel", "laurent", "daniel", "david",
        # everyday words
        "fait", "gauche", "droite", "maire", "parti", "france", "etat",
        "nord", "sud", "est", "ouest", "grand", "petit", "long", "court",
        "haut", "bas", "frappe",
        # colours
        "blanc", "noir", "rouge", "vert", "bleu", "rose", "brun",
        # nationalities
        "allemand", "anglais", "francais", "europeen", "americain",
        "italien", "espagnol",
        # trades
        "prevost", "marchand", "berger", "chevalier", "fontaine", "moulin",
    }
)

# Party acronyms that collide with other uses
EXCLUDED_PARTY_SHORTNAMES = frozenset({"lr", "ps", "udi", "dvd", "dvg"})

PERSON_MIN_TOKEN_LENGTH = 5
PARTY_MIN_TOKEN_LENGTH = 3

_DASH_CHARS = "-\u2013\u2014"


@dataclass(frozen=True)
class NameCandidate:
    """A matchable name with its pre-normalized forms.

    ``token`` is the last name for a person or the short name for a party.
    """

    id: str
    full_name: str
    token: Optional[str]
    normalized_full_name: str
    normalized_token: str


@dataclass(frozen=True)
class Mention:
    """An entity found in a text, with the name that matched."""

    entity_id: str
    matched_name: str


def build_person_index(entities: Iterable) -> List[NameCandidate]:
    """Build candidates from objects exposing ``id``, ``full_name`` and ``last_name``."""
    return [
        NameCandidate(
            id=entity.id,
            full_name=entity.full_name,
            token=entity.last_name or None,
            normalized_full_name=normalize(entity.full_name),
            normalized_token=normalize(entity.last_name),
        )
        for entity in entities
        if entity.full_name
    ]


def build_party_index(parties: Iterable) -> List[NameCandidate]:
    """Build candidates from objects exposing ``id``, ``name`` and ``short_name``."""
    return [
        NameCandidate(
            id=party.id,
            full_name=party.name,
            token=party.short_name or None,
            normalized_full_name=normalize(party.name),
            normalized_token=normalize(party.short_name),
        )
        for party in parties
        if party.name
    ]


class MentionMatcher:
    """Attributes free text to people from a candidate index."""

    min_token_length = PERSON_MIN_TOKEN_LENGTH
    stoplist = EXCLUDED_NAMES

    def find(self, text: Optional[str], candidates: Sequence[NameCandidate]) -> List[Mention]:
        """Return at most one mention per candidate found in ``text``."""
        if not text or not candidates:
            return []

        folded = _fold(text)
        searchable = re.sub(f"[{_DASH_CHARS}]", " ", folded)

        ordered = sorted(candidates, key=lambda c: len(c.normalized_full_name), reverse=True)
        mentions: List[Mention] = []
        matched_ids: Set[str] = set()
        claimed: List[Tuple[int, int, str]] = []

        # Full names first, so their spans are known before any token match
        for candidate in ordered:
            if candidate.id in matched_ids or not candidate.normalized_full_name:
                continue
            spans = [m.span() for m in _word_pattern(candidate.normalized_full_name).finditer(searchable)]
            if spans:
                # Every occurrence, not just the first, shields its tokens
                claimed.extend((start, end, candidate.id) for start, end in spans)
                matched_ids.add(candidate.id)
                mentions.append(Mention(candidate.id, candidate.full_name))

        for candidate in ordered:
            if candidate.id in matched_ids or not self._token_is_usable(candidate):
                continue
            pattern = _word_pattern(candidate.normalized_token)
            for match in pattern.finditer(searchable):
                start, end = match.span()
                if _inside_claimed_span(start, end, candidate.id, claimed):
                    continue
                if _is_hyphenated(folded, start, end):
                    continue
                matched_ids.add(candidate.id)
                mentions.append(Mention(candidate.id, candidate.token))
                break

        return mentions

    def _token_is_usable(self, candidate: NameCandidate) -> bool:
        token = candidate.normalized_token
        return (
            bool(token)
            and len(token) >= self.min_token_length
            and token not in self.stoplist
        )


class PartyMentionMatcher(MentionMatcher):
    """Attributes free text to parties; short names need 3+ characters."""

    min_token_length = PARTY_MIN_TOKEN_LENGTH
    stoplist = EXCLUDED_PARTY_SHORTNAMES


_person_matcher = MentionMatcher()
_party_matcher = PartyMentionMatcher()


def find_mentions(text: Optional[str], person_index: Sequence[NameCandidate]) -> List[Mention]:
    """Find people mentioned in ``text``."""
    return _person_matcher.find(text, person_index)


def find_party_mentions(text: Optional[str], party_index: Sequence[NameCandidate]) -> List[Mention]:
    """Find parties mentioned in ``text``."""
    return _party_matcher.find(text, party_index)


def _fold(text: str) -> str:
    # Same character positions as normalize() before dashes become spaces
    folded = unicodedata.normalize("NFD", text.lower())
    folded = re.sub("[\u0300-\u036f]", "", folded)
    return re.sub("[\u2018\u2019]", "'", folded)


def _word_pattern(normalized_name: str) -> "re.Pattern":
    return re.compile(r"\b" + escape_regex(normalized_name) + r"\b")


def _inside_claimed_span(start: int, end: int, candidate_id: str, claimed) -> bool:
    return any(
        owner != candidate_id and start >= span_start and end <= span_end
        for span_start, span_end, owner in claimed
    )


def _is_hyphenated(folded: str, start: int, end: int) -> bool:
    before = start >= 2 and folded[start - 1] in _DASH_CHARS and folded[start - 2].isalnum()
    after = (
        end + 1 < len(folded) and folded[end] in _DASH_CHARS and folded[end + 1].isalnum()
    )
    return before or after
