"""
Affair Similarity Scoring

Compares two affairs of the same politician and classifies the pair into a
confidence tier. Judicial identifiers and identical source sets are strong
evidence; title similarity and date proximity are weaker signals.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from itertools import product
from typing import List, Optional, Set

from fuzzywuzzy import fuzz

from ..matching.text import normalize_title
from ..models import Affair, DeduplicationConfig

logger = logging.getLogger(__name__)


class MatchTier(str, Enum):
    """Confidence tier of a duplicate pair."""

    CERTAIN = "CERTAIN"
    HIGH = "HIGH"
    POSSIBLE = "POSSIBLE"

    @property
    def auto_merge(self) -> bool:
        return self in (MatchTier.CERTAIN, MatchTier.HIGH)


@dataclass
class DuplicateMatch:
    """Why two affairs look like the same case."""
    tier: MatchTier
    score: float
    reasons: List[str] = field(default_factory=list)


def normalize_url(url: str) -> str:
    return url.strip().lower().rstrip("/")


def source_url_set(affair: Affair) -> Set[str]:
    return {normalize_url(s.url) for s in affair.sources if s.url}


def _days_apart(first: Optional[date], second: Optional[date]) -> Optional[int]:
    if first is None or second is None:
        return None
    return abs((first - second).days)


class AffairSimilarityScorer:
    """Tiered comparison of affair pairs."""

    def __init__(self, config: Optional[DeduplicationConfig] = None):
        self.config = config or DeduplicationConfig()

    def compare(self, a: Affair, b: Affair) -> Optional[DuplicateMatch]:
        """Classify a pair, or return None when nothing suggests a duplicate.

        Signals are checked strongest first and the first hit decides.
        """
        if a.ecli and b.ecli and a.ecli.strip().upper() == b.ecli.strip().upper():
            return DuplicateMatch(MatchTier.CERTAIN, 1.0, [f"same ECLI {a.ecli}"])

        urls_a, urls_b = source_url_set(a), source_url_set(b)
        if urls_a and urls_a == urls_b:
            return DuplicateMatch(
                MatchTier.CERTAIN, 0.98, [f"identical sources ({len(urls_a)} URLs)"]
            )

        if a.pourvoi_number and a.pourvoi_number == b.pourvoi_number:
            return DuplicateMatch(
                MatchTier.HIGH, 0.95, [f"same pourvoi number {a.pourvoi_number}"]
            )

        shared_cases = set(a.case_numbers) & set(b.case_numbers)
        if shared_cases:
            return DuplicateMatch(
                MatchTier.HIGH, 0.9, [f"shared case numbers {sorted(shared_cases)}"]
            )

        title_a, title_b = normalize_title(a.title), normalize_title(b.title)
        if not title_a or not title_b:
            return self._date_only_match(a, b)

        if title_a == title_b:
            return DuplicateMatch(MatchTier.HIGH, 0.85, ["identical title"])

        near_ratio = fuzz.token_set_ratio(title_a, title_b)
        if near_ratio >= self.config.near_identical_title_ratio and self._dates_close(a, b):
            return DuplicateMatch(
                MatchTier.HIGH,
                0.8,
                [f"near-identical title ({near_ratio}%)", "dates within range"],
            )

        shorter, longer = sorted((title_a, title_b), key=len)
        if len(shorter) >= self.config.min_containment_length and shorter in longer:
            if a.category == b.category:
                return DuplicateMatch(
                    MatchTier.HIGH, 0.75, ["title contained in the other", "same category"]
                )
            return DuplicateMatch(
                MatchTier.POSSIBLE, 0.5, ["title contained in the other", "different category"]
            )

        sort_ratio = fuzz.token_sort_ratio(title_a, title_b)
        if sort_ratio >= self.config.possible_title_ratio:
            return DuplicateMatch(
                MatchTier.POSSIBLE,
                round(sort_ratio / 100 * 0.6, 3),
                [f"similar title ({sort_ratio}%)"],
            )

        return self._date_only_match(a, b)

    def _date_only_match(self, a: Affair, b: Affair) -> Optional[DuplicateMatch]:
        days = _days_apart(a.verdict_date, b.verdict_date)
        if a.category == b.category and days is not None and days <= self.config.date_proximity_days:
            return DuplicateMatch(
                MatchTier.POSSIBLE,
                0.4,
                [f"same category {a.category.value}", f"verdicts {days} days apart"],
            )
        return None

    def _dates_close(self, a: Affair, b: Affair) -> bool:
        dates_a = [d for d in (a.facts_date, a.start_date, a.verdict_date) if d]
        dates_b = [d for d in (b.facts_date, b.start_date, b.verdict_date) if d]
        return any(
            _days_apart(x, y) <= self.config.date_proximity_days
            for x, y in product(dates_a, dates_b)
        )
