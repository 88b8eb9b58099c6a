"""
Affair Deduplication

Duplicate detection and reconciliation for affair records.

Components:
- AffairSimilarityScorer: tiered pair comparison (CERTAIN / HIGH / POSSIBLE)
- DuplicateDetector: batch pass that merges or flags candidate pairs
- ReconciliationMerger: atomic merges and dismissal of false positives
"""

from .core_engine import DuplicateDetector, DuplicateCandidate, DetectionStats
from .similarity_scoring import AffairSimilarityScorer, DuplicateMatch, MatchTier
from .merge_proposals import ReconciliationMerger, MergeResult, choose_keeper

__all__ = [
    # Detection
    "DuplicateDetector",
    "DuplicateCandidate",
    "DetectionStats",
    # Scoring
    "AffairSimilarityScorer",
    "DuplicateMatch",
    "MatchTier",
    # Merging
    "ReconciliationMerger",
    "MergeResult",
    "choose_keeper",
]

__version__ = "1.0.0"
