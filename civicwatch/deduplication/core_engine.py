"""
Duplicate Detection Engine

Finds duplicate affairs among unverified records and resolves them by
confidence tier: CERTAIN and HIGH pairs are merged automatically, POSSIBLE
pairs are sent to human review. A failure on one pair is recorded and the
pass moves on to the next.
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from ..errors import CivicWatchError, ItemError
from ..models import (
    Affair,
    DeduplicationConfig,
    Issue,
    IssueType,
    ModerationReview,
    Recommendation,
)
from ..repositories.base import pair_key
from ..security.audit import AuditLogger
from .merge_proposals import ReconciliationMerger, choose_keeper
from .similarity_scoring import AffairSimilarityScorer, DuplicateMatch, MatchTier

logger = logging.getLogger(__name__)


@dataclass
class DuplicateCandidate:
    """A pair of affairs that may describe the same case."""
    affair_a: Affair
    affair_b: Affair
    match: DuplicateMatch

    @property
    def tier(self) -> MatchTier:
        return self.match.tier

    @property
    def score(self) -> float:
        return self.match.score


@dataclass
class DetectionStats:
    """Results of a duplicate detection pass."""
    candidates: int = 0
    processed: int = 0
    auto_merged: int = 0
    flagged_for_review: int = 0
    already_flagged: int = 0
    skipped: int = 0
    tier_distribution: Dict[str, int] = field(default_factory=dict)
    errors: List[ItemError] = field(default_factory=list)
    processing_time: float = 0.0
    dry_run: bool = False


class DuplicateDetector:
    """Finds and resolves duplicate affairs."""

    def __init__(
        self,
        store,
        config: Optional[DeduplicationConfig] = None,
        merger: Optional[ReconciliationMerger] = None,
        scorer: Optional[AffairSimilarityScorer] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.store = store
        self.config = config or DeduplicationConfig()
        self.audit_logger = audit_logger or AuditLogger()
        self.merger = merger or ReconciliationMerger(store, self.audit_logger)
        self.scorer = scorer or AffairSimilarityScorer(self.config)

    def find_potential_duplicates(self) -> List[DuplicateCandidate]:
        """Compare unverified affairs of each politician pairwise.

        Returns:
            Candidates sorted by score, strongest first
        """
        affairs = self.store.list_unverified_affairs()
        dismissed = self.store.list_dismissed_pairs()

        by_politician: Dict[str, List[Affair]] = defaultdict(list)
        for affair in affairs:
            by_politician[affair.politician_id].append(affair)

        candidates: List[DuplicateCandidate] = []
        for group in by_politician.values():
            for i in range(len(group)):
                for j in range(i + 1, len(group)):
                    a, b = group[i], group[j]
                    if pair_key(a.id, b.id) in dismissed:
                        continue
                    match = self.scorer.compare(a, b)
                    if match:
                        candidates.append(DuplicateCandidate(a, b, match))

        candidates.sort(key=lambda c: c.score, reverse=True)
        return candidates

    def run_duplicate_detection_pass(
        self,
        dry_run: bool = False,
        limit: Optional[int] = None,
    ) -> DetectionStats:
        """Merge certain duplicates and flag possible ones for review.

        Args:
            dry_run: Report what would happen without writing
            limit: Maximum number of candidate pairs to handle

        Returns:
            DetectionStats with counts and per-pair errors
        """
        start_time = time.time()
        stats = DetectionStats(dry_run=dry_run)

        logger.info("🔍 Starting duplicate detection pass")
        candidates = self.find_potential_duplicates()
        stats.candidates = len(candidates)
        for candidate in candidates:
            tier = candidate.tier.value
            stats.tier_distribution[tier] = stats.tier_distribution.get(tier, 0) + 1

        logger.info(f"   📊 {len(candidates)} candidate pairs {stats.tier_distribution}")

        if limit is not None:
            candidates = candidates[:limit]

        merged_away: Set[str] = set()
        for candidate in candidates:
            a, b = candidate.affair_a, candidate.affair_b
            if a.id in merged_away or b.id in merged_away:
                stats.skipped += 1
                continue

            stats.processed += 1
            try:
                if candidate.tier.auto_merge:
                    removed_id = self._auto_merge(candidate, stats, dry_run)
                    if removed_id:
                        merged_away.add(removed_id)
                else:
                    self._flag_for_review(candidate, stats, dry_run)
            except CivicWatchError as e:
                logger.error(f"❌ Pair {a.id} / {b.id} failed: {e.message}")
                stats.errors.append(ItemError.from_exception(f"{a.id}:{b.id}", e))

        stats.processing_time = time.time() - start_time
        logger.info(
            f"✅ Duplicate pass done: {stats.auto_merged} merged, "
            f"{stats.flagged_for_review} flagged, {stats.already_flagged} already flagged, "
            f"{len(stats.errors)} errors"
        )
        return stats

    def _auto_merge(
        self, candidate: DuplicateCandidate, stats: DetectionStats, dry_run: bool
    ) -> Optional[str]:
        a, b = candidate.affair_a, candidate.affair_b
        if not dry_run:
            # Earlier merges in this pass may have grown either side
            a, b = self.store.get_affair(a.id), self.store.get_affair(b.id)
            if a is None or b is None:
                stats.skipped += 1
                return None

        keep, remove = choose_keeper(a, b)

        if dry_run:
            logger.info(
                f"   🔍 Would merge \"{remove.title}\" into \"{keep.title}\" "
                f"({candidate.tier.value}, {candidate.score:.2f})"
            )
            stats.auto_merged += 1
            return remove.id

        result = self.merger.merge(keep.id, remove.id, candidate.match)
        if not result.success:
            stats.errors.append(
                ItemError(
                    item_id=f"{keep.id}:{remove.id}",
                    error_type="MergeFailed",
                    message="; ".join(result.errors),
                )
            )
            return None

        stats.auto_merged += 1
        return remove.id

    def _flag_for_review(
        self, candidate: DuplicateCandidate, stats: DetectionStats, dry_run: bool
    ) -> None:
        a, b = candidate.affair_a, candidate.affair_b

        if self.store.find_pending_duplicate_review(a.id, b.id):
            stats.already_flagged += 1
            return

        if dry_run:
            logger.info(f"   🔍 Would flag \"{b.title}\" as possible duplicate of \"{a.title}\"")
            stats.flagged_for_review += 1
            return

        confidence = int(round(candidate.score * 100))
        review = ModerationReview(
            affair_id=b.id,
            recommendation=Recommendation.NEEDS_REVIEW,
            confidence=confidence,
            reasoning=(
                f"Doublon possible de \"{a.title}\" "
                f"(score {candidate.score:.2f}: {', '.join(candidate.match.reasons)})"
            ),
            issues=[
                Issue(
                    type=IssueType.POSSIBLE_DUPLICATE,
                    detail=f"Doublon possible de l'affaire {a.id}",
                )
            ],
            duplicate_of_id=a.id,
            model=self.config.review_model_tag,
        )
        self.store.create_review(review)
        self.audit_logger.log_duplicate_flagged(b.id, a.id, candidate.score)
        stats.flagged_for_review += 1

    def get_reconciliation_stats(self) -> Dict[str, object]:
        """Snapshot of the reconciliation backlog."""
        candidates = self.find_potential_duplicates()
        by_tier: Dict[str, int] = {tier.value: 0 for tier in MatchTier}
        for candidate in candidates:
            by_tier[candidate.tier.value] += 1

        return {
            "unverified_affairs": len(self.store.list_unverified_affairs()),
            "pending_duplicate_reviews": self.store.count_pending_duplicate_reviews(),
            "dismissed_pairs": len(self.store.list_dismissed_pairs()),
            "candidates_by_tier": by_tier,
        }
