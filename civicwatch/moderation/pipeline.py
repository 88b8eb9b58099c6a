"""
Moderation Pipeline

Runs the three moderation phases in order, each to completion:

1. Duplicate detection (auto-merge certain pairs, flag possible ones)
2. AI classification of DRAFT affairs without a pending review
3. Web enrichment of rejected affairs lacking sources or description

Classification only records pending reviews. Nothing here publishes an affair.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..deduplication import DetectionStats, DuplicateDetector
from ..errors import ConfigurationError, ErrorHandler, ItemError
from ..logging_config import Timer, log_context, log_performance
from ..models import (
    SENSITIVE_CATEGORIES,
    Affair,
    Config,
    Issue,
    IssueType,
    Recommendation,
)
from ..rate_limiting import RateLimiter
from ..search import BraveSearchClient, PageExtractor
from ..security.audit import AuditLogger
from .ai_client import (
    AffairClassifier,
    ClassificationResult,
    EnrichmentExtractor,
    ModerationContext,
    create_provider,
)
from .enrichment import EnrichmentAgent, EnrichmentOutcome

logger = logging.getLogger(__name__)


@dataclass
class ModerationStats:
    """Counts for one moderation pass, per phase."""
    dry_run: bool = False
    disabled: bool = False

    dedup: Optional[DetectionStats] = None

    classified: int = 0
    would_classify: int = 0
    recommendations: Dict[str, int] = field(
        default_factory=lambda: {r.value: 0 for r in Recommendation}
    )
    sensitive_overrides: int = 0

    enrichment_skipped: Optional[str] = None
    enrichment_candidates: int = 0
    enrichment_processed: int = 0
    enriched: int = 0
    not_enriched: int = 0

    errors: List[ItemError] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def total_errors(self) -> int:
        dedup_errors = len(self.dedup.errors) if self.dedup else 0
        return dedup_errors + len(self.errors)


def enforce_sensitive_review(result: ClassificationResult, current_category) -> bool:
    """Force NEEDS_REVIEW when the affair falls in a sensitive category.

    Returns:
        True if the recommendation was overridden
    """
    effective = result.corrected_category or current_category
    if effective not in SENSITIVE_CATEGORIES:
        return False

    overridden = result.recommendation != Recommendation.NEEDS_REVIEW
    result.recommendation = Recommendation.NEEDS_REVIEW
    if not result.has_issue(IssueType.SENSITIVE_CATEGORY):
        result.issues.append(
            Issue(
                type=IssueType.SENSITIVE_CATEGORY,
                detail=f"La catégorie {effective.value} exige une vérification humaine.",
            )
        )
    return overridden


class ModerationPipeline:
    """Orchestrates deduplication, classification and enrichment."""

    def __init__(
        self,
        store,
        config: Config,
        classifier: Optional[AffairClassifier] = None,
        enrichment_agent: Optional[EnrichmentAgent] = None,
        detector: Optional[DuplicateDetector] = None,
        ai_limiter: Optional[RateLimiter] = None,
        search_limiter: Optional[RateLimiter] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.store = store
        self.config = config
        self.audit_logger = audit_logger or AuditLogger()
        self.error_handler = ErrorHandler(self.audit_logger)

        limits = config.rate_limit
        self.ai_limiter = ai_limiter or RateLimiter(
            limits.ai_interval, limits.rate_limit_pause, name="anthropic"
        )
        self.search_limiter = search_limiter or RateLimiter(
            limits.search_interval, limits.rate_limit_pause, name="brave_search"
        )

        self.detector = detector or DuplicateDetector(
            store, config.deduplication, audit_logger=self.audit_logger
        )
        self.classifier = classifier
        self.enrichment_agent = enrichment_agent

    # Lazy construction keeps dry runs free of credentials

    def _get_classifier(self) -> AffairClassifier:
        if self.classifier is None:
            self.classifier = AffairClassifier(create_provider(self.config.ai))
        return self.classifier

    def get_enrichment_agent(self) -> Optional[EnrichmentAgent]:
        if self.enrichment_agent is None and self.config.search.api_key:
            search = self.config.search
            self.enrichment_agent = EnrichmentAgent(
                self.store,
                search_client=BraveSearchClient(
                    search.api_key, search.endpoint, search.country, search.timeout
                ),
                page_extractor=PageExtractor(
                    search.page_timeout, search.min_page_chars, search.max_page_chars
                ),
                extractor=EnrichmentExtractor(self._get_classifier().provider),
                search_limiter=self.search_limiter,
                ai_limiter=self.ai_limiter,
                search_config=search,
                moderation_config=self.config.moderation,
                audit_logger=self.audit_logger,
            )
        return self.enrichment_agent

    def run_moderation_pass(
        self,
        dry_run: bool = False,
        limit: Optional[int] = None,
        skip_dedup: bool = False,
        skip_enrichment: bool = False,
    ) -> ModerationStats:
        """Run deduplication, classification and enrichment in order.

        Args:
            dry_run: Report without writing or calling the AI provider
            limit: Maximum affairs to classify, and reviews to enrich
            skip_dedup: Skip phase 1
            skip_enrichment: Skip phase 3

        Returns:
            ModerationStats with per-phase counts and item errors

        Raises:
            ConfigurationError: AI credentials missing outside dry-run
        """
        stats = ModerationStats(dry_run=dry_run)

        if not self.config.moderation.enabled:
            logger.warning("⚠️ Moderation is disabled in configuration")
            stats.disabled = True
            return stats

        if not dry_run and self.classifier is None and not self.config.ai.api_key:
            raise ConfigurationError(
                "ANTHROPIC_API_KEY is required outside dry-run", setting="ai.api_key"
            )

        mode = "DRY RUN" if dry_run else "LIVE"
        logger.info(f"🚀 Starting moderation pass ({mode})")

        with Timer() as timer:
            if skip_dedup:
                logger.info("⏭️ Phase 1 skipped")
            else:
                logger.info("=== Phase 1: duplicate detection ===")
                stats.dedup = self.detector.run_duplicate_detection_pass(dry_run=dry_run)

            logger.info("=== Phase 2: AI classification ===")
            self._classification_phase(stats, dry_run, limit)

            if skip_enrichment:
                stats.enrichment_skipped = "skipped by request"
                logger.info("⏭️ Phase 3 skipped")
            else:
                logger.info("=== Phase 3: web enrichment ===")
                self._enrichment_phase(stats, dry_run, limit)

        stats.duration_ms = timer.duration_ms
        log_performance(__name__, "moderation pass", timer.duration_ms, dry_run=dry_run)
        logger.info(
            f"✅ Moderation pass done: {stats.classified} classified, "
            f"{stats.enriched} enriched, {stats.total_errors} errors"
        )
        return stats

    def _classification_phase(
        self, stats: ModerationStats, dry_run: bool, limit: Optional[int]
    ) -> None:
        affairs = self.store.list_affairs_awaiting_moderation(limit)
        logger.info(f"   📊 {len(affairs)} DRAFT affairs awaiting review")

        for index, affair in enumerate(affairs, 1):
            label = f"[{index}/{len(affairs)}] \"{affair.title}\""

            if dry_run:
                logger.info(f"   🔍 {label}: classification skipped (dry run)")
                stats.would_classify += 1
                continue

            with log_context(affair_id=affair.id, phase="classification"), \
                    self.error_handler.error_context(
                        operation="classify_affair", resource_type="Affair", resource_id=affair.id
                    ):
                try:
                    self._classify(affair, stats, label)
                except Exception as e:
                    handled = self.error_handler.handle_error(e, reraise=False)
                    stats.errors.append(ItemError.from_exception(affair.id, handled))

    def _classify(self, affair: Affair, stats: ModerationStats, label: str) -> None:
        entity = self.store.get_entity(affair.politician_id)
        context = ModerationContext(
            affair=affair,
            politician_name=entity.full_name if entity else "",
            sibling_titles=self.store.list_sibling_titles(
                affair.politician_id, affair.id, limit=self.config.moderation.sibling_title_limit
            ),
        )

        result = self.ai_limiter.call(self._get_classifier().classify, context)
        if enforce_sensitive_review(result, affair.category):
            stats.sensitive_overrides += 1

        review = self.store.create_review(result.to_review(affair.id))
        stats.classified += 1
        stats.recommendations[result.recommendation.value] += 1

        self.audit_logger.log_review_created(
            affair_id=affair.id,
            recommendation=review.recommendation.value,
            confidence=review.confidence,
            issues=[issue.type.value for issue in review.issues],
        )
        logger.info(f"   {label} -> {result.recommendation.value} ({result.confidence}%)")

    def _enrichment_phase(
        self, stats: ModerationStats, dry_run: bool, limit: Optional[int]
    ) -> None:
        candidates = self.store.list_enrichment_candidates(limit)
        stats.enrichment_candidates = len(candidates)

        if dry_run:
            stats.enrichment_skipped = "dry run"
            logger.info(f"   🔍 {len(candidates)} reviews eligible, enrichment skipped (dry run)")
            return

        agent = self.get_enrichment_agent()
        if agent is None:
            stats.enrichment_skipped = "no search API key"
            logger.info("   ⏭️ BRAVE_API_KEY not set, enrichment skipped")
            return

        logger.info(f"   📊 {len(candidates)} rejected reviews eligible for enrichment")
        for index, review in enumerate(candidates, 1):
            with log_context(affair_id=review.affair_id, phase="enrichment"), \
                    self.error_handler.error_context(
                        operation="enrich_affair", resource_type="Affair", resource_id=review.affair_id
                    ):
                try:
                    outcome = agent.enrich_affair(review.affair_id)
                except Exception as e:
                    handled = self.error_handler.handle_error(e, reraise=False)
                    outcome = EnrichmentOutcome(
                        affair_id=review.affair_id,
                        error=ItemError.from_exception(review.affair_id, handled),
                    )

            stats.enrichment_processed += 1
            if outcome.error:
                stats.errors.append(outcome.error)
            elif outcome.enriched:
                stats.enriched += 1
                logger.info(
                    f"   [{index}/{len(candidates)}] {review.affair_id} -> enriched "
                    f"({outcome.sources_added} sources)"
                )
            else:
                stats.not_enriched += 1
                logger.info(
                    f"   [{index}/{len(candidates)}] {review.affair_id} -> not enriched: "
                    f"{outcome.reasoning}"
                )
