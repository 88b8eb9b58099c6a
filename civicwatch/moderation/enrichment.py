"""
Affair Enrichment

Enriches thin or rejected affairs with corroborating press coverage: search
trusted publishers, extract the articles, let the AI structure the facts and
write the result back for human review.

Enriched affairs always end up in NEEDS_REVIEW. Enrichment never publishes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..deduplication.similarity_scoring import normalize_url
from ..errors import CivicWatchError, ItemError
from ..models import (
    ENRICHED_PREFIX,
    Affair,
    AuditEntry,
    Issue,
    IssueType,
    ModerationConfig,
    ModerationReview,
    Recommendation,
    SearchConfig,
    Source,
    SourceType,
)
from ..rate_limiting import RateLimiter
from ..search import BraveSearchClient, ExtractedPage, PageExtractor, SearchResult, build_affair_query
from ..security.audit import AuditLogger
from .ai_client import EnrichmentExtractor, EnrichmentResult

logger = logging.getLogger(__name__)

# Snippets of unscraped results passed alongside the scraped articles
MAX_SNIPPETS = 5


@dataclass
class EnrichmentOutcome:
    """What an enrichment attempt found and changed."""
    affair_id: str
    enriched: bool = False
    sources_found: int = 0
    sources_added: int = 0
    changes: List[str] = field(default_factory=list)
    reasoning: str = ""
    confidence: Optional[int] = None
    error: Optional[ItemError] = None
    dry_run: bool = False


class EnrichmentAgent:
    """Search, extract and structure press coverage for one affair at a time."""

    def __init__(
        self,
        store,
        search_client: BraveSearchClient,
        page_extractor: PageExtractor,
        extractor: EnrichmentExtractor,
        search_limiter: Optional[RateLimiter] = None,
        ai_limiter: Optional[RateLimiter] = None,
        search_config: Optional[SearchConfig] = None,
        moderation_config: Optional[ModerationConfig] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.store = store
        self.search_client = search_client
        self.page_extractor = page_extractor
        self.extractor = extractor
        self.search_config = search_config or SearchConfig()
        self.moderation_config = moderation_config or ModerationConfig()
        self.search_limiter = search_limiter or RateLimiter(1.1, name="brave_search")
        self.ai_limiter = ai_limiter or RateLimiter(1.0, name="anthropic")
        self.audit_logger = audit_logger or AuditLogger()

    def enrich_affair(self, affair_id: str, dry_run: bool = False) -> EnrichmentOutcome:
        """Try to enrich one affair from web sources.

        Args:
            affair_id: Affair to enrich
            dry_run: Compute the changes without writing them

        Returns:
            EnrichmentOutcome; failures are reported in ``error``
        """
        outcome = EnrichmentOutcome(affair_id=affair_id, dry_run=dry_run)

        affair = self.store.get_affair(affair_id)
        if affair is None:
            outcome.reasoning = "Affair not found"
            return outcome

        entity = self.store.get_entity(affair.politician_id)
        politician_name = entity.full_name if entity else ""

        try:
            return self._enrich(affair, politician_name, outcome, dry_run)
        except CivicWatchError as e:
            logger.error(f"❌ Enrichment of {affair_id} failed: {e.message}")
            outcome.enriched = False
            outcome.sources_added = 0
            outcome.error = ItemError.from_exception(affair_id, e)
            outcome.reasoning = e.message
            return outcome

    def _enrich(
        self, affair: Affair, politician_name: str, outcome: EnrichmentOutcome, dry_run: bool
    ) -> EnrichmentOutcome:
        query = build_affair_query(politician_name, affair.title)
        logger.info(f"🔍 Searching press coverage: {query}")
        results = self.search_limiter.call(
            self.search_client.search, query, self.search_config.result_count
        )
        outcome.sources_found = len(results)
        if not results:
            outcome.reasoning = "No trusted press sources found"
            return outcome

        known_urls = {normalize_url(url) for url in affair.source_urls}
        new_results = [r for r in results if normalize_url(r.url) not in known_urls]
        if not new_results:
            outcome.reasoning = "All found sources already linked to affair"
            return outcome

        pages = self._scrape(new_results[: self.search_config.max_pages])
        if not pages:
            outcome.reasoning = "Could not extract any article"
            return outcome

        contexts = self._article_contexts(pages, new_results)
        result = self.ai_limiter.call(self.extractor.extract, politician_name, affair, contexts)
        if result is None:
            outcome.reasoning = "AI extraction returned nothing"
            return outcome

        outcome.confidence = result.confidence
        floor = self.moderation_config.enrichment_confidence_floor
        if result.confidence < floor:
            outcome.reasoning = f"AI confidence too low ({result.confidence}%): {result.reasoning}"
            logger.info(f"   ⏭️ {affair.id}: confidence {result.confidence} below {floor}")
            return outcome

        updated, changes, field_changes = self.build_updates(affair, result)
        new_sources = self._new_sources(pages, new_results, known_urls, result)
        updated.sources.extend(new_sources)
        if new_sources:
            changes.append(f"{len(new_sources)} source(s) presse ajoutée(s)")

        outcome.enriched = True
        outcome.sources_added = len(new_sources)
        outcome.changes = changes
        outcome.reasoning = result.reasoning

        if dry_run:
            logger.info(f"   🔍 Would enrich {affair.id}: {', '.join(changes) or 'no field changes'}")
            return outcome

        review = self._build_review(affair.id, result, len(new_sources))
        audit = AuditEntry(
            action="ENRICH",
            entity_type="Affair",
            entity_id=affair.id,
            changes={
                "source": "auto-enrichment",
                "confidence": result.confidence,
                "sources_added": len(new_sources),
                "review_id": review.id,
                **field_changes,
            },
        )
        self.store.apply_enrichment(updated, review, audit)
        self.audit_logger.log_enrichment(affair.id, changes, len(new_sources), result.confidence)
        logger.info(f"✅ Enriched {affair.id} ({len(new_sources)} sources)")
        return outcome

    def _scrape(self, results: List[SearchResult]) -> List[ExtractedPage]:
        pages = []
        for result in results:
            try:
                pages.append(self.page_extractor.fetch(result.url))
            except CivicWatchError as e:
                logger.warning(f"   ⚠️ Skipping {result.url}: {e.message}")
        return pages

    @staticmethod
    def _article_contexts(pages: List[ExtractedPage], results: List[SearchResult]) -> List[str]:
        publisher_by_url = {r.url: r.publisher for r in results}
        contexts = [
            f"--- Article ({publisher_by_url.get(page.url, '')}) ---\n"
            f"URL: {page.url}\nTitre: {page.title}\n\n{page.text}\n---"
            for page in pages
        ]

        scraped_urls = {page.url for page in pages}
        for result in results[:MAX_SNIPPETS]:
            if result.url not in scraped_urls and result.snippet:
                contexts.append(
                    f"--- Extrait ({result.publisher}) ---\n"
                    f"URL: {result.url}\nTitre: {result.title}\nExtrait: {result.snippet}\n---"
                )
        return contexts

    @staticmethod
    def build_updates(affair: Affair, result: EnrichmentResult):
        """Apply the extracted facts that are valid and actually change something.

        Returns:
            (updated affair, human readable changes, field -> new value)
        """
        updated = affair.model_copy(deep=True)
        changes: List[str] = []
        fields: Dict[str, Any] = {}

        def set_field(name: str, value: Any, label: Optional[str] = None):
            if value is None or getattr(updated, name) == value:
                return
            setattr(updated, name, value)
            fields[name] = value.value if hasattr(value, "value") else (
                value.isoformat() if hasattr(value, "isoformat") else value
            )
            if label:
                changes.append(label)

        if result.title:
            set_field("title", result.title, f'Titre: "{affair.title}" -> "{result.title}"')
        if result.description:
            set_field("description", result.description, "Description enrichie")
        if result.status:
            set_field("status", result.status, f"Statut: {affair.status.value} -> {result.status.value}")
        if result.category:
            set_field(
                "category", result.category, f"Catégorie: {affair.category.value} -> {result.category.value}"
            )

        sentence = result.sentence
        if sentence:
            if sentence.prison_months is not None:
                set_field("prison_months", sentence.prison_months, f"Prison: {sentence.prison_months} mois")
            set_field("prison_suspended", sentence.prison_suspended)
            if sentence.fine_amount is not None:
                set_field("fine_amount", sentence.fine_amount, f"Amende: {sentence.fine_amount:.0f} €")
            if sentence.ineligibility_months is not None:
                set_field(
                    "ineligibility_months",
                    sentence.ineligibility_months,
                    f"Inéligibilité: {sentence.ineligibility_months} mois",
                )
            set_field("community_service_hours", sentence.community_service_hours)
            set_field("other_sentence", sentence.other)

        if result.facts_date:
            set_field("facts_date", result.facts_date, f"Date des faits: {result.facts_date.isoformat()}")
        if result.verdict_date:
            set_field("verdict_date", result.verdict_date, f"Date verdict: {result.verdict_date.isoformat()}")
        if result.court:
            set_field("court", result.court, f"Tribunal: {result.court}")

        return updated, changes, fields

    @staticmethod
    def _new_sources(
        pages: List[ExtractedPage],
        results: List[SearchResult],
        known_urls: set,
        result: EnrichmentResult,
    ) -> List[Source]:
        by_url = {r.url: r for r in results}
        dates = {normalize_url(ref.url): ref.published_date for ref in result.sources_used}

        sources = []
        seen = set(known_urls)
        for page in pages:
            key = normalize_url(page.url)
            if key in seen:
                continue
            seen.add(key)
            search_hit = by_url.get(page.url)
            sources.append(
                Source(
                    url=page.url,
                    title=page.title or (search_hit.title if search_hit else ""),
                    publisher=search_hit.publisher if search_hit else "",
                    published_at=dates.get(key),
                    source_type=SourceType.PRESSE,
                )
            )
        return sources

    def _build_review(
        self, affair_id: str, result: EnrichmentResult, sources_added: int
    ) -> ModerationReview:
        pending = [
            r for r in self.store.list_pending_reviews(affair_id) if r.duplicate_of_id is None
        ]
        if pending:
            review = pending[-1].model_copy(deep=True)
        else:
            review = ModerationReview(affair_id=affair_id, recommendation=Recommendation.NEEDS_REVIEW)

        review.recommendation = Recommendation.NEEDS_REVIEW
        review.confidence = result.confidence
        review.reasoning = f"{ENRICHED_PREFIX} {result.reasoning}"
        review.suggested_title = result.title
        review.suggested_description = result.description
        review.suggested_status = result.status
        review.suggested_category = result.category
        review.model = f"{result.model} (enrichment)" if result.model else "enrichment"
        if not review.has_issue(IssueType.ENRICHED_FROM_WEB):
            review.issues.append(
                Issue(
                    type=IssueType.ENRICHED_FROM_WEB,
                    detail=f"Enrichi via {sources_added} source(s) presse",
                )
            )
        return review
