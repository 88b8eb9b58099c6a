"""Storage interface used by the scoring, reconciliation and moderation passes."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from ..models import (
    ActivityCounts,
    Affair,
    AuditEntry,
    Entity,
    EntityStatus,
    ModerationReview,
)


def pair_key(affair_a_id: str, affair_b_id: str) -> Tuple[str, str]:
    """Order-independent key for a pair of affairs."""
    return tuple(sorted((affair_a_id, affair_b_id)))


class AffairStore(ABC):
    """Abstract persistent store for entities, affairs and reviews.

    Every method that writes more than one row must do so atomically:
    either all rows change or none do, and a failure raises
    PersistenceError.
    """

    # Entities

    @abstractmethod
    def save_entity(self, entity: Entity) -> Entity:
        """Insert or replace an entity."""

    @abstractmethod
    def get_entity(self, entity_id: str) -> Optional[Entity]:
        """Get an entity by id, or None."""

    @abstractmethod
    def list_entities(self, limit: Optional[int] = None) -> List[Entity]:
        """List entities in a stable order."""

    @abstractmethod
    def get_activity_counts(self, entity_id: str, since: datetime) -> ActivityCounts:
        """Aggregate activity counts; media mentions only count from ``since``."""

    @abstractmethod
    def bulk_update_prominence(self, scores: Dict[str, int]) -> int:
        """Write prominence scores in one transaction.

        Returns:
            Number of rows updated
        """

    @abstractmethod
    def bulk_update_publication_status(self, entity_ids: List[str], status: EntityStatus) -> int:
        """Set the publication status of many entities in one transaction."""

    # Affairs

    @abstractmethod
    def save_affair(self, affair: Affair) -> Affair:
        """Insert or replace an affair with its sources and events."""

    @abstractmethod
    def get_affair(self, affair_id: str) -> Optional[Affair]:
        """Get an affair by id, or None."""

    @abstractmethod
    def list_unverified_affairs(self) -> List[Affair]:
        """Affairs never verified by a human, oldest first."""

    @abstractmethod
    def list_affairs_awaiting_moderation(self, limit: Optional[int] = None) -> List[Affair]:
        """DRAFT affairs without a pending review, oldest first."""

    @abstractmethod
    def list_sibling_titles(self, politician_id: str, exclude_id: str, limit: int = 20) -> List[str]:
        """Titles of the politician's other non-draft affairs."""

    # Reviews

    @abstractmethod
    def create_review(self, review: ModerationReview) -> ModerationReview:
        """Persist a new pending review."""

    @abstractmethod
    def get_review(self, review_id: str) -> Optional[ModerationReview]:
        """Get a review by id, or None."""

    @abstractmethod
    def list_pending_reviews(self, affair_id: Optional[str] = None) -> List[ModerationReview]:
        """Reviews not yet applied, optionally for one affair."""

    @abstractmethod
    def find_pending_duplicate_review(
        self, affair_a_id: str, affair_b_id: str
    ) -> Optional[ModerationReview]:
        """A pending duplicate review linking the two affairs, in either direction."""

    @abstractmethod
    def list_enrichment_candidates(self, limit: Optional[int] = None) -> List[ModerationReview]:
        """Pending REJECT reviews flagged for thin data and not yet enriched."""

    @abstractmethod
    def apply_review(self, affair: Affair, review: ModerationReview, audit: AuditEntry) -> None:
        """Atomically save the updated affair, the applied review and the audit entry."""

    @abstractmethod
    def resolve_reviews(self, review_ids: List[str], applied_by: str) -> int:
        """Mark reviews applied without touching their affairs."""

    # Reconciliation

    @abstractmethod
    def list_dismissed_pairs(self) -> Set[Tuple[str, str]]:
        """Pairs a human declared not to be duplicates, as sorted tuples."""

    @abstractmethod
    def add_dismissed_pair(self, affair_a_id: str, affair_b_id: str, audit: AuditEntry) -> None:
        """Record a dismissed pair and resolve pending duplicate reviews for it."""

    @abstractmethod
    def commit_merge(self, merged: Affair, removed_id: str, audit: AuditEntry) -> None:
        """Atomically replace the kept affair and delete the removed one.

        Reviews of the removed affair, pending duplicate reviews pointing at
        it and dismissed pairs naming it go with it.
        """

    # Enrichment

    @abstractmethod
    def apply_enrichment(self, affair: Affair, review: ModerationReview, audit: AuditEntry) -> None:
        """Atomically save the enriched affair, upsert its review and write the audit entry."""

    # Audit

    @abstractmethod
    def list_audit_entries(self, entity_id: Optional[str] = None) -> List[AuditEntry]:
        """Audit entries, newest last."""

    @abstractmethod
    def count_pending_duplicate_reviews(self) -> int:
        """Number of pending reviews that point at a possible duplicate."""
