"""Human-in-the-loop application of moderation reviews."""

import logging
from ..utils import utc_now
from typing import Any, Dict, Optional

from ..deduplication.merge_proposals import ReconciliationMerger
from ..errors import ValidationError
from ..models import (
    Affair,
    AffairPublicationStatus,
    AuditEntry,
    ModerationReview,
    Recommendation,
)
from ..security.audit import AuditLogger

logger = logging.getLogger(__name__)


class ReviewApplier:
    """Applies or dismisses pending reviews.

    Classification only ever records a recommendation. This is the separate
    step that changes an affair, and it is always triggered explicitly.
    """

    def __init__(
        self,
        store,
        merger: Optional[ReconciliationMerger] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.store = store
        self.audit_logger = audit_logger or AuditLogger()
        self.merger = merger or ReconciliationMerger(store, self.audit_logger)

    def _pending_review(self, review_id: str) -> ModerationReview:
        review = self.store.get_review(review_id)
        if review is None:
            raise ValidationError(f"Review not found: {review_id}", field="review_id", value=review_id)
        if not review.is_pending:
            raise ValidationError(
                f"Review {review_id} was already applied by {review.applied_by}",
                field="applied_at",
                value=review.applied_at,
            )
        return review

    def apply(self, review_id: str, applied_by: str = "admin") -> Affair:
        """Apply a pending review to its affair.

        A review flagging a duplicate merges the affair into the one it
        duplicates. Otherwise suggested corrections are applied, then PUBLISH
        publishes the affair and REJECT rejects it.

        Raises:
            ValidationError: Unknown or already applied review, missing affair,
                or publishing an affair without sources
        """
        review = self._pending_review(review_id)
        affair = self.store.get_affair(review.affair_id)
        if affair is None:
            raise ValidationError(f"Affair not found: {review.affair_id}", field="affair_id")

        if review.duplicate_of_id:
            return self._apply_duplicate(review, applied_by)

        now = utc_now()
        updated = affair.model_copy(deep=True)
        changes: Dict[str, Any] = {}

        corrections = (
            ("title", review.suggested_title),
            ("description", review.suggested_description),
            ("status", review.suggested_status),
            ("category", review.suggested_category),
        )
        for name, value in corrections:
            if value is not None and getattr(updated, name) != value:
                setattr(updated, name, value)
                changes[name] = value.value if hasattr(value, "value") else value

        if review.recommendation == Recommendation.PUBLISH:
            if not updated.sources:
                raise ValidationError(
                    f"Cannot publish affair {affair.id} without sources", field="sources"
                )
            updated.publication_status = AffairPublicationStatus.PUBLISHED
            updated.verified_at = now
        elif review.recommendation == Recommendation.REJECT:
            updated.publication_status = AffairPublicationStatus.REJECTED
            updated.rejection_reason = review.reasoning
            updated.verified_at = now

        if updated.publication_status != affair.publication_status:
            changes["publication_status"] = updated.publication_status.value

        applied = review.model_copy(update={"applied_at": now, "applied_by": applied_by})
        audit = AuditEntry(
            action="UPDATE",
            entity_type="Affair",
            entity_id=affair.id,
            changes={
                "review_id": review.id,
                "recommendation": review.recommendation.value,
                "applied_by": applied_by,
                **changes,
            },
        )
        self.store.apply_review(updated, applied, audit)

        self.audit_logger.log_review_applied(
            review_id=review.id,
            affair_id=affair.id,
            action=review.recommendation.value,
            applied_by=applied_by,
            changes=changes,
        )
        logger.info(f"✅ Review {review.id} applied to {affair.id} ({review.recommendation.value})")
        return updated

    def _apply_duplicate(self, review: ModerationReview, applied_by: str) -> Affair:
        result = self.merger.merge(review.duplicate_of_id, review.affair_id)
        if not result.success:
            raise ValidationError(
                f"Merge failed: {'; '.join(result.errors)}", field="duplicate_of_id"
            )
        self.audit_logger.log_review_applied(
            review_id=review.id,
            affair_id=review.affair_id,
            action="MERGE",
            applied_by=applied_by,
            changes={"merged_into": review.duplicate_of_id},
        )
        return self.store.get_affair(review.duplicate_of_id)

    def dismiss(self, review_id: str, applied_by: str = "admin") -> ModerationReview:
        """Close a review without touching the affair.

        Dismissing a duplicate review also records the pair as distinct.
        """
        review = self._pending_review(review_id)
        resolved_by = f"{applied_by}:dismissed"
        self.store.resolve_reviews([review.id], resolved_by)

        if review.duplicate_of_id:
            self.merger.dismiss(review.affair_id, review.duplicate_of_id, dismissed_by=applied_by)

        self.audit_logger.log_review_applied(
            review_id=review.id,
            affair_id=review.affair_id,
            action="DISMISS",
            applied_by=resolved_by,
        )
        logger.info(f"🚫 Review {review.id} dismissed by {applied_by}")
        return self.store.get_review(review.id)
