"""
Affair Reconciliation

Folds a duplicate affair into the record that is kept: sources not already
linked, events and press links move over, missing judicial identifiers are
filled in, and the duplicate is deleted. The whole merge is written in one
store transaction, so a failure leaves both affairs untouched.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..errors import CivicWatchError, ValidationError
from ..models import Affair, AuditEntry
from ..security.audit import AuditLogger
from .similarity_scoring import DuplicateMatch, normalize_url

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Result of a merge operation."""
    success: bool
    kept_id: str
    removed_id: str
    sources_moved: int = 0
    events_moved: int = 0
    errors: List[str] = field(default_factory=list)


def choose_keeper(a: Affair, b: Affair) -> Tuple[Affair, Affair]:
    """Return (keep, remove): more sources wins, then the older record."""
    if len(a.sources) != len(b.sources):
        return (a, b) if len(a.sources) > len(b.sources) else (b, a)
    if a.created_at != b.created_at:
        return (a, b) if a.created_at < b.created_at else (b, a)
    return a, b


class ReconciliationMerger:
    """Merges duplicate affairs and records dismissed pairs."""

    def __init__(self, store, audit_logger: Optional[AuditLogger] = None):
        self.store = store
        self.audit_logger = audit_logger or AuditLogger()

        self.stats = {
            "successful_merges": 0,
            "failed_merges": 0,
            "dismissed_pairs": 0,
        }

    def build_merged(self, keep: Affair, remove: Affair) -> Tuple[Affair, int, int]:
        """Compute the kept affair after absorbing ``remove``.

        Returns:
            (merged affair, sources moved, events moved)
        """
        merged = keep.model_copy(deep=True)

        known_urls = {normalize_url(s.url) for s in merged.sources}
        sources_moved = 0
        for source in remove.sources:
            url = normalize_url(source.url)
            if url in known_urls:
                continue
            merged.sources.append(source.model_copy())
            known_urls.add(url)
            sources_moved += 1

        merged.events.extend(event.model_copy() for event in remove.events)

        for article_id in remove.press_article_ids:
            if article_id not in merged.press_article_ids:
                merged.press_article_ids.append(article_id)

        if not merged.ecli and remove.ecli:
            merged.ecli = remove.ecli
        if not merged.pourvoi_number and remove.pourvoi_number:
            merged.pourvoi_number = remove.pourvoi_number
        for case_number in remove.case_numbers:
            if case_number not in merged.case_numbers:
                merged.case_numbers.append(case_number)

        return merged, sources_moved, len(remove.events)

    def merge(
        self,
        keep_id: str,
        remove_id: str,
        match: Optional[DuplicateMatch] = None,
    ) -> MergeResult:
        """Merge ``remove_id`` into ``keep_id`` atomically."""
        logger.info(f"🔄 Merging affair {remove_id} into {keep_id}")

        try:
            if keep_id == remove_id:
                raise ValidationError("Cannot merge an affair into itself", field="remove_id")

            keep = self.store.get_affair(keep_id)
            remove = self.store.get_affair(remove_id)
            if keep is None or remove is None:
                missing = keep_id if keep is None else remove_id
                raise ValidationError(f"Affair not found: {missing}", field="affair_id", value=missing)

            merged, sources_moved, events_moved = self.build_merged(keep, remove)
            audit = AuditEntry(
                action="MERGE",
                entity_type="Affair",
                entity_id=keep_id,
                changes={
                    "merged_from": remove_id,
                    "merged_title": remove.title,
                    "sources_moved": sources_moved,
                    "events_moved": events_moved,
                    "tier": match.tier.value if match else None,
                    "score": match.score if match else None,
                    "reasons": match.reasons if match else [],
                },
            )
            self.store.commit_merge(merged, remove_id, audit)

        except CivicWatchError as e:
            logger.error(f"❌ Merge of {remove_id} into {keep_id} failed: {e.message}")
            self.stats["failed_merges"] += 1
            return MergeResult(False, keep_id, remove_id, errors=[e.message])

        self.stats["successful_merges"] += 1
        self.audit_logger.log_merge(
            kept_id=keep_id,
            removed_id=remove_id,
            tier=match.tier.value if match else "MANUAL",
            score=match.score if match else 1.0,
            sources_moved=sources_moved,
        )
        logger.info(f"✅ Merged {remove_id} into {keep_id} ({sources_moved} sources moved)")

        return MergeResult(True, keep_id, remove_id, sources_moved, events_moved)

    def dismiss(self, affair_a_id: str, affair_b_id: str, dismissed_by: str = "admin") -> None:
        """Record that two affairs are distinct so they are never proposed again."""
        audit = AuditEntry(
            action="DISMISS",
            entity_type="Affair",
            entity_id=affair_a_id,
            changes={"not_duplicate_of": affair_b_id, "dismissed_by": dismissed_by},
        )
        self.store.add_dismissed_pair(affair_a_id, affair_b_id, audit)
        self.stats["dismissed_pairs"] += 1
        logger.info(f"🚫 Pair {affair_a_id} / {affair_b_id} dismissed by {dismissed_by}")

    def get_statistics(self) -> dict:
        return dict(self.stats)
