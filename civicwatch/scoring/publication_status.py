"""
Publication Status Rules

Decides whether a public figure's page is published, archived, excluded or
kept as a draft. Rules are evaluated in priority order and the first match
wins. A manual override freezes the status against automation.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from ..models import Entity, EntityStatus, StatusRules
from ..security.audit import AuditLogger
from ..utils import utc_now
from .constants import DAYS_PER_YEAR

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 20


@dataclass
class StatusChange:
    """One entity whose status would change."""
    entity_id: str
    full_name: str
    before: EntityStatus
    after: EntityStatus


@dataclass
class StatusPassStats:
    """Outcome of a publication status pass."""
    total: int = 0
    skipped_override: int = 0
    unchanged: int = 0
    changes: Dict[EntityStatus, int] = field(default_factory=dict)
    samples: List[StatusChange] = field(default_factory=list)
    dry_run: bool = False

    @property
    def changed(self) -> int:
        return sum(self.changes.values())


def determine_publication_status(
    entity: Entity,
    now: Optional[datetime] = None,
    rules: Optional[StatusRules] = None,
) -> Optional[EntityStatus]:
    """Target status for an entity, or None when its status is overridden."""
    rules = rules or StatusRules()
    now = now or utc_now()

    if entity.status_override:
        return None

    has_mandate = entity.has_current_mandate
    score = entity.prominence_score

    if entity.death_date and entity.death_date.year < rules.exclude_death_before_year:
        return EntityStatus.EXCLUDED

    if (
        entity.birth_date
        and entity.birth_date.year < rules.exclude_born_before_year
        and not has_mandate
        and score < rules.publish_threshold
    ):
        return EntityStatus.EXCLUDED

    if has_mandate:
        return EntityStatus.PUBLISHED

    has_min_data = entity.has_photo or entity.has_biography
    if score >= rules.publish_threshold and (has_min_data or not rules.require_min_data):
        return EntityStatus.PUBLISHED

    if entity.death_date:
        years_dead = (now.date() - entity.death_date).days / DAYS_PER_YEAR
        if years_dead > rules.archive_death_years:
            return EntityStatus.ARCHIVED

    if score < rules.archive_score_threshold and not has_mandate:
        return EntityStatus.ARCHIVED

    return EntityStatus.DRAFT


class PublicationStatusEngine:
    """Recomputes entity publication statuses against the store."""

    def __init__(
        self,
        store,
        rules: Optional[StatusRules] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.store = store
        self.rules = rules or StatusRules()
        self.audit_logger = audit_logger or AuditLogger()

    def run(
        self,
        dry_run: bool = False,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> StatusPassStats:
        """Evaluate every entity and write only the statuses that change.

        Changed entities are grouped by target status and written with one
        bulk update per group.
        """
        now = now or utc_now()
        entities = self.store.list_entities(limit=limit)
        stats = StatusPassStats(total=len(entities), dry_run=dry_run)
        to_update: Dict[EntityStatus, List[str]] = defaultdict(list)

        logger.info(f"🔍 Evaluating publication status for {len(entities)} entities")

        for entity in entities:
            target = determine_publication_status(entity, now, self.rules)
            if target is None:
                stats.skipped_override += 1
                continue
            if target == entity.publication_status:
                stats.unchanged += 1
                continue

            to_update[target].append(entity.id)
            if len(stats.samples) < SAMPLE_SIZE:
                stats.samples.append(
                    StatusChange(entity.id, entity.full_name, entity.publication_status, target)
                )

        stats.changes = {status: len(ids) for status, ids in to_update.items()}

        if dry_run:
            logger.info(f"🔍 Dry run: {stats.changed} status changes not written")
            return stats

        for status, entity_ids in to_update.items():
            self.store.bulk_update_publication_status(entity_ids, status)
            self.audit_logger.log_status_change(status.value, entity_ids)
            logger.info(f"   ✅ {len(entity_ids)} entities → {status.value}")

        return stats
