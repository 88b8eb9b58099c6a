"""
Prominence Scoring

Deterministic 0-1000 measure of a public figure's relevance, computed from
mandates, party roles and pre-aggregated activity counts. Each sub-score is
capped on its own and the total is capped again.
"""

import calendar
import logging
import math
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Dict, Optional

from ..models import ActivityCounts, Entity, PartyRole
from ..utils import utc_now
from . import constants as c

logger = logging.getLogger(__name__)

CHUNK_SIZE = 100


@dataclass
class ProminenceBreakdown:
    """Sub-scores behind a prominence score."""
    mandate_weight: int = 0
    activity_score: int = 0
    media_score: int = 0
    affairs_score: int = 0
    recency_bonus: int = 0
    total: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class ProminencePassStats:
    """Outcome of a batch prominence recomputation."""
    total: int = 0
    updated: int = 0
    max_score: int = 0
    average_score: float = 0.0
    dry_run: bool = False


def cap(value: float, maximum: int) -> int:
    """Round half up and clamp to [0, maximum]."""
    return max(0, min(int(math.floor(value + 0.5)), maximum))


def months_ago(now: datetime, months: int) -> datetime:
    """Same day-of-month ``months`` earlier, clamped to the month's length."""
    month_index = now.year * 12 + (now.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


class ProminenceScorer:
    """Computes prominence scores and refreshes them in the store."""

    def score_breakdown(
        self,
        entity: Entity,
        activity: Optional[ActivityCounts] = None,
        now: Optional[datetime] = None,
    ) -> ProminenceBreakdown:
        """Compute every sub-score for an entity.

        Args:
            entity: The public figure with mandates and party roles
            activity: Pre-aggregated counts (zero when omitted)
            now: Reference time for recency checks

        Returns:
            ProminenceBreakdown with the capped total
        """
        activity = activity or ActivityCounts()
        now = now or utc_now()

        breakdown = ProminenceBreakdown(
            mandate_weight=self._mandate_weight(entity),
            activity_score=self._activity_score(activity),
            media_score=cap(activity.recent_media_mentions * c.MEDIA_POINTS_PER_MENTION, c.MEDIA_CAP),
            affairs_score=cap(activity.affairs * c.AFFAIR_POINTS, c.AFFAIRS_CAP),
            recency_bonus=self._recency_bonus(entity, now),
        )
        breakdown.total = cap(
            breakdown.mandate_weight
            + breakdown.activity_score
            + breakdown.media_score
            + breakdown.affairs_score
            + breakdown.recency_bonus,
            c.TOTAL_CAP,
        )
        return breakdown

    def score(
        self,
        entity: Entity,
        activity: Optional[ActivityCounts] = None,
        now: Optional[datetime] = None,
    ) -> int:
        return self.score_breakdown(entity, activity, now).total

    def _mandate_weight(self, entity: Entity) -> int:
        best = 0.0
        for mandate in entity.mandates:
            multiplier = c.CURRENT_MULTIPLIER if mandate.is_current else c.PAST_MULTIPLIER
            best = max(best, c.MANDATE_WEIGHTS.get(mandate.mandate_type, 0) * multiplier)
        for role in entity.party_roles:
            multiplier = c.CURRENT_MULTIPLIER if role.is_active else c.PAST_MULTIPLIER
            best = max(best, c.PARTY_ROLE_WEIGHTS.get(role.role, 0) * multiplier)
        return cap(best, c.MANDATE_CAP)

    def _activity_score(self, activity: ActivityCounts) -> int:
        votes = cap(activity.votes * c.VOTE_POINTS, c.VOTE_MAX)
        press = cap(activity.press_mentions * c.PRESS_POINTS, c.PRESS_MAX)
        fact_checks = cap(activity.fact_check_mentions * c.FACT_CHECK_POINTS, c.FACT_CHECK_MAX)
        return cap(votes + press + fact_checks, c.ACTIVITY_CAP)

    def _recency_bonus(self, entity: Entity, now: datetime) -> int:
        if entity.has_current_mandate:
            return c.RECENCY_CURRENT_MANDATE

        if any(role.is_active and role.role != PartyRole.MEMBER for role in entity.party_roles):
            return c.RECENCY_ACTIVE_PARTY_ROLE

        today = now.date()
        for mandate in entity.mandates:
            if mandate.end_date is None:
                continue
            years_since = (today - mandate.end_date).days / c.DAYS_PER_YEAR
            if years_since <= c.RECENT_MANDATE_YEARS:
                return c.RECENCY_RECENT_MANDATE

        return 0

    def run_prominence_pass(
        self,
        store,
        dry_run: bool = False,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> ProminencePassStats:
        """Recompute and store the prominence score of every entity.

        Writes are grouped in chunks of 100, each chunk in one transaction.
        """
        now = now or utc_now()
        since = months_ago(now, c.MEDIA_WINDOW_MONTHS)
        entities = store.list_entities(limit=limit)

        logger.info(f"📊 Computing prominence for {len(entities)} entities")

        scores: Dict[str, int] = {}
        for entity in entities:
            activity = store.get_activity_counts(entity.id, since)
            scores[entity.id] = self.score(entity, activity, now)

        stats = ProminencePassStats(total=len(entities), dry_run=dry_run)
        if scores:
            stats.max_score = max(scores.values())
            stats.average_score = round(sum(scores.values()) / len(scores), 1)

        if dry_run:
            logger.info("🔍 Dry run: prominence scores not written")
            return stats

        items = list(scores.items())
        for start in range(0, len(items), CHUNK_SIZE):
            chunk = dict(items[start:start + CHUNK_SIZE])
            stats.updated += store.bulk_update_prominence(chunk)

        logger.info(
            f"✅ Prominence updated for {stats.updated} entities "
            f"(max {stats.max_score}, avg {stats.average_score})"
        )
        return stats


_scorer = ProminenceScorer()


def compute_prominence(
    entity: Entity,
    activity: Optional[ActivityCounts] = None,
    now: Optional[datetime] = None,
) -> int:
    """Prominence score of ``entity`` in [0, 1000]."""
    return _scorer.score(entity, activity, now)
