"""
SQLite Affair Store

Persists entities, affairs, reviews and the audit trail in a single SQLite
database. Records are stored as validated JSON documents next to the few
columns the batch passes filter on. Each multi-row write runs in one
transaction and is rolled back entirely on failure.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from ..errors import PersistenceError
from ..models import (
    ENRICHABLE_ISSUES,
    ENRICHED_PREFIX,
    ActivityCounts,
    Affair,
    AffairPublicationStatus,
    AuditEntry,
    Entity,
    EntityStatus,
    ModerationReview,
    Recommendation,
)
from ..utils import utc_now
from .base import AffairStore, pair_key

logger = logging.getLogger(__name__)

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS entities (
        id TEXT PRIMARY KEY,
        full_name TEXT NOT NULL,
        publication_status TEXT NOT NULL,
        status_override INTEGER NOT NULL DEFAULT 0,
        prominence_score INTEGER NOT NULL DEFAULT 0,
        data TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS entity_activity (
        entity_id TEXT PRIMARY KEY,
        votes INTEGER NOT NULL DEFAULT 0,
        press_mentions INTEGER NOT NULL DEFAULT 0,
        fact_check_mentions INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS media_mentions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        entity_id TEXT NOT NULL,
        published_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS affairs (
        id TEXT PRIMARY KEY,
        politician_id TEXT NOT NULL,
        title TEXT NOT NULL,
        publication_status TEXT NOT NULL,
        verified_at TEXT,
        created_at TEXT NOT NULL,
        data TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS reviews (
        id TEXT PRIMARY KEY,
        affair_id TEXT NOT NULL,
        duplicate_of_id TEXT,
        recommendation TEXT NOT NULL,
        applied_at TEXT,
        created_at TEXT NOT NULL,
        data TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS dismissed_duplicates (
        affair_id_a TEXT NOT NULL,
        affair_id_b TEXT NOT NULL,
        created_at TEXT NOT NULL,
        PRIMARY KEY (affair_id_a, affair_id_b)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id TEXT PRIMARY KEY,
        action TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        changes TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_affairs_politician ON affairs(politician_id)",
    "CREATE INDEX IF NOT EXISTS idx_affairs_status ON affairs(publication_status)",
    "CREATE INDEX IF NOT EXISTS idx_reviews_affair ON reviews(affair_id, applied_at)",
    "CREATE INDEX IF NOT EXISTS idx_reviews_duplicate ON reviews(duplicate_of_id)",
    "CREATE INDEX IF NOT EXISTS idx_media_entity ON media_mentions(entity_id, published_at)",
    "CREATE INDEX IF NOT EXISTS idx_audit_entity ON audit_log(entity_id)",
]


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _limit(limit: Optional[int]) -> int:
    # SQLite treats a negative LIMIT as no limit
    return limit if limit is not None and limit >= 0 else -1


class SQLiteStore(AffairStore):
    """AffairStore backed by a single SQLite connection."""

    def __init__(self, db_path: str = "civicwatch.db"):
        """Open (and create if needed) the database.

        Args:
            db_path: File path, or ":memory:" for a throwaway store
        """
        self.db_path = db_path
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self.init_database()

    def init_database(self):
        """Create tables and indexes."""
        with self._lock, self._conn:
            for statement in SCHEMA:
                self._conn.execute(statement)
        logger.debug(f"Store initialized at {self.db_path}")

    def close(self):
        self._conn.close()

    @contextmanager
    def transaction(self, operation: str):
        """Run a block of writes atomically.

        Raises:
            PersistenceError: If anything inside the block fails; every
                write made in the block is rolled back first.
        """
        try:
            with self._lock, self._conn:
                yield self._conn
        except PersistenceError:
            raise
        except Exception as e:
            logger.error(f"❌ {operation} rolled back: {e}")
            raise PersistenceError(
                f"{operation} failed: {e}", operation=operation, cause=e
            ) from e

    def _query(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    # Row writers, always called inside a transaction

    def _upsert_entity(self, conn, entity: Entity):
        conn.execute(
            """
            INSERT OR REPLACE INTO entities
                (id, full_name, publication_status, status_override, prominence_score, data)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                entity.id,
                entity.full_name,
                entity.publication_status.value,
                int(entity.status_override),
                entity.prominence_score,
                entity.model_dump_json(),
            ),
        )

    def _upsert_affair(self, conn, affair: Affair):
        conn.execute(
            """
            INSERT OR REPLACE INTO affairs
                (id, politician_id, title, publication_status, verified_at, created_at, data)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                affair.id,
                affair.politician_id,
                affair.title,
                affair.publication_status.value,
                _ts(affair.verified_at),
                _ts(affair.created_at),
                affair.model_dump_json(),
            ),
        )

    def _upsert_review(self, conn, review: ModerationReview):
        conn.execute(
            """
            INSERT OR REPLACE INTO reviews
                (id, affair_id, duplicate_of_id, recommendation, applied_at, created_at, data)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                review.id,
                review.affair_id,
                review.duplicate_of_id,
                review.recommendation.value,
                _ts(review.applied_at),
                _ts(review.created_at),
                review.model_dump_json(),
            ),
        )

    def _insert_audit(self, conn, audit: AuditEntry):
        conn.execute(
            """
            INSERT INTO audit_log (id, action, entity_type, entity_id, changes, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                audit.id,
                audit.action,
                audit.entity_type,
                audit.entity_id,
                json.dumps(audit.changes, default=str),
                _ts(audit.created_at),
            ),
        )

    # Entities

    def save_entity(self, entity: Entity) -> Entity:
        with self.transaction("save_entity") as conn:
            self._upsert_entity(conn, entity)
        return entity

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        rows = self._query("SELECT data FROM entities WHERE id = ?", (entity_id,))
        return Entity.model_validate_json(rows[0]["data"]) if rows else None

    def list_entities(self, limit: Optional[int] = None) -> List[Entity]:
        rows = self._query(
            "SELECT data FROM entities ORDER BY id LIMIT ?", (_limit(limit),)
        )
        return [Entity.model_validate_json(row["data"]) for row in rows]

    def record_activity(
        self,
        entity_id: str,
        votes: int = 0,
        press_mentions: int = 0,
        fact_check_mentions: int = 0,
    ):
        """Store pre-aggregated activity counts for an entity."""
        with self.transaction("record_activity") as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO entity_activity
                    (entity_id, votes, press_mentions, fact_check_mentions)
                VALUES (?, ?, ?, ?)
                """,
                (entity_id, votes, press_mentions, fact_check_mentions),
            )

    def add_media_mention(self, entity_id: str, published_at: datetime):
        with self.transaction("add_media_mention") as conn:
            conn.execute(
                "INSERT INTO media_mentions (entity_id, published_at) VALUES (?, ?)",
                (entity_id, _ts(published_at)),
            )

    def get_activity_counts(self, entity_id: str, since: datetime) -> ActivityCounts:
        activity = self._query(
            "SELECT votes, press_mentions, fact_check_mentions FROM entity_activity WHERE entity_id = ?",
            (entity_id,),
        )
        recent = self._query(
            "SELECT COUNT(*) AS n FROM media_mentions WHERE entity_id = ? AND published_at >= ?",
            (entity_id, _ts(since)),
        )
        affairs = self._query(
            "SELECT COUNT(*) AS n FROM affairs WHERE politician_id = ?", (entity_id,)
        )

        counts = ActivityCounts(
            recent_media_mentions=recent[0]["n"],
            affairs=affairs[0]["n"],
        )
        if activity:
            counts.votes = activity[0]["votes"]
            counts.press_mentions = activity[0]["press_mentions"]
            counts.fact_check_mentions = activity[0]["fact_check_mentions"]
        return counts

    def bulk_update_prominence(self, scores: Dict[str, int]) -> int:
        updated = 0
        with self.transaction("bulk_update_prominence") as conn:
            for entity_id, score in scores.items():
                entity = self._load_entity(conn, entity_id)
                if entity is None:
                    continue
                entity.prominence_score = score
                self._upsert_entity(conn, entity)
                updated += 1
        return updated

    def bulk_update_publication_status(self, entity_ids: List[str], status: EntityStatus) -> int:
        updated = 0
        with self.transaction("bulk_update_publication_status") as conn:
            for entity_id in entity_ids:
                entity = self._load_entity(conn, entity_id)
                if entity is None:
                    continue
                entity.publication_status = status
                self._upsert_entity(conn, entity)
                updated += 1
            self._insert_audit(
                conn,
                AuditEntry(
                    action="STATUS_CHANGE",
                    entity_type="Entity",
                    entity_id=status.value,
                    changes={"publication_status": status.value, "entity_ids": entity_ids},
                ),
            )
        return updated

    def _load_entity(self, conn, entity_id: str) -> Optional[Entity]:
        row = conn.execute("SELECT data FROM entities WHERE id = ?", (entity_id,)).fetchone()
        return Entity.model_validate_json(row["data"]) if row else None

    # Affairs

    def save_affair(self, affair: Affair) -> Affair:
        with self.transaction("save_affair") as conn:
            self._upsert_affair(conn, affair)
        return affair

    def get_affair(self, affair_id: str) -> Optional[Affair]:
        rows = self._query("SELECT data FROM affairs WHERE id = ?", (affair_id,))
        return Affair.model_validate_json(rows[0]["data"]) if rows else None

    def list_unverified_affairs(self) -> List[Affair]:
        rows = self._query(
            "SELECT data FROM affairs WHERE verified_at IS NULL ORDER BY created_at, id"
        )
        return [Affair.model_validate_json(row["data"]) for row in rows]

    def list_affairs_awaiting_moderation(self, limit: Optional[int] = None) -> List[Affair]:
        rows = self._query(
            """
            SELECT data FROM affairs
            WHERE publication_status = ?
              AND id NOT IN (SELECT affair_id FROM reviews WHERE applied_at IS NULL)
            ORDER BY created_at, id
            LIMIT ?
            """,
            (AffairPublicationStatus.DRAFT.value, _limit(limit)),
        )
        return [Affair.model_validate_json(row["data"]) for row in rows]

    def list_sibling_titles(self, politician_id: str, exclude_id: str, limit: int = 20) -> List[str]:
        rows = self._query(
            """
            SELECT title FROM affairs
            WHERE politician_id = ? AND id != ? AND publication_status != ?
            ORDER BY created_at
            LIMIT ?
            """,
            (politician_id, exclude_id, AffairPublicationStatus.DRAFT.value, _limit(limit)),
        )
        return [row["title"] for row in rows]

    # Reviews

    def create_review(self, review: ModerationReview) -> ModerationReview:
        with self.transaction("create_review") as conn:
            self._upsert_review(conn, review)
        return review

    def get_review(self, review_id: str) -> Optional[ModerationReview]:
        rows = self._query("SELECT data FROM reviews WHERE id = ?", (review_id,))
        return ModerationReview.model_validate_json(rows[0]["data"]) if rows else None

    def list_pending_reviews(self, affair_id: Optional[str] = None) -> List[ModerationReview]:
        if affair_id:
            rows = self._query(
                "SELECT data FROM reviews WHERE applied_at IS NULL AND affair_id = ? ORDER BY created_at",
                (affair_id,),
            )
        else:
            rows = self._query(
                "SELECT data FROM reviews WHERE applied_at IS NULL ORDER BY created_at"
            )
        return [ModerationReview.model_validate_json(row["data"]) for row in rows]

    def find_pending_duplicate_review(
        self, affair_a_id: str, affair_b_id: str
    ) -> Optional[ModerationReview]:
        rows = self._query(
            """
            SELECT data FROM reviews
            WHERE applied_at IS NULL
              AND ((affair_id = ? AND duplicate_of_id = ?)
                OR (affair_id = ? AND duplicate_of_id = ?))
            LIMIT 1
            """,
            (affair_a_id, affair_b_id, affair_b_id, affair_a_id),
        )
        return ModerationReview.model_validate_json(rows[0]["data"]) if rows else None

    def list_enrichment_candidates(self, limit: Optional[int] = None) -> List[ModerationReview]:
        rows = self._query(
            """
            SELECT data FROM reviews
            WHERE applied_at IS NULL AND recommendation = ?
            ORDER BY created_at
            """,
            (Recommendation.REJECT.value,),
        )
        candidates = []
        for row in rows:
            review = ModerationReview.model_validate_json(row["data"])
            if review.reasoning.startswith(ENRICHED_PREFIX):
                continue
            if not any(issue.type in ENRICHABLE_ISSUES for issue in review.issues):
                continue
            candidates.append(review)
            if limit is not None and len(candidates) >= limit:
                break
        return candidates

    def apply_review(self, affair: Affair, review: ModerationReview, audit: AuditEntry) -> None:
        with self.transaction("apply_review") as conn:
            self._upsert_affair(conn, affair)
            self._upsert_review(conn, review)
            self._insert_audit(conn, audit)

    def resolve_reviews(self, review_ids: List[str], applied_by: str) -> int:
        with self.transaction("resolve_reviews") as conn:
            return self._resolve_reviews(conn, review_ids, applied_by, utc_now())

    def _resolve_reviews(self, conn, review_ids: List[str], applied_by: str, now: datetime) -> int:
        resolved = 0
        for review_id in review_ids:
            row = conn.execute("SELECT data FROM reviews WHERE id = ?", (review_id,)).fetchone()
            if row is None:
                continue
            review = ModerationReview.model_validate_json(row["data"])
            if not review.is_pending:
                continue
            review.applied_at = now
            review.applied_by = applied_by
            self._upsert_review(conn, review)
            resolved += 1
        return resolved

    # Reconciliation

    def list_dismissed_pairs(self) -> Set[Tuple[str, str]]:
        rows = self._query("SELECT affair_id_a, affair_id_b FROM dismissed_duplicates")
        return {pair_key(row["affair_id_a"], row["affair_id_b"]) for row in rows}

    def add_dismissed_pair(self, affair_a_id: str, affair_b_id: str, audit: AuditEntry) -> None:
        first, second = pair_key(affair_a_id, affair_b_id)
        with self.transaction("add_dismissed_pair") as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO dismissed_duplicates (affair_id_a, affair_id_b, created_at)
                VALUES (?, ?, ?)
                """,
                (first, second, _ts(utc_now())),
            )
            pending = conn.execute(
                """
                SELECT id FROM reviews
                WHERE applied_at IS NULL
                  AND ((affair_id = ? AND duplicate_of_id = ?)
                    OR (affair_id = ? AND duplicate_of_id = ?))
                """,
                (first, second, second, first),
            ).fetchall()
            self._resolve_reviews(
                conn, [row["id"] for row in pending], "system:dismissed", utc_now()
            )
            self._insert_audit(conn, audit)

    def commit_merge(self, merged: Affair, removed_id: str, audit: AuditEntry) -> None:
        with self.transaction("commit_merge") as conn:
            for affair_id in (merged.id, removed_id):
                exists = conn.execute(
                    "SELECT 1 FROM affairs WHERE id = ?", (affair_id,)
                ).fetchone()
                if not exists:
                    raise PersistenceError(
                        f"Affair not found: {affair_id}", operation="commit_merge"
                    )

            self._upsert_affair(conn, merged)
            conn.execute(
                """
                DELETE FROM reviews
                WHERE affair_id = ? OR (duplicate_of_id = ? AND applied_at IS NULL)
                """,
                (removed_id, removed_id),
            )
            conn.execute("DELETE FROM affairs WHERE id = ?", (removed_id,))
            conn.execute(
                "DELETE FROM dismissed_duplicates WHERE affair_id_a = ? OR affair_id_b = ?",
                (removed_id, removed_id),
            )
            self._insert_audit(conn, audit)

    # Enrichment

    def apply_enrichment(self, affair: Affair, review: ModerationReview, audit: AuditEntry) -> None:
        with self.transaction("apply_enrichment") as conn:
            self._upsert_affair(conn, affair)
            self._upsert_review(conn, review)
            self._insert_audit(conn, audit)

    # Audit

    def list_audit_entries(self, entity_id: Optional[str] = None) -> List[AuditEntry]:
        if entity_id:
            rows = self._query(
                "SELECT * FROM audit_log WHERE entity_id = ? ORDER BY created_at", (entity_id,)
            )
        else:
            rows = self._query("SELECT * FROM audit_log ORDER BY created_at")
        return [
            AuditEntry(
                id=row["id"],
                action=row["action"],
                entity_type=row["entity_type"],
                entity_id=row["entity_id"],
                changes=json.loads(row["changes"]),
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    # Statistics

    def count_pending_duplicate_reviews(self) -> int:
        rows = self._query(
            "SELECT COUNT(*) AS n FROM reviews WHERE applied_at IS NULL AND duplicate_of_id IS NOT NULL"
        )
        return rows[0]["n"]
