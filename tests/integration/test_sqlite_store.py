"""Tests for the SQLite store."""

from datetime import datetime
from unittest.mock import patch

import pytest

from civicwatch.errors import PersistenceError
from civicwatch.models import (
    AffairPublicationStatus,
    AuditEntry,
    EntityStatus,
    Issue,
    IssueType,
    ModerationReview,
    Recommendation,
)

from conftest import press_source


def review(affair_id, recommendation=Recommendation.NEEDS_REVIEW, **kwargs):
    return ModerationReview(affair_id=affair_id, recommendation=recommendation, **kwargs)


class TestEntities:
    """Test entity persistence."""

    def test_round_trip(self, store, make_entity):
        entity = make_entity("Ségolène", "Royal", has_photo=True)

        loaded = store.get_entity(entity.id)

        assert loaded.full_name == "Ségolène Royal"
        assert loaded.has_photo is True
        assert store.get_entity("missing") is None

    def test_bulk_status_update_writes_audit(self, store, make_entity):
        first, second = make_entity("A", "Un"), make_entity("B", "Deux")

        updated = store.bulk_update_publication_status([first.id, second.id, "ghost"], EntityStatus.ARCHIVED)

        assert updated == 2
        assert store.get_entity(first.id).publication_status == EntityStatus.ARCHIVED
        entries = store.list_audit_entries(EntityStatus.ARCHIVED.value)
        assert entries[0].action == "STATUS_CHANGE"

    def test_list_entities_limit(self, store, make_entity):
        for i in range(3):
            make_entity("P", f"Nom{i}")

        assert len(store.list_entities()) == 3
        assert len(store.list_entities(limit=2)) == 2


class TestAffairQueries:
    """Test the queries the batch passes rely on."""

    def test_awaiting_moderation_excludes_pending_reviews(self, store, make_entity, make_affair):
        politician = make_entity()
        waiting = make_affair(politician.id, "Affaire A")
        reviewed = make_affair(politician.id, "Affaire B")
        make_affair(politician.id, "Affaire C", publication_status=AffairPublicationStatus.PUBLISHED)
        store.create_review(review(reviewed.id))

        assert [a.id for a in store.list_affairs_awaiting_moderation()] == [waiting.id]

    def test_awaiting_moderation_is_oldest_first(self, store, make_entity, make_affair):
        politician = make_entity()
        first = make_affair(politician.id, "Affaire A")
        second = make_affair(politician.id, "Affaire B")

        assert [a.id for a in store.list_affairs_awaiting_moderation()] == [first.id, second.id]
        assert [a.id for a in store.list_affairs_awaiting_moderation(limit=1)] == [first.id]

    def test_sibling_titles_skip_drafts_and_self(self, store, make_entity, make_affair):
        politician = make_entity()
        current = make_affair(politician.id, "Affaire courante")
        make_affair(politician.id, "Brouillon")
        make_affair(politician.id, "Affaire publiée", publication_status=AffairPublicationStatus.PUBLISHED)
        make_affair(politician.id, "Affaire rejetée", publication_status=AffairPublicationStatus.REJECTED)

        titles = store.list_sibling_titles(politician.id, current.id)

        assert titles == ["Affaire publiée", "Affaire rejetée"]

    def test_unverified_affairs(self, store, make_entity, make_affair):
        politician = make_entity()
        open_affair = make_affair(politician.id, "Ouverte")
        make_affair(politician.id, "Vérifiée", verified_at=datetime(2024, 2, 1))

        assert [a.id for a in store.list_unverified_affairs()] == [open_affair.id]

    def test_activity_counts_include_affairs(self, store, make_entity, make_affair):
        politician = make_entity()
        make_affair(politician.id, "Une")
        make_affair(politician.id, "Deux")

        counts = store.get_activity_counts(politician.id, datetime(2024, 1, 1))

        assert counts.affairs == 2
        assert counts.votes == 0


class TestReviews:
    """Test review queries."""

    def test_enrichment_candidates(self, store, make_entity, make_affair):
        politician = make_entity()
        thin = make_affair(politician.id, "Sans source")
        fine = make_affair(politician.id, "Hors sujet")
        done = make_affair(politician.id, "Déjà enrichie")

        candidate = store.create_review(
            review(thin.id, Recommendation.REJECT, issues=[Issue(type=IssueType.MISSING_SOURCE)])
        )
        store.create_review(
            review(fine.id, Recommendation.REJECT, issues=[Issue(type=IssueType.NOT_A_REAL_AFFAIR)])
        )
        store.create_review(
            review(
                done.id,
                Recommendation.REJECT,
                reasoning="[ENRICHI] déjà traité",
                issues=[Issue(type=IssueType.POOR_DESCRIPTION)],
            )
        )

        assert [r.id for r in store.list_enrichment_candidates()] == [candidate.id]

    def test_find_pending_duplicate_review_either_direction(self, store, make_entity, make_affair):
        politician = make_entity()
        a, b = make_affair(politician.id, "A"), make_affair(politician.id, "B")
        store.create_review(review(b.id, duplicate_of_id=a.id))

        assert store.find_pending_duplicate_review(a.id, b.id) is not None
        assert store.find_pending_duplicate_review(b.id, a.id) is not None
        assert store.count_pending_duplicate_reviews() == 1

    def test_resolve_reviews(self, store, make_entity, make_affair):
        politician = make_entity()
        affair = make_affair(politician.id)
        pending = store.create_review(review(affair.id))

        assert store.resolve_reviews([pending.id, "ghost"], "alice") == 1
        assert store.resolve_reviews([pending.id], "bob") == 0
        assert store.get_review(pending.id).applied_by == "alice"
        assert store.list_pending_reviews(affair.id) == []


class TestTransactions:
    """Test atomic multi-row writes."""

    def test_dismissed_pair_resolves_pending_review(self, store, make_entity, make_affair):
        politician = make_entity()
        a, b = make_affair(politician.id, "A"), make_affair(politician.id, "B")
        flagged = store.create_review(review(b.id, duplicate_of_id=a.id))
        audit = AuditEntry(action="DISMISS", entity_type="Affair", entity_id=b.id)

        store.add_dismissed_pair(b.id, a.id, audit)

        assert store.list_dismissed_pairs() == {tuple(sorted((a.id, b.id)))}
        assert store.get_review(flagged.id).applied_by == "system:dismissed"

    def test_commit_merge(self, store, make_entity, make_affair):
        politician = make_entity()
        keep = make_affair(politician.id, "Gardée", sources=[press_source("https://x.fr/1")])
        remove = make_affair(politician.id, "Supprimée")
        third = make_affair(politician.id, "Autre")
        store.create_review(review(remove.id))
        store.create_review(review(third.id, duplicate_of_id=remove.id))
        merged = keep.model_copy(update={"case_numbers": ["17/1"]})
        audit = AuditEntry(action="MERGE", entity_type="Affair", entity_id=keep.id)

        store.commit_merge(merged, remove.id, audit)

        assert store.get_affair(remove.id) is None
        assert store.get_affair(keep.id).case_numbers == ["17/1"]
        assert store.list_pending_reviews() == []
        assert store.list_audit_entries(keep.id)[0].action == "MERGE"

    def test_commit_merge_missing_affair(self, store, make_entity, make_affair):
        keep = make_affair(make_entity().id)
        audit = AuditEntry(action="MERGE", entity_type="Affair", entity_id=keep.id)

        with pytest.raises(PersistenceError):
            store.commit_merge(keep, "ghost", audit)

    def test_failure_rolls_back_every_write(self, store, make_entity, make_affair):
        politician = make_entity()
        keep = make_affair(politician.id, "Gardée")
        remove = make_affair(politician.id, "Supprimée")
        merged = keep.model_copy(update={"title": "Nouveau titre"})
        audit = AuditEntry(action="MERGE", entity_type="Affair", entity_id=keep.id)

        with patch.object(store, "_insert_audit", side_effect=RuntimeError("disk full")):
            with pytest.raises(PersistenceError):
                store.commit_merge(merged, remove.id, audit)

        assert store.get_affair(remove.id) is not None
        assert store.get_affair(keep.id).title == "Gardée"
        assert store.list_audit_entries() == []
