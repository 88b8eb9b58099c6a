"""Tests for the duplicate detection pass."""

from datetime import datetime
from unittest.mock import Mock

import pytest

from civicwatch.deduplication import DuplicateDetector, MatchTier, MergeResult
from civicwatch.models import AffairCategory, IssueType, Recommendation

from conftest import press_source


@pytest.fixture
def politician(make_entity):
    return make_entity("Jean", "Dupont")


@pytest.fixture
def detector(store, audit_logger):
    return DuplicateDetector(store, audit_logger=audit_logger)


def possible_pair(make_affair, politician_id):
    """Two affairs whose titles contain each other but differ in category."""
    a = make_affair(politician_id, "Financement libyen", category=AffairCategory.CORRUPTION)
    b = make_affair(
        politician_id,
        "Financement libyen de la campagne de 2007",
        category=AffairCategory.BLANCHIMENT,
    )
    return a, b


class TestFindPotentialDuplicates:
    """Test candidate generation."""

    def test_pairs_are_grouped_by_politician(self, store, detector, make_entity, make_affair):
        first, second = make_entity("A", "Un"), make_entity("B", "Deux")
        make_affair(first.id, "Affaire des assistants")
        make_affair(second.id, "Affaire des assistants")

        assert detector.find_potential_duplicates() == []

    def test_sorted_by_score(self, store, detector, politician, make_affair):
        make_affair(politician.id, "Affaire A", ecli="ECLI:FR:1")
        make_affair(politician.id, "Affaire B", ecli="ECLI:FR:1")
        possible_pair(make_affair, politician.id)

        candidates = detector.find_potential_duplicates()

        assert candidates[0].tier == MatchTier.CERTAIN
        assert [c.score for c in candidates] == sorted((c.score for c in candidates), reverse=True)

    def test_dismissed_pairs_are_skipped(self, store, detector, politician, make_affair):
        a, b = possible_pair(make_affair, politician.id)
        detector.merger.dismiss(a.id, b.id)

        assert detector.find_potential_duplicates() == []

    def test_verified_affairs_are_ignored(self, store, detector, politician, make_affair):
        make_affair(politician.id, "Affaire des assistants", verified_at=datetime(2024, 3, 1))
        make_affair(politician.id, "Affaire des assistants")

        assert detector.find_potential_duplicates() == []


class TestDetectionPass:
    """Test merging and flagging."""

    def test_certain_pair_is_merged_into_richer_record(self, store, detector, politician, make_affair, audit_logger):
        poor = make_affair(politician.id, "Affaire A", ecli="ECLI:FR:1")
        rich = make_affair(
            politician.id,
            "Affaire B",
            ecli="ECLI:FR:1",
            sources=[press_source("https://www.lemonde.fr/1"), press_source("https://www.lemonde.fr/2")],
        )

        stats = detector.run_duplicate_detection_pass()

        assert stats.auto_merged == 1
        assert store.get_affair(poor.id) is None
        assert store.get_affair(rich.id) is not None
        audit_logger.log_merge.assert_called_once()

    def test_possible_pair_is_flagged(self, store, detector, politician, make_affair, audit_logger):
        a, b = possible_pair(make_affair, politician.id)

        stats = detector.run_duplicate_detection_pass()

        assert stats.flagged_for_review == 1
        flagged = store.list_pending_reviews(b.id)
        assert len(flagged) == 1
        assert flagged[0].duplicate_of_id == a.id
        assert flagged[0].recommendation == Recommendation.NEEDS_REVIEW
        assert flagged[0].confidence == 50
        assert flagged[0].has_issue(IssueType.POSSIBLE_DUPLICATE)
        assert flagged[0].model == "dedup-algorithm"
        assert store.get_affair(a.id) is not None
        audit_logger.log_duplicate_flagged.assert_called_once_with(b.id, a.id, 0.5)

    def test_second_pass_does_not_flag_again(self, store, detector, politician, make_affair):
        possible_pair(make_affair, politician.id)

        detector.run_duplicate_detection_pass()
        stats = detector.run_duplicate_detection_pass()

        assert stats.flagged_for_review == 0
        assert stats.already_flagged == 1
        assert store.count_pending_duplicate_reviews() == 1

    def test_dry_run_writes_nothing(self, store, detector, politician, make_affair):
        make_affair(politician.id, "Affaire A", ecli="ECLI:FR:1")
        make_affair(politician.id, "Affaire B", ecli="ECLI:FR:1")
        possible_pair(make_affair, politician.id)

        stats = detector.run_duplicate_detection_pass(dry_run=True)

        assert stats.dry_run is True
        assert stats.auto_merged == 1
        assert stats.flagged_for_review == 1
        assert len(store.list_unverified_affairs()) == 4
        assert store.list_pending_reviews() == []

    def test_pairs_touching_a_merged_affair_are_skipped(self, store, detector, politician, make_affair):
        make_affair(politician.id, "Affaire A", ecli="ECLI:FR:1")
        make_affair(politician.id, "Affaire B", ecli="ECLI:FR:1")
        make_affair(politician.id, "Affaire C", ecli="ECLI:FR:1")

        stats = detector.run_duplicate_detection_pass()

        assert stats.candidates == 3
        assert stats.auto_merged == 2
        assert stats.skipped == 1
        assert len(store.list_unverified_affairs()) == 1

    def test_keeper_is_chosen_from_current_records(self, store, detector, politician, make_affair):
        oldest = make_affair(
            politician.id,
            "Emplois fictifs au conseil régional",
            ecli="ECLI:FR:1",
            sources=[press_source("https://www.lemonde.fr/1")],
        )
        absorbed = make_affair(
            politician.id,
            "Assistants parlementaires",
            ecli="ECLI:FR:1",
            sources=[press_source("https://www.lemonde.fr/2")],
        )
        richer = make_affair(
            politician.id,
            "Marchés publics truqués",
            ecli="ECLI:FR:1",
            sources=[press_source("https://www.lemonde.fr/3"), press_source("https://www.lemonde.fr/4")],
        )

        stats = detector.run_duplicate_detection_pass()

        # oldest absorbs the first duplicate, then ties richer at two sources and wins on age
        assert stats.auto_merged == 2
        survivors = store.list_unverified_affairs()
        assert [a.id for a in survivors] == [oldest.id]
        assert len(survivors[0].sources) == 4
        assert store.get_affair(absorbed.id) is None
        assert store.get_affair(richer.id) is None

    def test_failed_merge_is_recorded_and_pass_continues(self, store, politician, make_affair, audit_logger):
        merger = Mock()
        merger.merge.return_value = MergeResult(False, "k", "r", errors=["disk full"])
        detector = DuplicateDetector(store, merger=merger, audit_logger=audit_logger)
        make_affair(politician.id, "Affaire A", ecli="ECLI:FR:1")
        make_affair(politician.id, "Affaire B", ecli="ECLI:FR:1")
        possible_pair(make_affair, politician.id)

        stats = detector.run_duplicate_detection_pass()

        assert stats.auto_merged == 0
        assert stats.flagged_for_review == 1
        assert stats.errors[0].error_type == "MergeFailed"
        assert stats.errors[0].message == "disk full"

    def test_limit(self, store, detector, politician, make_affair):
        make_affair(politician.id, "Affaire A", ecli="ECLI:FR:1")
        make_affair(politician.id, "Affaire B", ecli="ECLI:FR:1")
        possible_pair(make_affair, politician.id)

        stats = detector.run_duplicate_detection_pass(limit=1)

        assert stats.candidates == 2
        assert stats.processed == 1
        assert stats.flagged_for_review == 0


class TestReconciliationStats:
    """Test the backlog snapshot."""

    def test_stats(self, store, detector, politician, make_affair):
        possible_pair(make_affair, politician.id)
        detector.run_duplicate_detection_pass()

        stats = detector.get_reconciliation_stats()

        assert stats["unverified_affairs"] == 2
        assert stats["pending_duplicate_reviews"] == 1
        assert stats["candidates_by_tier"] == {"CERTAIN": 0, "HIGH": 0, "POSSIBLE": 1}
